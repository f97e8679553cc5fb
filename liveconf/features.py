"""
Domain-specific readers over the current snapshots.

Feature flags are looked up by a typed key; an unknown name is reported as
FeatureState.UNKNOWN (or UnknownFeature) instead of quietly reading as off.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from liveconf.documents import AppConfig, BusinessProfile, FeatureFlags, UiConfig
from liveconf.domains import Domain
from liveconf.errors import UnknownFeature

if TYPE_CHECKING:
    from liveconf.engine import ConfigEngine

DEFAULT_COMPANY_NAME = "Company"
DEFAULT_PRIMARY_COLOR = "#007bff"
DEFAULT_THEME = "light"


class FeatureKey(str, Enum):
    """Every flag in feature-flags, as '<section>.<flag>'."""

    INVOICING = "modules.invoicing"
    TIME_TRACKING = "modules.time_tracking"
    CLIENT_MANAGEMENT = "modules.client_management"
    ANALYTICS = "modules.analytics"
    INTEGRATIONS = "modules.integrations"
    NEW_DASHBOARD = "beta.new_dashboard"
    ADVANCED_REPORTS = "beta.advanced_reports"
    AI_ASSISTANT = "beta.ai_assistant"
    DARK_MODE_V2 = "experimental.dark_mode_v2"
    REAL_TIME_SYNC = "experimental.real_time_sync"
    VOICE_COMMANDS = "experimental.voice_commands"
    CAN_EXPORT_DATA = "permissions.can_export_data"
    CAN_MODIFY_SETTINGS = "permissions.can_modify_settings"
    CAN_ACCESS_BETA_FEATURES = "permissions.can_access_beta_features"

    @property
    def section(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def flag(self) -> str:
        return self.value.split(".", 1)[1]


class FeatureState(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


def _compact(name: str) -> str:
    return name.lower().replace("_", "").replace("-", "")


# Short names as used by clients: "invoicing", "timetracking", "newdashboard", ...
_BY_SHORT_NAME = {_compact(k.flag): k for k in FeatureKey}


def parse_feature_key(name: str) -> FeatureKey | None:
    """Accept 'modules.invoicing', 'INVOICING', 'invoicing', or 'timeTracking'. None if unknown."""
    value = name.strip()
    try:
        return FeatureKey(value.lower())
    except ValueError:
        pass
    if value.upper() in FeatureKey.__members__:
        return FeatureKey[value.upper()]
    section, _, short = value.rpartition(".")
    key = _BY_SHORT_NAME.get(_compact(short))
    # A section prefix has to name the flag's own section
    if key is not None and section and section.lower() != key.section:
        return None
    return key


def feature_flag_map(flags: FeatureFlags) -> dict[FeatureKey, bool]:
    """All flags of a document keyed by FeatureKey."""
    sections = {
        "modules": flags.features.modules,
        "beta": flags.features.beta,
        "experimental": flags.features.experimental,
        "permissions": flags.permissions,
    }
    return {key: getattr(sections[key.section], key.flag) for key in FeatureKey}


def feature_state(flags: FeatureFlags, key: FeatureKey | str) -> FeatureState:
    if not isinstance(key, FeatureKey):
        parsed = parse_feature_key(key)
        if parsed is None:
            return FeatureState.UNKNOWN
        key = parsed
    return FeatureState.ENABLED if feature_flag_map(flags)[key] else FeatureState.DISABLED


def is_feature_enabled(engine: ConfigEngine, key: FeatureKey | str) -> bool:
    """True/False for a known flag; raises UnknownFeature for anything else."""
    state = feature_state(engine.get_document(Domain.FEATURE_FLAGS), key)
    if state is FeatureState.UNKNOWN:
        raise UnknownFeature(f"unknown feature: {key!r}")
    return state is FeatureState.ENABLED


def company_display_name(engine: ConfigEngine) -> str:
    profile: BusinessProfile = engine.get_document(Domain.BUSINESS)
    contacts = profile.contacts
    if contacts is None or contacts.business is None or not contacts.business.company_name:
        return DEFAULT_COMPANY_NAME
    return contacts.business.company_name


def primary_color(engine: ConfigEngine) -> str:
    ui: UiConfig = engine.get_document(Domain.UI)
    if ui.branding is None or not ui.branding.primary_color:
        return DEFAULT_PRIMARY_COLOR
    return ui.branding.primary_color


def current_theme(engine: ConfigEngine) -> str:
    ui: UiConfig = engine.get_document(Domain.UI)
    if ui.preferences is None or not ui.preferences.theme:
        return DEFAULT_THEME
    return ui.preferences.theme


def is_development_environment(engine: ConfigEngine) -> bool:
    app: AppConfig = engine.get_document(Domain.APP)
    env = app.system.environment if app.system is not None else None
    return (env or "").lower() == "development"
