"""Pydantic document models, one per domain. Frozen: a parsed document never changes."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, StrictBool
from pydantic.alias_generators import to_camel

from liveconf.domains import Domain


class DocumentModel(BaseModel):
    """Base for configuration documents: camelCase source keys, immutable, unknown keys ignored."""

    model_config = {
        "frozen": True,
        "extra": "ignore",
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class FlagSection(DocumentModel):
    """Section of strict booleans (StrictBool); "yes" or 1 is a parse error, not True."""


# --- app-config ---


class SystemInfo(DocumentModel):
    project_name: str | None = None
    project_description: str | None = None
    version: str | None = None
    environment: str | None = None
    last_updated: datetime | None = None


class Notifications(DocumentModel):
    email: bool = False
    push: bool = False
    sms: bool = False


class Dashboard(DocumentModel):
    default_view: str | None = None
    show_metrics: bool = False
    auto_refresh: int = Field(0, ge=0, description="Dashboard refresh period in seconds")


class AppFeatures(DocumentModel):
    notifications: Notifications | None = None
    dashboard: Dashboard | None = None


class AppConfig(DocumentModel):
    """app-config: project metadata and app-level feature settings."""

    system: SystemInfo | None = None
    features: AppFeatures | None = None


# --- business-config ---


class Owner(DocumentModel):
    name: str | None = None
    display_name: str | None = None
    title: str | None = None
    bio: str | None = None


class PrimaryContact(DocumentModel):
    email: str | None = None
    phone: str | None = None


class SocialLinks(DocumentModel):
    linkedin: str | None = None
    website: str | None = None
    github: str | None = None


class Address(DocumentModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None


class BusinessInfo(DocumentModel):
    company_name: str | None = None
    address: Address | None = None


class Contacts(DocumentModel):
    primary: PrimaryContact | None = None
    social: SocialLinks | None = None
    business: BusinessInfo | None = None


class BusinessProfile(DocumentModel):
    """business-config: owner and contact details."""

    owner: Owner | None = None
    contacts: Contacts | None = None


# --- ui-config ---


class Preferences(DocumentModel):
    theme: str | None = None
    language: str | None = None
    timezone: str | None = None
    date_format: str | None = None
    currency: str | None = None


class Branding(DocumentModel):
    primary_color: str | None = None
    secondary_color: str | None = None
    logo: str | None = None
    favicon: str | None = None


class Layout(DocumentModel):
    sidebar_collapsed: bool = False
    header_fixed: bool = False
    footer_visible: bool = False
    breadcrumbs_enabled: bool = False


class Themes(DocumentModel):
    available: tuple[str, ...] = ()
    default_theme: str | None = Field(None, alias="default")
    custom_css: str | None = None


class UiConfig(DocumentModel):
    """ui-config: preferences, branding, layout, and themes."""

    preferences: Preferences | None = None
    branding: Branding | None = None
    layout: Layout | None = None
    themes: Themes | None = None


# --- feature-flags ---


class BetaFlags(FlagSection):
    new_dashboard: StrictBool = False
    advanced_reports: StrictBool = False
    ai_assistant: StrictBool = False


class ExperimentalFlags(FlagSection):
    dark_mode_v2: StrictBool = False
    real_time_sync: StrictBool = False
    voice_commands: StrictBool = False


class ModuleFlags(FlagSection):
    invoicing: StrictBool = False
    time_tracking: StrictBool = False
    client_management: StrictBool = False
    analytics: StrictBool = False
    integrations: StrictBool = False


class FeatureSet(DocumentModel):
    beta: BetaFlags = Field(default_factory=BetaFlags)
    experimental: ExperimentalFlags = Field(default_factory=ExperimentalFlags)
    modules: ModuleFlags = Field(default_factory=ModuleFlags)


class Permissions(FlagSection):
    can_export_data: StrictBool = False
    can_modify_settings: StrictBool = False
    can_access_beta_features: StrictBool = False


class FeatureFlags(DocumentModel):
    """feature-flags: module toggles, beta/experimental features, permissions."""

    features: FeatureSet = Field(default_factory=FeatureSet)
    permissions: Permissions = Field(default_factory=Permissions)


ConfigDocument = AppConfig | BusinessProfile | UiConfig | FeatureFlags

DOCUMENT_MODELS: dict[Domain, type[DocumentModel]] = {
    Domain.APP: AppConfig,
    Domain.BUSINESS: BusinessProfile,
    Domain.UI: UiConfig,
    Domain.FEATURE_FLAGS: FeatureFlags,
}


def document_to_dict(document: DocumentModel) -> dict[str, Any]:
    """JSON-ready dict using the source (camelCase) keys."""
    return document.model_dump(mode="json", by_alias=True)


def changed_sections(previous: DocumentModel | None, current: DocumentModel) -> list[str]:
    """Top-level source keys whose values differ between two documents of the same domain."""
    new = document_to_dict(current)
    if previous is None:
        return sorted(new)
    old = document_to_dict(previous)
    keys = set(old) | set(new)
    return sorted(k for k in keys if old.get(k) != new.get(k))
