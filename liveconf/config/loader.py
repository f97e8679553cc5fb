"""
Settings loader: YAML loading, env variable injection, Pydantic validation.

- Engine settings from $CONFIG_DIR/liveconf.yaml (CONFIG_DIR defaults to 'config').
- Environment variable injection: ${ENV_VAR} replacement in YAML values.
- LIVECONF_* env vars override individual fields.
- Missing liveconf.yaml means defaults, with config_dir pointing at CONFIG_DIR.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from liveconf.config.schemas import EngineSettings

SETTINGS_FILENAME = "liveconf.yaml"

# env var -> settings field
_ENV_OVERRIDES = {
    "LIVECONF_WATCH_STRATEGY": "watch_strategy",
    "LIVECONF_REDIS_URL": "redis_url",
    "LIVECONF_LOG_LEVEL": "log_level",
}

_settings: EngineSettings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings (for tests). Next get_settings() will reload from file and env."""
    global _settings
    _settings = None


def _substitute_env(value: Any) -> Any:
    """Replace ${VAR} and $VAR in strings; recurse into dict/list."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

        def repl(m: re.Match[str]) -> str:
            name = m.group(1) or m.group(2) or ""
            return os.environ.get(name, m.group(0))

        return pattern.sub(repl, value)
    if isinstance(value, dict):
        return {k: _substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v) for v in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict with env substitution."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return _substitute_env(data)


def _config_dir() -> Path:
    return Path(os.environ.get("CONFIG_DIR", "config"))


def _settings_path() -> Path:
    """Path to liveconf.yaml; CONFIG_DIR env or default 'config'."""
    return _config_dir().resolve() / SETTINGS_FILENAME


def load_settings(path: Path | None = None) -> EngineSettings:
    """
    Load and validate engine settings.

    Args:
        path: Settings file (default $CONFIG_DIR/liveconf.yaml).

    Returns:
        Validated EngineSettings.

    Raises:
        ValidationError: If a value is out of range or of the wrong type.
    """
    path = path or _settings_path()
    data = _load_yaml(path)
    data.setdefault("config_dir", str(path.parent))
    for env_name, field in _ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            data[field] = os.environ[env_name]
    return EngineSettings.model_validate(data)


def get_settings() -> EngineSettings:
    """Return engine settings; loaded once per process (reset_settings_cache() to reload)."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
