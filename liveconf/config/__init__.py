"""Engine settings loading and logging setup."""

from liveconf.config.loader import get_settings, reset_settings_cache

__all__ = ["get_settings", "reset_settings_cache"]
