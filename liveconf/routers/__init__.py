"""API routers for liveconf. Mounted in main app; config routes live under /api/config."""

from liveconf.routers import config, health

__all__ = ["config", "health"]
