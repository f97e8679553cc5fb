"""
Error taxonomy for loading, storing, watching, and broadcasting configuration.

Stale reloads are not errors: they surface as ReloadStatus.STALE outcomes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from liveconf.domains import Domain


class LiveConfError(Exception):
    """Base class for all liveconf errors."""


class ConfigSourceError(LiveConfError):
    """A domain's raw source could not be turned into a document."""

    def __init__(self, domain: Domain, message: str):
        super().__init__(f"{domain.value}: {message}")
        self.domain = domain
        self.reason = message


class SourceMissing(ConfigSourceError):
    """The raw source for a domain cannot be located or read."""


class ParseError(ConfigSourceError):
    """The raw source cannot be decoded into the domain's document shape."""


class AlreadyInitialized(LiveConfError):
    """initialize() called again for a domain without an intervening publish."""


class NotInitialized(LiveConfError):
    """The domain has no snapshot yet."""


class WatchRegistrationFailure(LiveConfError):
    """The push watch primitive could not be registered (triggers polling)."""


class NotificationDeliveryFailure(LiveConfError):
    """An external notification channel could not be reached."""


class UnknownFeature(LiveConfError):
    """Feature key does not name a known flag."""
