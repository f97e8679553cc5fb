"""Values passed between watcher, coordinator, and broadcaster."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from liveconf.domains import Domain
from liveconf.errors import ConfigSourceError
from liveconf.store import Snapshot, utcnow


@dataclass(frozen=True)
class ChangeEvent:
    """The source for a domain may have changed. May be spurious."""

    domain: Domain
    detected_at: datetime = field(default_factory=utcnow)
    forced: bool = False


class ReloadStatus(str, Enum):
    RELOADED = "reloaded"
    STALE = "stale"
    FAILED = "failed"
    COALESCED = "coalesced"


@dataclass(frozen=True)
class ReloadOutcome:
    """Result of one reload attempt for one domain."""

    domain: Domain
    status: ReloadStatus
    previous: Snapshot | None = None
    current: Snapshot | None = None
    error: ConfigSourceError | None = None
    changes: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is not ReloadStatus.FAILED

    def to_dict(self) -> dict:
        """Per-domain status for admin reports."""
        snap = self.current or self.previous
        return {
            "status": self.status.value,
            "version": snap.source_version if snap else None,
            "error": self.error.reason if self.error else None,
            "changes": list(self.changes),
        }
