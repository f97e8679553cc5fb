"""
SnapshotStore: current and previous snapshot per domain.

Copy-on-write slot table. Writers serialize on a lock and rebind the whole
table in one assignment; readers take a single reference and never lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, NamedTuple

from liveconf.documents import DocumentModel
from liveconf.domains import Domain
from liveconf.errors import AlreadyInitialized, NotInitialized


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Snapshot:
    """Immutable parsed document plus the source version it was read at."""

    document: DocumentModel
    source_version: int
    loaded_at: datetime = field(default_factory=utcnow)


class _Slot(NamedTuple):
    current: Snapshot
    previous: Snapshot | None
    # True between initialize() and the first publish()
    fresh: bool


class SnapshotStore:
    """Per-domain snapshot holder with atomic replace-and-publish."""

    def __init__(self) -> None:
        self._slots: dict[Domain, _Slot] = {}
        self._write_lock = threading.Lock()

    def initialize(self, domain: Domain, snapshot: Snapshot) -> None:
        """Install the startup snapshot for a domain."""
        with self._write_lock:
            slot = self._slots.get(domain)
            if slot is not None and slot.fresh:
                raise AlreadyInitialized(f"{domain.value} already initialized")
            previous = slot.current if slot is not None else None
            self._slots = {**self._slots, domain: _Slot(snapshot, previous, True)}

    def publish(self, domain: Domain, snapshot: Snapshot) -> Snapshot:
        """Replace the current snapshot; the old one moves to the previous slot. Returns the old one."""
        with self._write_lock:
            slot = self._slots.get(domain)
            if slot is None:
                raise NotInitialized(f"{domain.value} has no snapshot to replace")
            self._slots = {**self._slots, domain: _Slot(snapshot, slot.current, False)}
            return slot.current

    def read(self, domain: Domain) -> Snapshot:
        slot = self._slots.get(domain)
        if slot is None:
            raise NotInitialized(f"{domain.value} not loaded yet")
        return slot.current

    def previous(self, domain: Domain) -> Snapshot | None:
        slot = self._slots.get(domain)
        return slot.previous if slot is not None else None

    def get(self, domain: Domain) -> Snapshot | None:
        slot = self._slots.get(domain)
        return slot.current if slot is not None else None

    def domains(self) -> list[Domain]:
        return list(self._slots)

    def is_ready(self, domains: Iterable[Domain]) -> bool:
        slots = self._slots
        return all(d in slots for d in domains)
