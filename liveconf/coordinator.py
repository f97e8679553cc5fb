"""
ReloadCoordinator: turn ChangeEvents into snapshot replacements.

Per domain: Idle -> Reloading -> Idle. At most one pass is in flight per
domain. Events arriving during a pass are coalesced into a single follow-up
pass, which picks up whatever the source holds by then.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Iterable

import structlog

from liveconf.broadcaster import ChangeBroadcaster
from liveconf.documents import DocumentModel, changed_sections
from liveconf.domains import ALL_DOMAINS, Domain
from liveconf.errors import ConfigSourceError, SourceMissing
from liveconf.events import ChangeEvent, ReloadOutcome, ReloadStatus
from liveconf.loader import ConfigLoader
from liveconf.sources import SourceAccessor
from liveconf.store import Snapshot, SnapshotStore

logger = structlog.get_logger(__name__)


class DomainState(str, Enum):
    IDLE = "idle"
    RELOADING = "reloading"


class ReloadCoordinator:
    """Serializes reloads per domain and publishes successful ones."""

    def __init__(
        self,
        store: SnapshotStore,
        loader: ConfigLoader,
        source: SourceAccessor,
        broadcaster: ChangeBroadcaster | None = None,
        domains: Iterable[Domain] = ALL_DOMAINS,
    ):
        self.store = store
        self.loader = loader
        self.source = source
        self.broadcaster = broadcaster
        self.domains = tuple(domains)
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._states: dict[Domain, DomainState] = {d: DomainState.IDLE for d in self.domains}
        self._rerun: set[Domain] = set()
        self._last: dict[Domain, ReloadOutcome] = {}

    def state(self, domain: Domain) -> DomainState:
        with self._lock:
            return self._states[domain]

    def fetch(self, domain: Domain) -> tuple[DocumentModel, int]:
        """Read version marker then bytes, and parse. Raises SourceMissing / ParseError."""
        if not self.source.exists(domain):
            raise SourceMissing(domain, "source not found")
        version = self.source.version_marker(domain)
        document = self.loader.load(domain, self.source.read(domain))
        return document, version

    def bootstrap(self) -> None:
        """Startup path: load and initialize every domain. Any failure propagates."""
        for domain in self.domains:
            document, version = self.fetch(domain)
            self.store.initialize(domain, Snapshot(document=document, source_version=version))
            logger.info("config_loaded", domain=domain.value, version=version)

    def handle(self, event: ChangeEvent, wait: bool = False) -> ReloadOutcome:
        """
        Process one ChangeEvent.

        Args:
            event: The (possibly spurious) change signal.
            wait: When the domain is already reloading, block until it is idle
                and return that pass's outcome instead of a coalesced one.

        Returns:
            ReloadOutcome for this pass (reloaded, stale, failed, or coalesced).
        """
        domain = event.domain
        with self._lock:
            if self._states[domain] is DomainState.RELOADING:
                self._rerun.add(domain)
                logger.debug("reload_coalesced", domain=domain.value, forced=event.forced)
                if not wait:
                    return ReloadOutcome(domain, ReloadStatus.COALESCED, previous=self.store.get(domain))
                while self._states[domain] is DomainState.RELOADING:
                    self._idle.wait()
                return self._last.get(domain) or ReloadOutcome(
                    domain, ReloadStatus.COALESCED, previous=self.store.get(domain)
                )
            self._states[domain] = DomainState.RELOADING

        outcome = None
        try:
            while True:
                outcome = self._reload_once(event)
                with self._lock:
                    if domain not in self._rerun:
                        break
                    self._rerun.discard(domain)
                logger.debug("reload_rerun", domain=domain.value)
        finally:
            with self._lock:
                self._states[domain] = DomainState.IDLE
                if outcome is not None:
                    self._last[domain] = outcome
                self._idle.notify_all()
        return outcome

    def _reload_once(self, event: ChangeEvent) -> ReloadOutcome:
        domain = event.domain
        current = self.store.get(domain)
        logger.info("reload_started", domain=domain.value, forced=event.forced)
        try:
            document, version = self.fetch(domain)
        except ConfigSourceError as e:
            logger.error("reload_failed", domain=domain.value, error_type=type(e).__name__, reason=e.reason)
            return ReloadOutcome(domain, ReloadStatus.FAILED, previous=current, error=e)
        except Exception as e:
            logger.exception("reload_failed_unexpectedly", domain=domain.value)
            return ReloadOutcome(domain, ReloadStatus.FAILED, previous=current, error=ConfigSourceError(domain, str(e)))

        if current is not None and version <= current.source_version:
            logger.info("reload_stale", domain=domain.value, version=version, current_version=current.source_version)
            return ReloadOutcome(domain, ReloadStatus.STALE, previous=current)

        snapshot = Snapshot(document=document, source_version=version)
        if current is None:
            self.store.initialize(domain, snapshot)
            previous = None
        else:
            previous = self.store.publish(domain, snapshot)
        changes = tuple(changed_sections(previous.document if previous else None, document))
        logger.info("snapshot_published", domain=domain.value, version=version, changes=list(changes))
        outcome = ReloadOutcome(domain, ReloadStatus.RELOADED, previous=previous, current=snapshot, changes=changes)
        # Announce while the domain is still Reloading so announcements keep publish order
        if self.broadcaster is not None:
            self.broadcaster.announce(outcome)
        return outcome
