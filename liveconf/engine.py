"""
ConfigEngine: wires store, loader, watcher, coordinator, and broadcaster.

Threads:
- watcher (watchdog observer + settle thread, or poll thread) -> bounded event queue
- dispatcher: queue -> reload worker pool (ReloadCoordinator.handle), one event per free worker
- notify: broadcaster outbox -> external channel
Readers call get_snapshot()/get_document() from any thread without locking.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable

import structlog

from liveconf.broadcaster import ChangeBroadcaster, Listener, NotificationChannel
from liveconf.config.schemas import EngineSettings
from liveconf.coordinator import ReloadCoordinator
from liveconf.documents import DocumentModel
from liveconf.domains import ALL_DOMAINS, Domain
from liveconf.events import ChangeEvent, ReloadOutcome
from liveconf.loader import ConfigLoader
from liveconf.sources import FileSource, SourceAccessor
from liveconf.store import Snapshot, SnapshotStore
from liveconf.watcher import PushWatchStrategy, SourceWatcher, WatchStrategy

logger = structlog.get_logger(__name__)

_DISPATCH_POLL_SECONDS = 0.2


class ConfigEngine:
    """Hot-reloading configuration service for a fixed set of domains."""

    def __init__(
        self,
        source: SourceAccessor,
        settings: EngineSettings | None = None,
        *,
        channel: NotificationChannel | None = None,
        store: SnapshotStore | None = None,
        domains: Iterable[Domain] = ALL_DOMAINS,
        push_factory: Callable[..., WatchStrategy] = PushWatchStrategy,
    ):
        self.settings = settings or EngineSettings()
        self.source = source
        self.domains = tuple(domains)
        self.store = store if store is not None else SnapshotStore()
        self.loader = ConfigLoader(self.settings.source_format)
        self.broadcaster = ChangeBroadcaster(channel, topic=self.settings.notification_topic)
        self.coordinator = ReloadCoordinator(self.store, self.loader, source, self.broadcaster, self.domains)
        self.watcher = SourceWatcher(
            source,
            self._enqueue,
            domains=self.domains,
            strategy=self.settings.watch_strategy,
            poll_interval=self.settings.poll_interval_seconds,
            settle_delay=self.settings.settle_delay_seconds,
            push_factory=push_factory,
            baseline=self._loaded_version,
        )
        self._events: queue.Queue[ChangeEvent] = queue.Queue(maxsize=self.settings.event_queue_size)
        self._pool: ThreadPoolExecutor | None = None
        # One permit per reload worker; the dispatcher takes an event off the queue only with a permit
        self._slots = threading.BoundedSemaphore(self.settings.reload_workers)
        self._dispatcher: threading.Thread | None = None
        self._shutdown = threading.Event()
        self._started = False

    # --- lifecycle ---

    def start(self) -> None:
        """Load every domain (fatal on failure), then start dispatching and watching."""
        if self._started:
            return
        logger.info("config_engine_starting", domains=[d.value for d in self.domains])
        self.coordinator.bootstrap()
        self._log_summary()
        self._pool = ThreadPoolExecutor(max_workers=self.settings.reload_workers, thread_name_prefix="liveconf-reload")
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="liveconf-dispatch", daemon=True)
        self._dispatcher.start()
        self.watcher.start()
        self._started = True
        logger.info("config_engine_started", watch=self.watcher.strategy_name)

    def stop(self, timeout: float | None = None) -> None:
        """
        Cooperative shutdown: release the watch, drop queued events, let in-flight
        reloads finish, then deliver already queued notifications.

        No reload starts once shutdown is requested.
        """
        if self._shutdown.is_set():
            return
        timeout = self.settings.shutdown_timeout_seconds if timeout is None else timeout
        self._shutdown.set()
        self.watcher.stop(timeout)
        if self._dispatcher is not None:
            self._dispatcher.join(timeout)
        dropped = 0
        while True:
            try:
                self._events.get_nowait()
                dropped += 1
            except queue.Empty:
                break
        if self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
        self.broadcaster.close(timeout)
        logger.info("config_engine_stopped", dropped_events=dropped)

    def __enter__(self) -> "ConfigEngine":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    # --- event flow ---

    def _enqueue(self, event: ChangeEvent) -> None:
        if self._shutdown.is_set():
            return
        try:
            self._events.put_nowait(event)
        except queue.Full:
            logger.warning("change_event_dropped", domain=event.domain.value, queue_size=self._events.maxsize)

    def _dispatch_loop(self) -> None:
        while not self._shutdown.is_set():
            if not self._slots.acquire(timeout=_DISPATCH_POLL_SECONDS):
                continue
            try:
                event = self._events.get(timeout=_DISPATCH_POLL_SECONDS)
            except queue.Empty:
                self._slots.release()
                continue
            if self._shutdown.is_set():
                self._slots.release()
                break
            try:
                future = self._pool.submit(self._handle_event, event)
            except RuntimeError:
                # Pool already shut down
                self._slots.release()
                break
            future.add_done_callback(self._reload_done)

    def _handle_event(self, event: ChangeEvent) -> ReloadOutcome | None:
        if self._shutdown.is_set():
            logger.info("reload_skipped_shutdown", domain=event.domain.value)
            return None
        return self.coordinator.handle(event)

    def _reload_done(self, future: Future) -> None:
        self._slots.release()
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("reload_task_failed", error_type=type(exc).__name__, error=str(exc), exc_info=exc)

    def force_reload_all(self) -> dict[Domain, ReloadOutcome]:
        """
        Administrative reload of every domain through the normal coordinator path.

        Returns after every domain finished its attempt. Failures are reported
        per domain in the result, never raised.
        """
        logger.info("force_reload_requested")
        events = [ChangeEvent(d, forced=True) for d in self.domains]
        if self._pool is None or self._shutdown.is_set():
            results = {e.domain: self.coordinator.handle(e, wait=True) for e in events}
        else:
            futures = {e.domain: self._pool.submit(self.coordinator.handle, e, True) for e in events}
            results = {d: f.result() for d, f in futures.items()}
        logger.info("force_reload_done", **{d.value: o.status.value for d, o in results.items()})
        return results

    # --- read path ---

    def get_snapshot(self, domain: Domain) -> Snapshot:
        return self.store.read(domain)

    def get_document(self, domain: Domain) -> DocumentModel:
        return self.store.read(domain).document

    def previous_snapshot(self, domain: Domain) -> Snapshot | None:
        return self.store.previous(domain)

    def is_ready(self) -> bool:
        return self.store.is_ready(self.domains)

    def subscribe(self, listener: Listener, domains: Iterable[Domain] | None = None) -> Callable[[], None]:
        return self.broadcaster.subscribe(listener, domains)

    @property
    def watch_strategy(self) -> str | None:
        return self.watcher.strategy_name

    def _loaded_version(self, domain: Domain) -> int | None:
        snapshot = self.store.get(domain)
        return snapshot.source_version if snapshot is not None else None

    def _log_summary(self) -> None:
        app = self.store.get(Domain.APP)
        business = self.store.get(Domain.BUSINESS)
        ui = self.store.get(Domain.UI)
        flags = self.store.get(Domain.FEATURE_FLAGS)
        summary: dict[str, Any] = {}
        if app is not None and app.document.system is not None:
            summary["project"] = app.document.system.project_name
            summary["version"] = app.document.system.version
            summary["environment"] = app.document.system.environment
        if business is not None and business.document.contacts and business.document.contacts.business:
            summary["company"] = business.document.contacts.business.company_name
        if ui is not None and ui.document.preferences is not None:
            summary["theme"] = ui.document.preferences.theme
        if flags is not None:
            modules = flags.document.features.modules
            summary["modules"] = sorted(name for name, on in modules.model_dump().items() if on)
        logger.info("config_summary", **summary)


def build_engine(settings: EngineSettings, channel: NotificationChannel | None = None) -> ConfigEngine:
    """Engine over the file source described by settings."""
    source = FileSource(settings.config_dir, fmt=settings.source_format)
    return ConfigEngine(source, settings, channel=channel)
