"""
SourceWatcher: detect that a domain's raw source may have changed.

- Push: watchdog observer on the source directory, events mapped back to domains.
- Poll: fixed-interval version-marker comparison against a baseline (loaded versions when provided, else markers at start)
  (the loaded snapshot versions when the engine provides them).
- Both debounce per domain with a settle delay so half-written files are not read.
- Strategy is chosen once at start; a push failure falls back to polling for good.
"""

from __future__ import annotations

import os
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from liveconf.domains import ALL_DOMAINS, Domain
from liveconf.errors import SourceMissing, WatchRegistrationFailure
from liveconf.events import ChangeEvent

logger = structlog.get_logger(__name__)

EmitFn = Callable[[ChangeEvent], None]
FailureFn = Callable[[WatchRegistrationFailure], None]
# Version a domain is known to be at (e.g. the loaded snapshot), None when unknown
BaselineFn = Callable[[Domain], int | None]


class _Debouncer:
    """Emit one ChangeEvent per domain once it has been quiet for `delay` seconds."""

    def __init__(self, delay: float, emit: EmitFn, on_tick: Callable[[], None] | None = None):
        self.delay = max(0.0, delay)
        self._emit = emit
        self._on_tick = on_tick
        self._pending: dict[Domain, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="liveconf-settle", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)
        with self._lock:
            self._pending.clear()

    def notify(self, domain: Domain) -> None:
        if self._stop.is_set():
            return
        if self.delay == 0:
            self._emit(ChangeEvent(domain))
            return
        with self._lock:
            # Restart the quiet period on every notification
            self._pending[domain] = time.monotonic()

    def flush(self, now: float | None = None) -> list[ChangeEvent]:
        """Emit events for domains whose settle delay has elapsed."""
        now = time.monotonic() if now is None else now
        with self._lock:
            due = [d for d, seen in self._pending.items() if now - seen >= self.delay]
            for d in due:
                del self._pending[d]
        events = [ChangeEvent(d) for d in due]
        for event in events:
            self._emit(event)
        return events

    def _run(self) -> None:
        tick = min(max(self.delay / 5, 0.01), 0.1)
        while not self._stop.wait(tick):
            try:
                self.flush()
                if self._on_tick is not None:
                    self._on_tick()
            except Exception:
                logger.exception("settle_flush_failed")


class WatchStrategy(ABC):
    """Produces ChangeEvents until stopped."""

    name: str = ""

    @abstractmethod
    def start(self, emit: EmitFn) -> None:
        ...

    @abstractmethod
    def stop(self, timeout: float | None = None) -> None:
        ...


class _SourceEventHandler(FileSystemEventHandler):
    """Forward file (not directory) create/modify/move events as entry names."""

    def __init__(self, notify: Callable[[str], None]):
        super().__init__()
        self._notify = notify

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors and atomic writers replace the file via rename; the target is what changed
        self._forward(event, event.dest_path)

    def _forward(self, event: FileSystemEvent, path: str | bytes) -> None:
        if event.is_directory:
            return
        self._notify(os.path.basename(os.fsdecode(path)))


class PushWatchStrategy(WatchStrategy):
    """OS change notifications (inotify, FSEvents, ...) via watchdog."""

    name = "push"

    def __init__(
        self,
        source,
        settle_delay: float = 0.5,
        on_failure: FailureFn | None = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.source = source
        self.settle_delay = settle_delay
        self._on_failure = on_failure
        self._observer_factory = observer_factory
        self._observer = None
        self._debouncer: _Debouncer | None = None
        self._stopping = threading.Event()
        self._failed = False

    def start(self, emit: EmitFn) -> None:
        location = Path(self.source.location)
        if not location.is_dir():
            raise WatchRegistrationFailure(f"watch location not found: {location}")
        observer = self._observer_factory()
        try:
            observer.schedule(_SourceEventHandler(self.notify), str(location), recursive=False)
            observer.start()
        except Exception as e:
            raise WatchRegistrationFailure(f"cannot watch {location}: {e}") from e
        self._observer = observer
        self._debouncer = _Debouncer(self.settle_delay, emit, on_tick=self._check_observer)
        self._debouncer.start()
        logger.info("push_watch_started", location=str(location.resolve()), settle_s=self.settle_delay)

    def notify(self, name: str) -> None:
        """Handle one native notification for entry `name`."""
        domain = self.source.domain_for(name)
        if domain is None:
            logger.debug("watch_event_ignored", name=name)
            return
        if self._debouncer is None:
            return
        logger.debug("watch_event", domain=domain.value, name=name)
        self._debouncer.notify(domain)

    def _check_observer(self) -> None:
        if self._stopping.is_set() or self._failed:
            return
        observer = self._observer
        if observer is not None and not observer.is_alive():
            self._failed = True
            logger.error("push_watch_observer_died", location=str(self.source.location))
            if self._on_failure is not None:
                self._on_failure(WatchRegistrationFailure("watch observer thread exited"))

    def stop(self, timeout: float | None = None) -> None:
        self._stopping.set()
        observer = self._observer
        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread() and observer.is_alive():
                observer.join(timeout)
        if self._debouncer is not None:
            self._debouncer.stop(timeout)
        logger.info("push_watch_stopped")


class PollWatchStrategy(WatchStrategy):
    """Compare each domain's version marker every `interval` seconds."""

    name = "poll"

    def __init__(
        self,
        source,
        domains: Iterable[Domain] = ALL_DOMAINS,
        interval: float = 5.0,
        settle_delay: float = 0.0,
        baseline: BaselineFn | None = None,
    ):
        self.source = source
        self.domains = tuple(domains)
        self.interval = interval
        self.settle_delay = settle_delay
        self.baseline = baseline
        # Owned by the poll thread (and check() callers in tests); never shared
        self._last_seen: dict[Domain, int | None] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._debouncer: _Debouncer | None = None

    def _observe(self, domain: Domain) -> int | None:
        try:
            return self.source.version_marker(domain)
        except SourceMissing:
            return None

    def start(self, emit: EmitFn) -> None:
        if self._thread is not None:
            return
        self._debouncer = _Debouncer(self.settle_delay, emit)
        for domain in self.domains:
            # With a baseline provider, a change made before this start is still seen as a change
            self._last_seen[domain] = self.baseline(domain) if self.baseline is not None else self._observe(domain)
        if self.settle_delay > 0:
            self._debouncer.start()
        self._thread = threading.Thread(target=self._run, name="liveconf-poll", daemon=True)
        self._thread.start()
        logger.info("poll_watch_started", interval_s=self.interval, settle_s=self.settle_delay)

    def check(self) -> list[Domain]:
        """Run one poll cycle. Returns the domains whose marker moved."""
        changed = []
        for domain in self.domains:
            if self._stop.is_set():
                break
            current = self._observe(domain)
            if domain not in self._last_seen:
                self._last_seen[domain] = current
                continue
            if current != self._last_seen[domain]:
                logger.info("poll_change_detected", domain=domain.value, previous=self._last_seen[domain], current=current)
                self._last_seen[domain] = current
                changed.append(domain)
                if self._debouncer is not None:
                    self._debouncer.notify(domain)
        return changed

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.check()
            except Exception:
                logger.exception("poll_cycle_failed")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)
        if self._debouncer is not None:
            self._debouncer.stop(timeout)
        logger.info("poll_watch_stopped")


class SourceWatcher:
    """
    Owns the active watch strategy.

    strategy="auto" tries push and falls back to poll; "poll" polls from the start.
    Once polling, the watcher never returns to push.
    """

    def __init__(
        self,
        source,
        emit: EmitFn,
        *,
        domains: Iterable[Domain] = ALL_DOMAINS,
        strategy: str = "auto",
        poll_interval: float = 5.0,
        settle_delay: float = 0.5,
        push_factory: Callable[..., WatchStrategy] = PushWatchStrategy,
        baseline: BaselineFn | None = None,
    ):
        if strategy not in ("auto", "poll"):
            raise ValueError(f"strategy must be 'auto' or 'poll', got {strategy!r}")
        self.source = source
        self.domains = tuple(domains)
        self.requested = strategy
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self._emit = emit
        self._push_factory = push_factory
        self._baseline = baseline
        self._active: WatchStrategy | None = None
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def active(self) -> WatchStrategy | None:
        return self._active

    @property
    def strategy_name(self) -> str | None:
        return self._active.name if self._active is not None else None

    def start(self) -> None:
        with self._lock:
            if self._active is not None or self._stopped:
                return
            if self.requested == "poll":
                self._start_poll()
                return
            push = self._push_factory(self.source, settle_delay=self.settle_delay, on_failure=self._on_push_failure)
            try:
                push.start(self._forward)
            except WatchRegistrationFailure as e:
                logger.warning("watch_fallback_to_polling", reason=str(e))
                self._start_poll()
            else:
                self._active = push

    def _start_poll(self) -> None:
        poll = PollWatchStrategy(
            self.source,
            self.domains,
            interval=self.poll_interval,
            settle_delay=self.settle_delay,
            baseline=self._baseline,
        )
        poll.start(self._forward)
        self._active = poll

    def _on_push_failure(self, exc: WatchRegistrationFailure) -> None:
        with self._lock:
            failed = self._active
            if self._stopped or failed is None or failed.name != "push":
                return
            logger.warning("watch_fallback_to_polling", reason=str(exc))
            self._start_poll()
        failed.stop()

    def _forward(self, event: ChangeEvent) -> None:
        if not self._stopped:
            self._emit(event)

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            self._stopped = True
            active = self._active
        if active is not None:
            active.stop(timeout)
