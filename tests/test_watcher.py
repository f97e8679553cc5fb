"""Tests for watch strategies: polling baseline and detection, push event mapping, settle debounce, fallback."""

import time
from unittest.mock import MagicMock

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from liveconf.domains import ALL_DOMAINS, Domain
from liveconf.errors import WatchRegistrationFailure
from liveconf.events import ChangeEvent
from liveconf.watcher import (
    PollWatchStrategy,
    PushWatchStrategy,
    SourceWatcher,
    WatchStrategy,
    _Debouncer,
    _SourceEventHandler,
)

from conftest import BASE_VERSION, ONE_SECOND


class _FakePush(WatchStrategy):
    """Push strategy stand-in: records calls, optionally refuses to start."""

    name = "push"

    def __init__(self, source, settle_delay=0.5, on_failure=None, fail=False):
        self.source = source
        self.on_failure = on_failure
        self.fail = fail
        self.stopped = False
        self.emit = None

    def start(self, emit):
        if self.fail:
            raise WatchRegistrationFailure("no inotify here")
        self.emit = emit

    def stop(self, timeout=None):
        self.stopped = True


@pytest.fixture
def poller(source):
    """Started PollWatchStrategy whose thread never fires on its own; drive it with check()."""
    events = []
    p = PollWatchStrategy(source, interval=3600, settle_delay=0)
    p.start(events.append)
    p.events = events
    yield p
    p.stop(1)


# --- polling ---


def test_poll_first_observation_is_baseline(poller):
    assert poller.check() == []
    assert poller.events == []


def test_poll_detects_single_change(poller, config_dir, write_doc):
    write_doc(config_dir, Domain.UI, {"preferences": {"theme": "light"}})
    assert poller.check() == [Domain.UI]
    assert [e.domain for e in poller.events] == [Domain.UI]
    assert poller.check() == []
    assert len(poller.events) == 1


def test_poll_detects_deletion_and_recreation(poller, config_dir, write_doc):
    (config_dir / "app-config.json").unlink()
    assert poller.check() == [Domain.APP]
    assert poller.check() == []
    write_doc(config_dir, Domain.APP, {"system": {"projectName": "Back"}})
    assert poller.check() == [Domain.APP]


def test_poll_settle_delay_coalesces_bursts(source, config_dir, write_doc):
    events = []
    p = PollWatchStrategy(source, interval=3600, settle_delay=5)
    p.start(events.append)
    try:
        write_doc(config_dir, Domain.BUSINESS, {"owner": {"name": "A"}})
        p.check()
        write_doc(config_dir, Domain.BUSINESS, {"owner": {"name": "B"}})
        p.check()
        assert events == []
        flushed = p._debouncer.flush(now=time.monotonic() + 10)
        assert [e.domain for e in flushed] == [Domain.BUSINESS]
        assert len(events) == 1
    finally:
        p.stop(1)


def test_poll_baseline_matching_loaded_versions_is_quiet(source):
    versions = {d: source.version_marker(d) for d in ALL_DOMAINS}
    p = PollWatchStrategy(source, interval=3600, baseline=versions.get)
    p.start(lambda e: None)
    try:
        assert p.check() == []
    finally:
        p.stop(1)


def test_poll_baseline_older_than_file_reports_change(source):
    loaded = {d: BASE_VERSION for d in ALL_DOMAINS}
    loaded[Domain.UI] = BASE_VERSION - ONE_SECOND
    events = []
    p = PollWatchStrategy(source, interval=3600, baseline=loaded.get)
    p.start(events.append)
    try:
        assert p.check() == [Domain.UI]
        assert [e.domain for e in events] == [Domain.UI]
    finally:
        p.stop(1)


def test_poll_thread_detects_change(source, config_dir, write_doc, wait_for):
    events = []
    p = PollWatchStrategy(source, interval=0.02, settle_delay=0)
    p.start(events.append)
    try:
        write_doc(config_dir, Domain.FEATURE_FLAGS, {"features": {"modules": {"analytics": True}}})
        assert wait_for(lambda: any(e.domain is Domain.FEATURE_FLAGS for e in events))
    finally:
        p.stop(1)


# --- settle debounce ---


def test_debouncer_waits_for_quiet_period():
    events = []
    d = _Debouncer(0.5, events.append)
    d.notify(Domain.UI)
    d.notify(Domain.UI)
    assert d.flush(now=time.monotonic()) == []
    flushed = d.flush(now=time.monotonic() + 1)
    assert [e.domain for e in flushed] == [Domain.UI]
    assert d.flush(now=time.monotonic() + 2) == []
    assert len(events) == 1


def test_debouncer_zero_delay_emits_immediately():
    events = []
    d = _Debouncer(0, events.append)
    d.notify(Domain.APP)
    assert len(events) == 1
    assert isinstance(events[0], ChangeEvent)


def test_debouncer_ignores_notify_after_stop():
    events = []
    d = _Debouncer(0, events.append)
    d.stop()
    d.notify(Domain.APP)
    assert events == []


# --- push ---


def test_event_handler_forwards_file_basenames(tmp_path):
    names = []
    handler = _SourceEventHandler(names.append)
    handler.dispatch(FileModifiedEvent(str(tmp_path / "ui-config.json")))
    handler.dispatch(FileCreatedEvent(str(tmp_path / "app-config.json")))
    handler.dispatch(FileMovedEvent(str(tmp_path / ".ui-config.json.swp"), str(tmp_path / "feature-flags.json")))
    handler.dispatch(DirModifiedEvent(str(tmp_path)))
    assert names == ["ui-config.json", "app-config.json", "feature-flags.json"]


def test_push_notify_maps_names_to_domains(source):
    events = []
    push = PushWatchStrategy(source, settle_delay=0, observer_factory=MagicMock)
    push.start(events.append)
    try:
        push.notify("ui-config.json")
        push.notify("notes.txt")
        assert [e.domain for e in events] == [Domain.UI]
    finally:
        push.stop(1)


def test_push_start_missing_directory(tmp_path):
    from liveconf.sources import FileSource

    push = PushWatchStrategy(FileSource(tmp_path / "nope"), observer_factory=MagicMock)
    with pytest.raises(WatchRegistrationFailure):
        push.start(lambda e: None)


def test_push_start_schedule_failure(source):
    observer = MagicMock()
    observer.schedule.side_effect = OSError("inotify watch limit reached")
    push = PushWatchStrategy(source, observer_factory=lambda: observer)
    with pytest.raises(WatchRegistrationFailure):
        push.start(lambda e: None)


def test_push_observer_death_reports_failure_once(source, wait_for):
    observer = MagicMock()
    observer.is_alive.return_value = False
    failures = []
    push = PushWatchStrategy(source, settle_delay=0.05, on_failure=failures.append, observer_factory=lambda: observer)
    push.start(lambda e: None)
    try:
        assert wait_for(lambda: failures)
        time.sleep(0.1)
        assert len(failures) == 1
        assert isinstance(failures[0], WatchRegistrationFailure)
    finally:
        push.stop(1)


# --- SourceWatcher ---


def test_source_watcher_rejects_unknown_strategy(source):
    with pytest.raises(ValueError):
        SourceWatcher(source, lambda e: None, strategy="inotify")


def test_source_watcher_poll_strategy(source):
    w = SourceWatcher(source, lambda e: None, strategy="poll", poll_interval=3600)
    w.start()
    try:
        assert w.strategy_name == "poll"
    finally:
        w.stop(1)


def test_source_watcher_prefers_push(source):
    w = SourceWatcher(source, lambda e: None, push_factory=_FakePush, poll_interval=3600)
    w.start()
    try:
        assert w.strategy_name == "push"
    finally:
        w.stop(1)
    assert w.active.stopped


def test_source_watcher_falls_back_when_push_unavailable(source):
    factory = lambda src, **kw: _FakePush(src, fail=True, **kw)  # noqa: E731
    w = SourceWatcher(source, lambda e: None, push_factory=factory, poll_interval=3600)
    w.start()
    try:
        assert w.strategy_name == "poll"
    finally:
        w.stop(1)


def test_source_watcher_push_failure_switches_to_poll_for_good(source):
    w = SourceWatcher(source, lambda e: None, push_factory=_FakePush, poll_interval=3600)
    w.start()
    push = w.active
    try:
        push.on_failure(WatchRegistrationFailure("observer died"))
        assert w.strategy_name == "poll"
        assert push.stopped
        # A late second failure report from the old strategy changes nothing
        poll = w.active
        push.on_failure(WatchRegistrationFailure("again"))
        assert w.active is poll
    finally:
        w.stop(1)


def test_source_watcher_forwards_events_until_stopped(source):
    received = []
    w = SourceWatcher(source, received.append, push_factory=_FakePush, poll_interval=3600)
    w.start()
    push = w.active
    push.emit(ChangeEvent(Domain.APP))
    w.stop(1)
    push.emit(ChangeEvent(Domain.UI))
    assert [e.domain for e in received] == [Domain.APP]


def test_source_watcher_detects_real_file_change(source, config_dir, write_doc, wait_for):
    """Whichever strategy the platform allows, a rewritten file yields an event for its domain."""
    received = []
    w = SourceWatcher(source, received.append, settle_delay=0.05, poll_interval=0.05)
    w.start()
    try:
        assert w.strategy_name in ("push", "poll")
        write_doc(config_dir, Domain.UI, {"preferences": {"theme": "solarized"}})
        assert wait_for(lambda: any(e.domain is Domain.UI for e in received))
    finally:
        w.stop(1)


def test_fallback_poll_sees_edits_made_while_push_was_dying(source, config_dir, write_doc):
    loaded = {d: source.version_marker(d) for d in ALL_DOMAINS}
    w = SourceWatcher(source, lambda e: None, push_factory=_FakePush, poll_interval=3600, baseline=loaded.get)
    w.start()
    push = w.active
    try:
        write_doc(config_dir, Domain.UI, {"preferences": {"theme": "light"}})
        push.on_failure(WatchRegistrationFailure("observer died"))
        assert w.strategy_name == "poll"
        assert w.active.check() == [Domain.UI]
    finally:
        w.stop(1)
