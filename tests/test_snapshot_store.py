"""Tests for SnapshotStore: initialize/publish/read semantics and reader consistency."""

import threading

import pytest

from liveconf.documents import UiConfig
from liveconf.domains import Domain
from liveconf.errors import AlreadyInitialized, NotInitialized
from liveconf.store import Snapshot, SnapshotStore


def _snap(version: int, theme: str = "light") -> Snapshot:
    return Snapshot(document=UiConfig.model_validate({"preferences": {"theme": theme}}), source_version=version)


def test_read_before_initialize():
    store = SnapshotStore()
    with pytest.raises(NotInitialized):
        store.read(Domain.UI)
    assert store.get(Domain.UI) is None
    assert store.previous(Domain.UI) is None


def test_initialize_then_read():
    store = SnapshotStore()
    s = _snap(1)
    store.initialize(Domain.UI, s)
    assert store.read(Domain.UI) is s
    assert store.previous(Domain.UI) is None
    assert store.domains() == [Domain.UI]


def test_initialize_twice_fails():
    store = SnapshotStore()
    store.initialize(Domain.UI, _snap(1))
    with pytest.raises(AlreadyInitialized):
        store.initialize(Domain.UI, _snap(2))


def test_publish_moves_current_to_previous():
    store = SnapshotStore()
    first, second = _snap(1), _snap(2, "dark")
    store.initialize(Domain.UI, first)
    old = store.publish(Domain.UI, second)
    assert old is first
    assert store.read(Domain.UI) is second
    assert store.previous(Domain.UI) is first


def test_publish_without_initialize():
    with pytest.raises(NotInitialized):
        SnapshotStore().publish(Domain.APP, _snap(1))


def test_initialize_allowed_after_publish():
    store = SnapshotStore()
    store.initialize(Domain.UI, _snap(1))
    store.publish(Domain.UI, _snap(2))
    store.initialize(Domain.UI, _snap(3))
    assert store.read(Domain.UI).source_version == 3
    assert store.previous(Domain.UI).source_version == 2


def test_domains_are_independent():
    store = SnapshotStore()
    store.initialize(Domain.UI, _snap(1))
    assert not store.is_ready([Domain.UI, Domain.APP])
    store.initialize(Domain.APP, _snap(5))
    assert store.is_ready([Domain.UI, Domain.APP])
    store.publish(Domain.UI, _snap(2))
    assert store.read(Domain.APP).source_version == 5


def test_snapshot_is_frozen():
    s = _snap(1)
    with pytest.raises(Exception):
        s.source_version = 2


def test_readers_see_whole_snapshots_during_publishes():
    """Concurrent readers only ever observe a snapshot whose version matches its document."""
    store = SnapshotStore()
    store.initialize(Domain.UI, _snap(0, "t0"))
    stop = threading.Event()
    bad = []

    def reader():
        while not stop.is_set():
            s = store.read(Domain.UI)
            if s.document.preferences.theme != f"t{s.source_version}":
                bad.append(s)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    for v in range(1, 300):
        store.publish(Domain.UI, _snap(v, f"t{v}"))
    stop.set()
    for t in readers:
        t.join(5)
    assert bad == []
    assert store.read(Domain.UI).source_version == 299
    assert store.previous(Domain.UI).source_version == 298
