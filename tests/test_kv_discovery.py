import queue
import threading

import pytest

from rpcmesh.discovery import KVPair
from rpcmesh.kv_discovery import (
    ConsulDiscovery,
    EtcdDiscovery,
    KeyNotFoundError,
    KVStore,
    StoreEntry,
)


class FakeStore(KVStore):
    def __init__(self, entries=None, list_error=None, watch_error=None):
        self.entries = entries or []
        self.list_error = list_error
        self.watch_error = watch_error
        self.listed = []
        self.watches = queue.Queue()
        self.watch_attempts = 0
        self.closed = threading.Event()

    def list(self, prefix):
        self.listed.append(prefix)
        if self.list_error is not None:
            raise self.list_error
        return list(self.entries)

    def watch_tree(self, prefix):
        self.watch_attempts += 1
        if self.watch_error is not None:
            raise self.watch_error
        q = queue.Queue()
        self.watches.put(q)
        return q

    def close(self):
        self.closed.set()


@pytest.fixture
def cleanup():
    made = []
    yield made
    for d in made:
        d.close()


def test_consul_normalizes_base_path_and_trims_keys(cleanup):
    store = FakeStore([StoreEntry("rpcx/Arith/tcp@127.0.0.1:8972", b"weight=10")])
    d = ConsulDiscovery("/rpcx/Arith/", store)
    cleanup.append(d)
    assert store.listed == ["rpcx/Arith"]
    assert d.get_services() == [KVPair("tcp@127.0.0.1:8972", "weight=10")]


def test_consul_missing_key_gives_no_services(cleanup):
    d = ConsulDiscovery("rpcx/Arith", FakeStore(list_error=KeyNotFoundError("missing")))
    cleanup.append(d)
    assert d.get_services() == []


def test_consul_other_list_error_raises():
    with pytest.raises(ConnectionError):
        ConsulDiscovery("rpcx/Arith", FakeStore(list_error=ConnectionError("down")))


def test_etcd_list_error_raises_even_if_missing():
    with pytest.raises(KeyNotFoundError):
        EtcdDiscovery("rpcx/Arith", FakeStore(list_error=KeyNotFoundError("missing")))


def test_etcd_keeps_leading_slash_and_strips_trailing(cleanup):
    store = FakeStore()
    d = EtcdDiscovery("/rpcx/Arith/", store)
    cleanup.append(d)
    assert store.listed == ["/rpcx/Arith"]


@pytest.mark.parametrize(
    "base, key",
    [
        ("/rpcx/Arith", "rpcx/Arith/tcp@127.0.0.1:8972"),
        ("rpcx/Arith", "/rpcx/Arith/tcp@127.0.0.1:8972"),
        ("/rpcx/Arith", "/rpcx/Arith/tcp@127.0.0.1:8972"),
        ("rpcx/Arith", "rpcx/Arith/tcp@127.0.0.1:8972"),
    ],
)
def test_etcd_prefix_matches_key_style(cleanup, base, key):
    d = EtcdDiscovery(base, FakeStore([StoreEntry(key, "")]))
    cleanup.append(d)
    assert [p.key for p in d.get_services()] == ["tcp@127.0.0.1:8972"]


@pytest.mark.parametrize("cls", [ConsulDiscovery, EtcdDiscovery])
def test_watch_updates_services_and_watchers(cleanup, cls):
    store = FakeStore()
    d = cls("rpcx/Arith", store)
    cleanup.append(d)
    ch = d.watch_service()
    changes = store.watches.get(timeout=2)
    changes.put([StoreEntry("rpcx/Arith/tcp@127.0.0.1:9000", b"group=a")])
    received = ch.get(timeout=2)
    assert received == [KVPair("tcp@127.0.0.1:9000", "group=a")]
    assert d.get_services() == received


def test_filter_applies_to_watched_changes(cleanup):
    store = FakeStore()
    d = EtcdDiscovery("rpcx/Arith", store)
    cleanup.append(d)
    d.set_filter(lambda pair: "group=a" in pair.value)
    ch = d.watch_service()
    changes = store.watches.get(timeout=2)
    changes.put([
        StoreEntry("rpcx/Arith/tcp@127.0.0.1:9000", "group=a"),
        StoreEntry("rpcx/Arith/tcp@127.0.0.1:9001", "group=b"),
    ])
    assert [p.key for p in ch.get(timeout=2)] == ["tcp@127.0.0.1:9000"]


def test_removed_watcher_gets_nothing(cleanup):
    store = FakeStore()
    d = ConsulDiscovery("rpcx/Arith", store)
    cleanup.append(d)
    kept = d.watch_service()
    removed = d.watch_service()
    d.remove_watcher(removed)
    store.watches.get(timeout=2).put([StoreEntry("rpcx/Arith/x", "")])
    assert kept.get(timeout=2) == [KVPair("x", "")]
    with pytest.raises(queue.Empty):
        removed.get(timeout=0.3)


def test_end_of_watch_rewatches(cleanup):
    store = FakeStore()
    d = EtcdDiscovery("rpcx/Arith", store)
    cleanup.append(d)
    store.watches.get(timeout=2).put(None)
    second = store.watches.get(timeout=2)
    ch = d.watch_service()
    second.put([StoreEntry("rpcx/Arith/y", "")])
    assert ch.get(timeout=2) == [KVPair("y", "")]
    assert store.watch_attempts == 2


def test_close_stops_watch_and_closes_store():
    store = FakeStore()
    d = ConsulDiscovery("rpcx/Arith", store)
    store.watches.get(timeout=2)
    d.close()
    assert store.closed.wait(2)


def test_close_interrupts_failed_watch_retries():
    store = FakeStore(watch_error=ConnectionError("down"))
    d = EtcdDiscovery("rpcx/Arith", store)
    d.close()
    assert store.closed.wait(3)


def test_clone_joins_service_path(cleanup):
    store = FakeStore()
    d = ConsulDiscovery("rpcx", store)
    cleanup.append(d)
    other = d.clone("Arith")
    cleanup.append(other)
    assert isinstance(other, ConsulDiscovery)
    assert other.base_path == "rpcx/Arith"
    assert store.listed == ["rpcx", "rpcx/Arith"]