import queue

from rpcmesh.discovery import (
    InprocessDiscovery,
    KVPair,
    MultipleServersDiscovery,
    Peer2PeerDiscovery,
)


def test_inprocess_discovery_returns_fixed_server():
    d = InprocessDiscovery()
    assert d.get_services() == [KVPair(key="inprocess@127.0.0.1:0", value="")]
    assert d.clone("Other") is d
    assert d.watch_service() is None


def test_inprocess_discovery_ignores_filter():
    d = InprocessDiscovery()
    d.set_filter(lambda pair: False)
    assert len(d.get_services()) == 1
    d.close()


def test_peer2peer_discovery():
    d = Peer2PeerDiscovery("tcp@127.0.0.1:8972", "weight=3")
    assert d.get_services() == [KVPair("tcp@127.0.0.1:8972", "weight=3")]
    assert d.clone("Other") is d
    assert d.watch_service() is None


def test_peer2peer_filter_is_ignored():
    d = Peer2PeerDiscovery("tcp@127.0.0.1:8972", "")
    d.set_filter(lambda pair: False)
    d.remove_watcher(queue.Queue())
    assert [p.key for p in d.get_services()] == ["tcp@127.0.0.1:8972"]


def test_multiple_servers_get_services():
    pairs = [KVPair("tcp@127.0.0.1:1"), KVPair("tcp@127.0.0.1:2")]
    d = MultipleServersDiscovery(pairs)
    assert d.get_services() == pairs
    assert d.clone("Other") is d


def test_multiple_servers_update_reaches_watchers():
    d = MultipleServersDiscovery([KVPair("tcp@127.0.0.1:1")])
    w1 = d.watch_service()
    w2 = d.watch_service()
    new_pairs = [KVPair("tcp@127.0.0.1:9", "x=1")]
    d.update(new_pairs)
    assert w1.get(timeout=2) == new_pairs
    assert w2.get(timeout=2) == new_pairs


def test_removed_watcher_gets_nothing():
    d = MultipleServersDiscovery([])
    kept = d.watch_service()
    dropped = d.watch_service()
    d.remove_watcher(dropped)
    update = [KVPair("tcp@127.0.0.1:5")]
    d.update(update)
    assert kept.get(timeout=2) == update
    assert dropped.empty()


def test_watch_queue_is_bounded():
    d = MultipleServersDiscovery([])
    ch = d.watch_service()
    assert ch.maxsize == 10
    assert ch.empty()