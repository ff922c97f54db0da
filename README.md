# rpcmesh

Client-side building blocks for calling RPC services that run on many
servers: choosing a server, guarding calls with a circuit breaker, hashing
requests consistently, running plugin hooks, calling services in the same
process and following the set of servers through service discovery.

It has no dependencies beyond the standard library.

## Installation

```
pip install rpcmesh
```

## Modules

- `rpcmesh.modes`: the `FailMode` (`FAILOVER`, `FAILFAST`, `FAILTRY`,
  `FAILBACKUP`) and `SelectMode` (`RANDOM_SELECT`, `ROUND_ROBIN`,
  `WEIGHTED_ROUND_ROBIN`, `WEIGHTED_ICMP`, `CONSISTENT_HASH`, `CLOSEST`,
  `SELECT_BY_USER`) enums. `str()` gives a member's label, and
  `FailMode.parse("Failfast")` or `SelectMode.parse("RoundRobin")` turns a
  label back into a member; an unknown label raises `ValueError`.
- `rpcmesh.selector`: the `Selector` interface (`select`, `update_server`)
  and `RandomSelector`, `RoundRobinSelector`, `WeightedRoundRobinSelector`
  (smooth weighted round robin; the weight is read from `weight=` in the
  server's metadata, default 1), `GeoSelector` (the server nearest to a given
  latitude and longitude, read from `latitude=` and `longitude=` metadata;
  ties are broken at random) and `ConsistentHashSelector` (hashes the service
  path, method and arguments onto a `JumpHashRing`). Servers are given as a
  mapping of address to metadata. `new_selector(select_mode, servers)` builds
  the selector for a mode: it returns `None` for `SELECT_BY_USER`, raises
  `RuntimeError` for `WEIGHTED_ICMP`, and falls back to `RandomSelector` for
  unknown modes. A selector with no servers returns `""`.
- `rpcmesh.circuit_breaker`: `ConsecCircuitBreaker(failure_threshold, window)`.
  It refuses calls with `BreakerOpenError` once `failure_threshold` failures
  have happened within `window` seconds, and lets calls through again after
  the window has passed. `call(fn, timeout)` runs `fn`, raising
  `BreakerTimeoutError` if it does not finish within `timeout` seconds (0
  means no limit). `success()`, `fail()` and `ready()` drive it by hand.
- `rpcmesh.hashing`: `jump_hash(key, buckets)` (jump consistent hash),
  `hash_string(s)` (64-bit FNV-1a), `gen_key(*args)` and
  `jump_consistent_hash(length, *args)`.
- `rpcmesh.geo`: `distance(lat1, lon1, lat2, lon2)`, the haversine distance
  in metres.
- `rpcmesh.weighted`: the `Weighted` dataclass and `next_weighted(servers)`.
- `rpcmesh.plugin`: `PluginContainer`, which runs the hooks of the plugins
  added to it (`do_pre_call`, `do_post_call`, `do_conn_created`,
  `do_client_connected`, `do_client_connection_close`,
  `do_client_before_encode`, `do_client_after_decode`, `do_wrap_select`). A
  plugin takes part in a hook by having the matching method, such as
  `pre_call` or `wrap_select`; a hook that raises stops the chain.
- `rpcmesh.inprocess_client`: `InprocessClient`, which calls service objects
  registered with `register(name, rcvr)` directly. A service method is called
  as `method(ctx, args, reply)` and fills in `reply`. `call` raises
  `LookupError` for an unknown service or method and `ServiceError` when the
  method raises; `go` reports the outcome as a `Call` on a queue. `send_raw`
  is not supported and raises `RuntimeError`.
- `rpcmesh.discovery`: `KVPair`, the `ServiceDiscovery` interface and the
  static `InprocessDiscovery`, `Peer2PeerDiscovery` and
  `MultipleServersDiscovery`, whose `update(pairs)` pushes a new list to every
  queue returned by `watch_service()`.
- `rpcmesh.kv_discovery`: `ConsulDiscovery` and `EtcdDiscovery`, which list
  the servers under a base path of a key-value store and follow its changes
  in a background thread. They work with any object implementing the
  `KVStore` interface (`list`, `watch_tree`, `close`), whose entries are
  `StoreEntry` objects.
- `rpcmesh.kv_discovery_v3`: `EtcdV3Discovery` and `RedisDiscovery`, which
  work the same way but skip the entry for the base path itself.
- `rpcmesh.nacos_discovery`: `NacosDiscovery`, which follows the instances of
  a service through any object implementing the `NamingClient` interface
  (`get_service`, `subscribe`), each given as a `NacosInstance`.

## Example

```python
from rpcmesh.modes import SelectMode
from rpcmesh.selector import new_selector
from rpcmesh.circuit_breaker import ConsecCircuitBreaker

servers = {
    "tcp@10.0.0.1:8972": "weight=3",
    "tcp@10.0.0.2:8972": "weight=1",
}
selector = new_selector(SelectMode.WEIGHTED_ROUND_ROBIN, servers)
address = selector.select(None, "Arith", "Mul", None)

breaker = ConsecCircuitBreaker(failure_threshold=5, window=0.1)
breaker.call(lambda: None, 0.2)
```

Following changes to a set of servers:

```python
from rpcmesh.discovery import KVPair, MultipleServersDiscovery

discovery = MultipleServersDiscovery([KVPair("tcp@10.0.0.1:8972", "")])
watcher = discovery.watch_service()
discovery.update([KVPair("tcp@10.0.0.2:8972", "")])
latest = watcher.get(timeout=1)
```

## What it does not do

- There is no network client or server: nothing here opens connections,
  encodes messages or talks a wire protocol. `InprocessClient` only calls
  objects in the same process.
- There are no clients for Consul, etcd, Redis or Nacos. The discovery
  classes need a `KVStore` or `NamingClient` implementation supplied by you.
- Selection by ping time (`SelectMode.WEIGHTED_ICMP`) is not available.

## Running the tests

```
pip install -e ".[test]"
pytest
```