"""Service discovery backed by etcd v3 or Redis key-value stores."""

from __future__ import annotations

import logging
import queue
from typing import List, Optional, Sequence

from .discovery import KVPair, ServiceDiscovery, ServiceDiscoveryFilter, notify_watchers
from .kv_discovery import EtcdDiscovery, KVStore, StoreEntry

log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class _DirectoryAwareDiscovery(EtcdDiscovery):
    """Etcd-style prefixes, skipping the entry for the base path itself."""

    def _convert(self, entries: Sequence[StoreEntry]) -> List[KVPair]:
        return self._to_pairs(entries, strict=False)

    def _to_pairs(self, entries: Sequence[StoreEntry], strict: bool) -> List[KVPair]:
        prefix = self._prefix(entries)
        directory = prefix[:-1]
        pairs = []
        for entry in entries:
            if entry.key == directory:
                continue
            under_prefix = entry.key.startswith(prefix)
            if strict and not under_prefix:
                continue
            key = entry.key[len(prefix):] if under_prefix else entry.key
            pair = KVPair(key=key, value=entry.text)
            if self._filter is not None and not self._filter(pair):
                continue
            pairs.append(pair)
        return pairs


class EtcdV3Discovery(_DirectoryAwareDiscovery):
    """Discovery of the servers registered under a path in etcd (v3 API).

    Updates that carry keys outside the watched path are ignored.
    """

    def __init__(self, base_path: str, kv: KVStore) -> None:
        """List the servers under ``base_path`` and start watching it."""
        super().__init__(base_path, kv)

    def _initial_entries(self) -> Sequence[StoreEntry]:
        try:
            return self.kv.list(self.base_path)
        except Exception as exc:
            log.error("cannot get services of from registry: %s, err: %s", self.base_path, exc)
            raise

    def _read_changes(self, changes: queue.Queue) -> bool:
        """Apply updates until the watch ends (True) or discovery closes (False)."""
        while True:
            if self._stop.is_set():
                log.info("discovery has been closed")
                return False
            try:
                entries = changes.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if entries is None:
                log.warning("rewatch %s", self.base_path)
                return True
            pairs = self._to_pairs(entries, strict=True)
            self.pairs = pairs
            with self._lock:
                notify_watchers(list(self._watchers), pairs)

    def clone(self, service_path: str) -> ServiceDiscovery:
        """A discovery for ``service_path`` below this one's base path."""
        return super().clone(service_path)

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        """Keep only the pairs ``filter`` accepts from now on."""
        super().set_filter(filter)

    def get_services(self) -> List[KVPair]:
        """The servers currently known."""
        return super().get_services()

    def watch_service(self) -> queue.Queue:
        """A queue that receives every new list of servers."""
        return super().watch_service()

    def remove_watcher(self, ch: queue.Queue) -> None:
        """Stop sending updates to ``ch``."""
        super().remove_watcher(ch)

    def close(self) -> None:
        """Stop watching; the store is released by the watch thread."""
        super().close()


class RedisDiscovery(_DirectoryAwareDiscovery):
    """Discovery of the servers registered under a path in Redis."""

    def __init__(self, base_path: str, kv: KVStore) -> None:
        """List the servers under ``base_path`` and start watching it."""
        super().__init__(base_path, kv)

    def clone(self, service_path: str) -> ServiceDiscovery:
        """A discovery for ``service_path`` below this one's base path."""
        return super().clone(service_path)

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        """Keep only the pairs ``filter`` accepts from now on."""
        super().set_filter(filter)

    def get_services(self) -> List[KVPair]:
        """The servers currently known."""
        return super().get_services()

    def watch_service(self) -> queue.Queue:
        """A queue that receives every new list of servers."""
        return super().watch_service()

    def remove_watcher(self, ch: queue.Queue) -> None:
        """Stop sending updates to ``ch``."""
        super().remove_watcher(ch)

    def close(self) -> None:
        """Stop watching; the store is released by the watch thread."""
        super().close()