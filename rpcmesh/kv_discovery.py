"""Service discovery backed by a watchable key-value store (Consul, etcd)."""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .discovery import KVPair, ServiceDiscovery, ServiceDiscoveryFilter, WATCH_QUEUE_SIZE, notify_watchers

log = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0
_POLL_INTERVAL = 0.05


class KeyNotFoundError(LookupError):
    """Raised by a store when the listed key does not exist."""


@dataclass
class StoreEntry:
    """A key and its raw value as held by the store."""

    key: str
    value: Union[bytes, str] = b""

    @property
    def text(self) -> str:
        if isinstance(self.value, bytes):
            return self.value.decode("utf-8", errors="replace")
        return self.value


class KVStore(ABC):
    """The operations discovery needs from a key-value store."""

    @abstractmethod
    def list(self, prefix: str) -> List[StoreEntry]:
        """Return the entries under ``prefix``; raise ``KeyNotFoundError`` if none exist."""

    @abstractmethod
    def watch_tree(self, prefix: str) -> queue.Queue:
        """Return a queue receiving entry lists for ``prefix``; ``None`` marks its end."""

    @abstractmethod
    def close(self) -> None:
        """Release the store."""


class _KVDiscovery(ServiceDiscovery):
    """Common behaviour: initial listing, a watch thread and watcher fan-out."""

    def __init__(self, base_path: str, kv: KVStore) -> None:
        self.base_path = self._normalize(base_path)
        self.kv = kv
        self._filter: Optional[ServiceDiscoveryFilter] = None
        self._watchers: List[queue.Queue] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        # -1 retries the watch forever, 0 does not retry.
        self.retries_after_watch_failed = -1

        self.pairs = self._convert(self._initial_entries())
        self._thread = threading.Thread(target=self._watch, daemon=True)
        self._thread.start()

    @staticmethod
    def _normalize(base_path: str) -> str:
        if len(base_path) > 1 and base_path.endswith("/"):
            base_path = base_path[:-1]
        return base_path

    def _initial_entries(self) -> Sequence[StoreEntry]:
        try:
            return self.kv.list(self.base_path)
        except Exception as exc:
            log.info("cannot get services of from registry: %s, err: %s", self.base_path, exc)
            raise

    def _prefix(self, entries: Sequence[StoreEntry]) -> str:
        return self.base_path + "/"

    def _convert(self, entries: Sequence[StoreEntry]) -> List[KVPair]:
        prefix = self._prefix(entries)
        pairs = []
        for entry in entries:
            key = entry.key[len(prefix):] if entry.key.startswith(prefix) else entry.key
            pair = KVPair(key=key, value=entry.text)
            if self._filter is not None and not self._filter(pair):
                continue
            pairs.append(pair)
        return pairs

    def clone(self, service_path: str) -> ServiceDiscovery:
        return type(self)(self.base_path + "/" + service_path, self.kv)

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        self._filter = filter

    def get_services(self) -> List[KVPair]:
        return self.pairs

    def watch_service(self) -> queue.Queue:
        ch: queue.Queue = queue.Queue(maxsize=WATCH_QUEUE_SIZE)
        with self._lock:
            self._watchers.append(ch)
        return ch

    def remove_watcher(self, ch: queue.Queue) -> None:
        with self._lock:
            self._watchers = [c for c in self._watchers if c is not ch]

    def close(self) -> None:
        self._stop.set()

    def _open_watch(self) -> Optional[queue.Queue]:
        delay = 0.0
        retry = self.retries_after_watch_failed
        while not self._stop.is_set() and (self.retries_after_watch_failed < 0 or retry >= 0):
            try:
                return self.kv.watch_tree(self.base_path)
            except Exception as exc:
                if self.retries_after_watch_failed >= 0:
                    retry -= 1
                delay = min(MAX_RETRY_DELAY, 1.0 if delay == 0 else delay * 2)
                log.warning(
                    "can not watchtree (with retry %d, sleep %ss): %s: %s",
                    retry, delay, self.base_path, exc,
                )
                if self._stop.wait(delay):
                    return None
        if not self._stop.is_set():
            log.error("can't watch %s", self.base_path)
        return None

    def _watch(self) -> None:
        try:
            while not self._stop.is_set():
                changes = self._open_watch()
                if changes is None:
                    return
                if not self._read_changes(changes):
                    return
                log.warning("watch of %s is closed and will rewatch", self.base_path)
        finally:
            self.kv.close()

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
                return True
            pairs = self._convert(entries)
            self.pairs = pairs
            with self._lock:
                notify_watchers(list(self._watchers), pairs)


class ConsulDiscovery(_KVDiscovery):
    """Discovery of the servers registered under a path in Consul."""

    def __init__(self, base_path: str, kv: KVStore) -> None:
        """List the servers under ``base_path`` and start watching it."""
        super().__init__(base_path, kv)

    @staticmethod
    def _normalize(base_path: str) -> str:
        if base_path.startswith("/"):
            base_path = base_path[1:]
        return _KVDiscovery._normalize(base_path)

    def _initial_entries(self) -> Sequence[StoreEntry]:
        try:
            return self.kv.list(self.base_path)
        except KeyNotFoundError:
            return []
        except Exception as exc:
            log.info("cannot get services of from registry: %s, err: %s", self.base_path, exc)
            raise

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


class EtcdDiscovery(_KVDiscovery):
    """Discovery of the servers registered under a path in etcd."""

    def __init__(self, base_path: str, kv: KVStore) -> None:
        """List the servers under ``base_path`` and start watching it."""
        super().__init__(base_path, kv)

    def _prefix(self, entries: Sequence[StoreEntry]) -> str:
        if not entries:
            return self.base_path + "/"
        base = self.base_path
        if entries[0].key.startswith("/"):
            return (base if base.startswith("/") else "/" + base) + "/"
        return (base[1:] if base.startswith("/") else base) + "/"

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