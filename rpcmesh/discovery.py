"""Service discovery: where the servers of a service are."""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

log = logging.getLogger(__name__)

WATCH_QUEUE_SIZE = 10
NOTIFY_TIMEOUT = 60.0


@dataclass
class KVPair:
    """A server address (key) with its metadata (value)."""

    key: str
    value: str = ""


ServiceDiscoveryFilter = Callable[[KVPair], bool]


class ServiceDiscovery(ABC):
    """Supplies the current servers and notifies watchers of changes."""

    @abstractmethod
    def clone(self, service_path: str) -> ServiceDiscovery:
        """Return a discovery for another service path."""

    @abstractmethod
    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        """Set the predicate that servers must pass."""

    @abstractmethod
    def get_services(self) -> List[KVPair]:
        """Return the current servers."""

    @abstractmethod
    def watch_service(self) -> Optional[queue.Queue]:
        """Return a queue that receives server lists, or ``None`` if static."""

    @abstractmethod
    def remove_watcher(self, ch: queue.Queue) -> None:
        """Stop notifying ``ch``."""

    @abstractmethod
    def close(self) -> None:
        """Release resources."""


def notify_watchers(watchers: List[queue.Queue], pairs: List[KVPair]) -> None:
    """Deliver ``pairs`` to each watcher without blocking the caller."""

    def deliver(ch: queue.Queue) -> None:
        try:
            ch.put(pairs, timeout=NOTIFY_TIMEOUT)
        except queue.Full:
            log.warning("queue is full and new change has been dropped")

    for ch in watchers:
        threading.Thread(target=deliver, args=(ch,), daemon=True).start()


class InprocessDiscovery(ServiceDiscovery):
    """Discovery for clients and servers living in one process."""

    def clone(self, service_path: str) -> ServiceDiscovery:
        return self

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        pass

    def get_services(self) -> List[KVPair]:
        return [KVPair(key="inprocess@127.0.0.1:0", value="")]

    def watch_service(self) -> Optional[queue.Queue]:
        return None

    def remove_watcher(self, ch: queue.Queue) -> None:
        pass

    def close(self) -> None:
        pass


class Peer2PeerDiscovery(ServiceDiscovery):
    """Discovery that always returns one fixed server."""

    def __init__(self, server: str, metadata: str = "") -> None:
        self.server = server
        self.metadata = metadata

    def clone(self, service_path: str) -> ServiceDiscovery:
        return self

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        pass

    def get_services(self) -> List[KVPair]:
        return [KVPair(key=self.server, value=self.metadata)]

    def watch_service(self) -> Optional[queue.Queue]:
        return None

    def remove_watcher(self, ch: queue.Queue) -> None:
        pass

    def close(self) -> None:
        pass


class MultipleServersDiscovery(ServiceDiscovery):
    """Discovery over a fixed list of servers; watchers get pushed updates."""

    def __init__(self, pairs: List[KVPair]) -> None:
        self.pairs = pairs
        self._watchers: List[queue.Queue] = []
        self._lock = threading.Lock()

    def clone(self, service_path: str) -> ServiceDiscovery:
        return self

    def set_filter(self, filter: Optional[ServiceDiscoveryFilter]) -> None:
        pass

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

    def update(self, pairs: List[KVPair]) -> None:
        """Send ``pairs`` to every watcher."""
        with self._lock:
            notify_watchers(list(self._watchers), pairs)

    def close(self) -> None:
        pass