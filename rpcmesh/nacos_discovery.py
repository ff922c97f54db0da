"""Service discovery backed by a Nacos naming service."""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from .discovery import (
    WATCH_QUEUE_SIZE,
    KVPair,
    ServiceDiscovery,
    ServiceDiscoveryFilter,
    notify_watchers,
)

log = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0


@dataclass
class NacosInstance:
    """One registered instance of a service."""

    ip: str
    port: int
    metadata: Dict[str, str] = field(default_factory=dict)


SubscribeCallback = Callable[[Sequence[NacosInstance]], None]


class NamingClient(ABC):
    """The operations discovery needs from a Nacos naming client."""

    @abstractmethod
    def get_service(self, service_name: str, clusters: Sequence[str]) -> Sequence[NacosInstance]:
        """Return the instances of ``service_name`` in ``clusters``."""

    @abstractmethod
    def subscribe(
        self, service_name: str, clusters: Sequence[str], callback: SubscribeCallback
    ) -> None:
        """Call ``callback`` with the instances whenever they change."""


def _encode_metadata(metadata: Dict[str, str]) -> str:
    return urlencode(metadata)


class NacosDiscovery(ServiceDiscovery):
    """Discovery of the instances of one service registered in Nacos."""

    def __init__(self, service_path: str, cluster: str, naming_client: NamingClient) -> None:
        self.service_path = service_path
        self.cluster = cluster
        self.naming_client = naming_client
        self.pairs: List[KVPair] = []
        # -1 retries the subscription forever, 0 retries once more.
        self.retries_after_watch_failed = 0
        self._filter: Optional[ServiceDiscoveryFilter] = None
        self._watchers: List[queue.Queue] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()

        self.fetch()
        self._thread = threading.Thread(target=self._watch, daemon=True)
        self._thread.start()

    def _to_pairs(self, instances: Sequence[NacosInstance]) -> List[KVPair]:
        pairs = []
        for inst in instances:
            network = inst.metadata.get("network", "")
            pair = KVPair(
                key=f"{network}@{inst.ip}:{inst.port}",
                value=_encode_metadata(inst.metadata),
            )
            if self._filter is not None and not self._filter(pair):
                continue
            pairs.append(pair)
        return pairs

    def fetch(self) -> None:
        """Load the current instances; on failure keep the previous ones."""
        try:
            instances = self.naming_client.get_service(self.service_path, [self.cluster])
        except Exception as exc:
            log.error("failed to get service %s: %s", self.service_path, exc)
            return
        self.pairs = self._to_pairs(instances)

    def clone(self, service_path: str) -> ServiceDiscovery:
        return NacosDiscovery(service_path, self.cluster, self.naming_client)

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

    def _on_change(self, instances: Sequence[NacosInstance]) -> None:
        self.pairs = self._to_pairs(instances)
        with self._lock:
            notify_watchers(list(self._watchers), self.pairs)

    def _subscribe(self) -> None:
        self.naming_client.subscribe(self.service_path, [self.cluster], self._on_change)

    def _watch(self) -> None:
        try:
            self._subscribe()
            return
        except Exception as exc:
            log.warning("can not subscribe %s: %s", self.service_path, exc)

        delay = 0.0
        retry = self.retries_after_watch_failed
        while not self._stop.is_set() and (self.retries_after_watch_failed < 0 or retry >= 0):
            try:
                self._subscribe()
                return
            except Exception as exc:
                if self.retries_after_watch_failed >= 0:
                    retry -= 1
                delay = min(MAX_RETRY_DELAY, 1.0 if delay == 0 else delay * 2)
                log.warning(
                    "can not subscribe (with retry %d, sleep %ss): %s: %s",
                    retry, delay, self.service_path, exc,
                )
                if self._stop.wait(delay):
                    return