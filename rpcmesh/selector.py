"""Selectors that choose one server among candidates."""

from __future__ import annotations

import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Mapping, Optional
from urllib.parse import parse_qs

from .geo import distance
from .hashing import gen_key, jump_hash
from .modes import SelectMode
from .weighted import Weighted, next_weighted

_INT_RE = re.compile(r"[+-]?\d+")


def _query_value(metadata: str, name: str) -> str:
    values = parse_qs(metadata, keep_blank_values=True).get(name)
    return values[0] if values else ""


class Selector(ABC):
    """Chooses one server address for a call."""

    @abstractmethod
    def select(self, ctx: Any, service_path: str, service_method: str, args: Any) -> str:
        """Return the chosen server, or an empty string if there is none."""

    @abstractmethod
    def update_server(self, servers: Mapping[str, str]) -> None:
        """Replace the candidate servers (address to metadata)."""


class RandomSelector(Selector):
    """Selects a server at random."""

    def __init__(self, servers: Mapping[str, str]) -> None:
        self.servers: List[str] = list(servers)

    def select(self, ctx, service_path, service_method, args) -> str:
        return random.choice(self.servers) if self.servers else ""

    def update_server(self, servers: Mapping[str, str]) -> None:
        self.servers = list(servers)


class RoundRobinSelector(Selector):
    """Selects servers in turn."""

    def __init__(self, servers: Mapping[str, str]) -> None:
        self.servers: List[str] = list(servers)
        self._next = 0

    def select(self, ctx, service_path, service_method, args) -> str:
        if not self.servers:
            return ""
        i = self._next % len(self.servers)
        self._next = i + 1
        return self.servers[i]

    def update_server(self, servers: Mapping[str, str]) -> None:
        self.servers = list(servers)


def _create_weighted(servers: Mapping[str, str]) -> List[Weighted]:
    result = []
    for server, metadata in servers.items():
        weight = 1
        raw = _query_value(metadata, "weight")
        if _INT_RE.fullmatch(raw):
            weight = int(raw)
        result.append(Weighted(server=server, weight=weight, effective_weight=weight))
    return result


class WeightedRoundRobinSelector(Selector):
    """Smooth weighted round-robin using the ``weight`` metadata field."""

    def __init__(self, servers: Mapping[str, str]) -> None:
        self.servers = _create_weighted(servers)

    def select(self, ctx, service_path, service_method, args) -> str:
        best = next_weighted(self.servers)
        return best.server if best is not None else ""

    def update_server(self, servers: Mapping[str, str]) -> None:
        self.servers = _create_weighted(servers)


@dataclass(frozen=True)
class _GeoServer:
    server: str
    latitude: float
    longitude: float


def _create_geo_servers(servers: Mapping[str, str]) -> List[_GeoServer]:
    result = []
    for server, metadata in servers.items():
        lat = _query_value(metadata, "latitude")
        lon = _query_value(metadata, "longitude")
        if not lat or not lon:
            continue
        try:
            result.append(_GeoServer(server, float(lat), float(lon)))
        except ValueError:
            continue
    return result


class GeoSelector(Selector):
    """Selects the server closest to the client's location."""

    def __init__(self, servers: Mapping[str, str], latitude: float, longitude: float) -> None:
        self.servers = _create_geo_servers(servers)
        self.latitude = latitude
        self.longitude = longitude
        self._rng = random.Random()

    def select(self, ctx, service_path, service_method, args) -> str:
        closest: List[str] = []
        best = math.inf
        for gs in self.servers:
            d = distance(self.latitude, self.longitude, gs.latitude, gs.longitude)
            if d < best:
                closest = [gs.server]
                best = d
            elif d == best:
                closest.append(gs.server)
        if not closest:
            return ""
        return closest[0] if len(closest) == 1 else self._rng.choice(closest)

    def update_server(self, servers: Mapping[str, str]) -> None:
        self.servers = _create_geo_servers(servers)


class JumpHashRing:
    """Consistent hash over a changing set of objects, built on jump hashing.

    Removed objects leave a hole so that keys mapped to the other objects keep
    their placement; a key that lands on a hole falls back to the live objects.
    """

    def __init__(self) -> None:
        self._slots: List[Optional[Hashable]] = []
        self._index: Dict[Hashable, int] = {}
        self._holes: List[int] = []
        self._live: List[Hashable] = []

    def __len__(self) -> int:
        return len(self._index)

    def add(self, obj: Hashable) -> None:
        if obj in self._index:
            return
        if self._holes:
            slot = self._holes.pop()
            self._slots[slot] = obj
        else:
            slot = len(self._slots)
            self._slots.append(obj)
        self._index[obj] = slot
        self._rebuild()

    def remove(self, obj: Hashable) -> None:
        slot = self._index.pop(obj, None)
        if slot is None:
            return
        self._slots[slot] = None
        self._holes.append(slot)
        self._rebuild()

    def get(self, key: int) -> Optional[Hashable]:
        if not self._live:
            return None
        obj = self._slots[jump_hash(key, len(self._slots))]
        if obj is not None:
            return obj
        return self._live[jump_hash(key, len(self._live))]

    def _rebuild(self) -> None:
        self._live = [obj for obj in self._slots if obj is not None]


class ConsistentHashSelector(Selector):
    """Selects by hashing the service path, method and arguments."""

    def __init__(self, servers: Mapping[str, str]) -> None:
        self._ring = JumpHashRing()
        for server in servers:
            self._ring.add(server)
        self.servers: List[str] = sorted(servers)

    def select(self, ctx, service_path, service_method, args) -> str:
        if not self.servers:
            return ""
        selected = self._ring.get(gen_key(service_path, service_method, args))
        return selected if isinstance(selected, str) else ""

    def update_server(self, servers: Mapping[str, str]) -> None:
        for server in servers:
            self._ring.add(server)
        for server in self.servers:
            if server not in servers:
                self._ring.remove(server)
        self.servers = sorted(servers)


def new_selector(select_mode: int, servers: Mapping[str, str]) -> Optional[Selector]:
    """Build the selector for ``select_mode``; ``None`` for user selection."""
    try:
        mode = SelectMode(select_mode)
    except ValueError:
        return RandomSelector(servers)
    if mode is SelectMode.ROUND_ROBIN:
        return RoundRobinSelector(servers)
    if mode is SelectMode.WEIGHTED_ROUND_ROBIN:
        return WeightedRoundRobinSelector(servers)
    if mode is SelectMode.WEIGHTED_ICMP:
        raise RuntimeError("weighted ICMP selection is not available in this build")
    if mode is SelectMode.CONSISTENT_HASH:
        return ConsistentHashSelector(servers)
    if mode is SelectMode.SELECT_BY_USER:
        return None
    return RandomSelector(servers)