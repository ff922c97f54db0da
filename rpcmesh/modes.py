"""Failure-handling and server-selection modes."""

from __future__ import annotations

from enum import IntEnum


class FailMode(IntEnum):
    """How a client reacts when a call to a service fails."""

    FAILOVER = 0  # select another server automatically
    FAILFAST = 1  # return the error immediately
    FAILTRY = 2  # use the current server again
    FAILBACKUP = 3  # race a second server if the first is slow

    @property
    def label(self) -> str:
        return _FAIL_MODE_LABELS[self]

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, name: str) -> FailMode:
        """Return the mode whose label is ``name``."""
        try:
            return _FAIL_MODE_BY_LABEL[name]
        except KeyError:
            raise ValueError(f"{name} does not belong to FailMode values") from None


class SelectMode(IntEnum):
    """Algorithm used to pick one server among candidates."""

    RANDOM_SELECT = 0
    ROUND_ROBIN = 1
    WEIGHTED_ROUND_ROBIN = 2
    WEIGHTED_ICMP = 3
    CONSISTENT_HASH = 4
    CLOSEST = 5
    SELECT_BY_USER = 1000  # selection supplied by the user

    @property
    def label(self) -> str:
        return _SELECT_MODE_LABELS.get(self, f"SelectMode({int(self)})")

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, name: str) -> SelectMode:
        """Return the mode whose label is ``name``."""
        try:
            return _SELECT_MODE_BY_LABEL[name]
        except KeyError:
            raise ValueError(f"{name} does not belong to SelectMode values") from None


_FAIL_MODE_LABELS = {
    FailMode.FAILOVER: "Failover",
    FailMode.FAILFAST: "Failfast",
    FailMode.FAILTRY: "Failtry",
    FailMode.FAILBACKUP: "Failbackup",
}
_FAIL_MODE_BY_LABEL = {label: mode for mode, label in _FAIL_MODE_LABELS.items()}

_SELECT_MODE_LABELS = {
    SelectMode.RANDOM_SELECT: "RandomSelect",
    SelectMode.ROUND_ROBIN: "RoundRobin",
    SelectMode.WEIGHTED_ROUND_ROBIN: "WeightedRoundRobin",
    SelectMode.WEIGHTED_ICMP: "WeightedICMP",
    SelectMode.CONSISTENT_HASH: "ConsistentHash",
    SelectMode.CLOSEST: "Closest",
}
_SELECT_MODE_BY_LABEL = {label: mode for mode, label in _SELECT_MODE_LABELS.items()}