"""Smooth weighted round-robin."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass
class Weighted:
    """A server with its weights."""

    server: str
    weight: int = 1
    current_weight: int = 0
    effective_weight: int = 1


def next_weighted(servers: Iterable[Optional[Weighted]]) -> Optional[Weighted]:
    """Pick the next server by smooth weighted round-robin, updating weights."""
    best: Optional[Weighted] = None
    total = 0
    for w in servers:
        if w is None:
            continue
        w.current_weight += w.effective_weight
        total += w.effective_weight
        if best is None or w.current_weight > best.current_weight:
            best = w
    if best is None:
        return None
    best.current_weight -= total
    return best