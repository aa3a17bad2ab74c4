"""Thread-safe store of evaluated expression results."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Hashable

    from ._numeric import Array2D

logger = logging.getLogger(__name__)

type CacheKey = tuple[str, tuple[str, ...]]


@dataclass(frozen=True, slots=True)
class _Entry:
    tag: Hashable
    value: Array2D


class ResultCache:
    """Results keyed by (expression name, fraction ids), tagged with the context state.

    An entry is returned only while its tag equals the tag it was stored
    with; stale entries are dropped when next looked up. Stored arrays are
    private read-only copies.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey, tag: Hashable) -> Array2D | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.tag != tag:
                logger.debug("Discarding stale result for '%s'", key[0])
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: CacheKey, tag: Hashable, value: Array2D) -> Array2D:
        """Store a read-only copy of ``value`` and return it."""
        stored = np.array(value, dtype=np.float64)
        stored.flags.writeable = False
        with self._lock:
            self._entries[key] = _Entry(tag, stored)
        return stored

    def discard(self, name: str) -> int:
        """Drop every entry of an expression; returns how many were dropped."""
        with self._lock:
            keys = [k for k in self._entries if k[0] == name]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
