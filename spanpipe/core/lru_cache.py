"""Fixed-capacity least-recently-used cache."""

from __future__ import annotations

from collections import OrderedDict
from typing import Generic, Hashable, Optional, TypeVar

from .errors import InvalidCapacityError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
D = TypeVar("D")


class BoundedCache(Generic[K, V]):
    """
    Recency-ordered mapping that never holds more than ``capacity`` entries.

    Reads and writes move the key to the most-recently-used end; a write that
    pushes the size over capacity evicts the least-recently-used entry.

    Not thread-safe: callers sharing an instance across threads must hold
    their own lock around every call.
    """

    def __init__(self, capacity: int) -> None:
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
            raise InvalidCapacityError(capacity)
        self._capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()

    def __repr__(self) -> str:
        return f"BoundedCache(capacity={self._capacity}, size={len(self._entries)})"

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K, default: Optional[D] = None) -> V | Optional[D]:
        """Return the stored value and promote it, or ``default`` without side effects.

        A stored value may itself be None or empty; pass a sentinel as
        ``default`` to tell a miss apart from such a value.
        """
        try:
            value = self._entries[key]
        except KeyError:
            return default
        self._entries.move_to_end(key)
        return value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def __getitem__(self, key: K) -> V:
        value = self._entries[key]
        self._entries.move_to_end(key)
        return value

    def __setitem__(self, key: K, value: V) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        # Membership checks do not count as a use
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
