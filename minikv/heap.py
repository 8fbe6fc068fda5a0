"""Binary min-heap whose entries can be found, updated and removed by key."""

from __future__ import annotations

from collections.abc import Hashable
from typing import Any


def _parent(i: int) -> int:
    return (i + 1) // 2 - 1


class IndexedHeap:
    """Min-heap of values, each owned by a key that tracks its position."""

    def __init__(self) -> None:
        self._items: list[tuple[Any, Hashable]] = []
        self._pos: dict[Hashable, int] = {}

    def _place(self, pos: int, item: tuple[Any, Hashable]) -> None:
        self._items[pos] = item
        self._pos[item[1]] = pos

    def _up(self, pos: int) -> None:
        items = self._items
        item = items[pos]
        while pos > 0 and items[_parent(pos)][0] > item[0]:
            self._place(pos, items[_parent(pos)])
            pos = _parent(pos)
        self._place(pos, item)

    def _down(self, pos: int) -> None:
        items = self._items
        size = len(items)
        item = items[pos]
        while True:
            left = pos * 2 + 1
            right = pos * 2 + 2
            min_pos = pos
            min_val = item[0]
            if left < size and items[left][0] < min_val:
                min_pos = left
                min_val = items[left][0]
            if right < size and items[right][0] < min_val:
                min_pos = right
            if min_pos == pos:
                break
            self._place(pos, items[min_pos])
            pos = min_pos
        self._place(pos, item)

    def _update(self, pos: int) -> None:
        if pos > 0 and self._items[_parent(pos)][0] > self._items[pos][0]:
            self._up(pos)
        else:
            self._down(pos)

    def upsert(self, key: Hashable, value: Any) -> None:
        """Set the value for ``key``, adding it if new."""
        pos = self._pos.get(key)
        if pos is None:
            pos = len(self._items)
            self._items.append((value, key))
        else:
            self._items[pos] = (value, key)
        self._update(pos)

    def remove(self, key: Hashable) -> Any:
        """Remove ``key`` and return its value; KeyError if absent."""
        pos = self._pos.pop(key)
        value = self._items[pos][0]
        last = self._items.pop()
        if pos < len(self._items):
            self._items[pos] = last
            self._update(pos)
        return value

    def get(self, key: Hashable) -> Any:
        """Return the value for ``key``; KeyError if absent."""
        return self._items[self._pos[key]][0]

    def peek(self) -> tuple[Hashable, Any]:
        """Return ``(key, value)`` of the smallest value."""
        if not self._items:
            raise IndexError("peek from an empty heap")
        value, key = self._items[0]
        return key, value

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._pos