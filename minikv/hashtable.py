"""Chained hash map with progressive rehashing, keyed by byte strings."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

REHASHING_WORK = 128
MAX_LOAD_FACTOR = 8
INITIAL_BUCKETS = 4

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def str_hash(data: bytes) -> int:
    """FNV-style 32-bit hash of ``data``."""
    h = _FNV_OFFSET
    for byte in data:
        h = ((h + byte) * _FNV_PRIME) & 0xFFFFFFFF
    return h


@dataclass(eq=False, slots=True)
class _Entry:
    key: bytes
    value: Any
    hcode: int


class _Table:
    """Fixed-size table of chains; the newest entry of a chain is last."""

    __slots__ = ("buckets", "mask", "size")

    def __init__(self, n: int) -> None:
        if n <= 0 or n & (n - 1):
            raise ValueError("table size must be a power of two")
        self.buckets: list[list[_Entry]] = [[] for _ in range(n)]
        self.mask = n - 1
        self.size = 0

    def insert(self, entry: _Entry) -> None:
        self.buckets[entry.hcode & self.mask].append(entry)
        self.size += 1

    def find(self, hcode: int, key: bytes) -> _Entry | None:
        for entry in reversed(self.buckets[hcode & self.mask]):
            if entry.hcode == hcode and entry.key == key:
                return entry
        return None

    def remove(self, entry: _Entry) -> None:
        self.buckets[entry.hcode & self.mask].remove(entry)
        self.size -= 1

    def __iter__(self) -> Iterator[_Entry]:
        for bucket in self.buckets:
            yield from reversed(bucket)


class HMap:
    """Hash map that moves entries to a larger table a little at a time."""

    def __init__(self) -> None:
        self._newer: _Table | None = None
        self._older: _Table | None = None
        self._migrate_pos = 0

    def _help_rehashing(self) -> None:
        older = self._older
        if older is None:
            return
        work = 0
        while work < REHASHING_WORK and older.size > 0:
            bucket = older.buckets[self._migrate_pos]
            if not bucket:
                self._migrate_pos += 1
                continue
            entry = bucket.pop()
            older.size -= 1
            self._newer.insert(entry)
            work += 1
        if older.size == 0:
            self._older = None

    def _trigger_rehashing(self) -> None:
        self._older = self._newer
        self._newer = _Table((self._older.mask + 1) * 2)
        self._migrate_pos = 0

    def _find(self, key: bytes) -> tuple[_Table, _Entry] | None:
        hcode = str_hash(key)
        for table in (self._newer, self._older):
            if table is not None:
                entry = table.find(hcode, key)
                if entry is not None:
                    return table, entry
        return None

    def lookup(self, key: bytes) -> Any:
        """Return the value stored under ``key``, or None."""
        self._help_rehashing()
        found = self._find(key)
        return found[1].value if found else None

    def insert(self, key: bytes, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        found = self._find(key)
        if found is not None:
            found[1].value = value
            self._help_rehashing()
            return
        if self._newer is None:
            self._newer = _Table(INITIAL_BUCKETS)
        self._newer.insert(_Entry(key, value, str_hash(key)))
        if self._older is None:
            threshold = (self._newer.mask + 1) * MAX_LOAD_FACTOR
            if self._newer.size >= threshold:
                self._trigger_rehashing()
        self._help_rehashing()

    def pop(self, key: bytes) -> Any:
        """Remove ``key`` and return its value, or None if it was absent."""
        self._help_rehashing()
        found = self._find(key)
        if found is None:
            return None
        table, entry = found
        table.remove(entry)
        return entry.value

    def clear(self) -> None:
        self._newer = None
        self._older = None
        self._migrate_pos = 0

    def __len__(self) -> int:
        return sum(t.size for t in (self._newer, self._older) if t is not None)

    def _entries(self) -> Iterator[_Entry]:
        for table in (self._newer, self._older):
            if table is not None:
                yield from table

    def __iter__(self) -> Iterator[bytes]:
        return (entry.key for entry in self._entries())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (bytes, bytearray)) and self._find(bytes(key)) is not None

    def items(self) -> Iterator[tuple[bytes, Any]]:
        """Yield (key, value) pairs in table order."""
        return ((entry.key, entry.value) for entry in self._entries())