"""The key-value database: strings, sorted sets and millisecond TTLs."""

from __future__ import annotations

import math
import re
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from minikv.hashtable import HMap
from minikv.heap import IndexedHeap
from minikv.protocol import ErrorCode, ResponseBuffer
from minikv.zset import ZSet

LARGE_CONTAINER_SIZE = 1000
MAX_EXPIRE_WORK = 2000
FREE_WORKERS = 4

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_SPACE = rb"[ \t\n\v\f\r]*"
_INT_RE = re.compile(_SPACE + rb"([+-]?[0-9]+)")
_DEC_RE = re.compile(
    _SPACE + rb"([+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)"
)
_HEX_RE = re.compile(
    _SPACE
    + rb"([+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)(?:[pP][+-]?[0-9]+)?)"
)
_SPECIAL_RE = re.compile(_SPACE + rb"([+-]?(?:inf|infinity|nan))", re.IGNORECASE)


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock."""
    return time.monotonic_ns() // 1_000_000


def _parse_int(s: bytes) -> int | None:
    """Parse a whole string as a base-10 int64, clamping on overflow."""
    if not s:
        return 0
    m = _INT_RE.fullmatch(s)
    if m is None:
        return None
    return max(_INT64_MIN, min(_INT64_MAX, int(m.group(1))))


def _parse_float(s: bytes) -> float | None:
    """Parse a whole string as a float; NaN is rejected."""
    if not s:
        return 0.0
    if (m := _DEC_RE.fullmatch(s)) is not None:
        value = float(m.group(1))
    elif (m := _HEX_RE.fullmatch(s)) is not None:
        value = float.fromhex(m.group(1).decode("ascii"))
    elif (m := _SPECIAL_RE.fullmatch(s)) is not None:
        value = float(m.group(1).decode("ascii"))
    else:
        return None
    return None if math.isnan(value) else value


class ValueType(Enum):
    STR = 1
    ZSET = 2


@dataclass(eq=False)
class _Entry:
    key: bytes
    type: ValueType
    value: bytes = b""
    zset: ZSet | None = None


def _as_bytes(value: bytes | bytearray | str) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


class Database:
    """Holds all keys and runs commands against them."""

    def __init__(
        self, clock: Callable[[], int] = monotonic_ms, workers: int = FREE_WORKERS
    ) -> None:
        self._clock = clock
        self._db = HMap()
        self._ttl = IndexedHeap()
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="minikv-free")
        self._commands = {
            b"get": (2, self._get),
            b"set": (3, self._set),
            b"del": (2, self._del),
            b"pexpire": (3, self._pexpire),
            b"pttl": (2, self._pttl),
            b"keys": (1, self._keys),
            b"zadd": (4, self._zadd),
            b"zrem": (3, self._zrem),
            b"zscore": (3, self._zscore),
            b"zquery": (6, self._zquery),
        }

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def execute(self, cmd: Sequence[bytes | str], out: ResponseBuffer) -> None:
        """Run one command and append its response to ``out``."""
        args = [_as_bytes(a) for a in cmd]
        spec = self._commands.get(args[0]) if args else None
        if spec is None or spec[0] != len(args):
            out.err(ErrorCode.UNKNOWN, "unknown command.")
            return
        spec[1](args, out)

    def next_expiry(self) -> int | None:
        """Clock time of the earliest TTL, or None if no key expires."""
        if not self._ttl:
            return None
        return self._ttl.peek()[1]

    def process_expired(self, now: int | None = None) -> int:
        """Delete keys whose TTL passed before ``now``; return how many."""
        if now is None:
            now = self._clock()
        removed = 0
        while self._ttl:
            key, expire_at = self._ttl.peek()
            if expire_at >= now:
                break
            self._delete_entry(self._db.pop(key))
            removed += 1
            if removed > MAX_EXPIRE_WORK:
                break
        return removed

    def close(self) -> None:
        """Wait for background frees to finish and stop the workers."""
        self._pool.shutdown(wait=True)

    def _set_ttl(self, entry: _Entry, ttl_ms: int) -> None:
        if ttl_ms < 0:
            if entry.key in self._ttl:
                self._ttl.remove(entry.key)
        else:
            self._ttl.upsert(entry.key, self._clock() + ttl_ms)

    def _delete_entry(self, entry: _Entry) -> None:
        self._set_ttl(entry, -1)
        zset = entry.zset
        if zset is None:
            return
        if len(zset) > LARGE_CONTAINER_SIZE:
            self._pool.submit(zset.clear)
        else:
            zset.clear()

    def _expect_zset(self, key: bytes) -> ZSet | None:
        entry = self._db.lookup(key)
        if entry is None:
            return ZSet()
        return entry.zset if entry.type is ValueType.ZSET else None

    def _get(self, args: list, out: ResponseBuffer) -> None:
        entry = self._db.lookup(args[1])
        if entry is None:
            out.nil()
        elif entry.type is not ValueType.STR:
            out.err(ErrorCode.BAD_TYP, "not a string value")
        else:
            out.str(entry.value)

    def _set(self, args: list, out: ResponseBuffer) -> None:
        entry = self._db.lookup(args[1])
        if entry is None:
            self._db.insert(args[1], _Entry(args[1], ValueType.STR, args[2]))
        elif entry.type is not ValueType.STR:
            out.err(ErrorCode.BAD_TYP, "a non-string value exists")
            return
        else:
            entry.value = args[2]
        out.nil()

    def _del(self, args: list, out: ResponseBuffer) -> None:
        entry = self._db.pop(args[1])
        if entry is not None:
            self._delete_entry(entry)
        out.int(1 if entry is not None else 0)

    def _pexpire(self, args: list, out: ResponseBuffer) -> None:
        ttl_ms = _parse_int(args[2])
        if ttl_ms is None:
            out.err(ErrorCode.BAD_ARG, "expect int64")
            return
        entry = self._db.lookup(args[1])
        if entry is not None:
            self._set_ttl(entry, ttl_ms)
        out.int(1 if entry is not None else 0)

    def _pttl(self, args: list, out: ResponseBuffer) -> None:
        entry = self._db.lookup(args[1])
        if entry is None:
            out.int(-2)
        elif entry.key not in self._ttl:
            out.int(-1)
        else:
            out.int(max(self._ttl.get(entry.key) - self._clock(), 0))

    def _keys(self, args: list, out: ResponseBuffer) -> None:
        out.arr(len(self._db))
        for key in self._db:
            out.str(key)

    def _zadd(self, args: list, out: ResponseBuffer) -> None:
        score = _parse_float(args[2])
        if score is None:
            out.err(ErrorCode.BAD_ARG, "expect float")
            return
        entry = self._db.lookup(args[1])
        if entry is None:
            entry = _Entry(args[1], ValueType.ZSET, zset=ZSet())
            self._db.insert(args[1], entry)
        elif entry.type is not ValueType.ZSET:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        out.int(int(entry.zset.insert(args[3], score)))

    def _zrem(self, args: list, out: ResponseBuffer) -> None:
        zset = self._expect_zset(args[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        node = zset.lookup(args[2])
        if node is not None:
            zset.delete(node)
        out.int(1 if node is not None else 0)

    def _zscore(self, args: list, out: ResponseBuffer) -> None:
        zset = self._expect_zset(args[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        node = zset.lookup(args[2])
        if node is None:
            out.nil()
        else:
            out.dbl(node.score)

    def _zquery(self, args: list, out: ResponseBuffer) -> None:
        score = _parse_float(args[2])
        if score is None:
            out.err(ErrorCode.BAD_ARG, "expect fp number")
            return
        name = args[3]
        offset = _parse_int(args[4])
        limit = _parse_int(args[5])
        if offset is None or limit is None:
            out.err(ErrorCode.BAD_ARG, "expect int")
            return
        zset = self._expect_zset(args[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        if limit <= 0:
            out.arr(0)
            return
        node = zset.seek_ge(score, name)
        if node is not None:
            node = node.offset(offset)
        ctx = out.begin_arr()
        n = 0
        while node is not None and n < limit:
            out.str(node.name)
            out.dbl(node.score)
            node = node.offset(1)
            n += 2
        out.end_arr(ctx, n)