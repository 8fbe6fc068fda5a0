"""Wire format shared by the server and the client.

A message is a little-endian ``u32`` length followed by that many bytes.  A
request body is a ``u32`` argument count followed by length-prefixed strings.
A response body is one tagged value, which may be an array of values.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

MAX_MSG = 32 << 20
CLIENT_MAX_MSG = 4096
MAX_ARGS = 200 * 1000

_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_I64 = struct.Struct("<q")
_F64 = struct.Struct("<d")


class Tag(IntEnum):
    """Type tag of a serialized response value."""

    NIL = 0
    ERR = 1
    STR = 2
    INT = 3
    DBL = 4
    ARR = 5


class ErrorCode(IntEnum):
    """Error codes carried by ``Tag.ERR`` values."""

    UNKNOWN = 1
    TOO_BIG = 2
    BAD_TYP = 3
    BAD_ARG = 4


class ProtocolError(ValueError):
    """A message does not follow the wire format."""


@dataclass(frozen=True)
class ErrorReply:
    """A decoded error value."""

    code: int
    message: bytes


Value = Union[None, ErrorReply, bytes, int, float, list]


def _as_bytes(value: bytes | bytearray | str) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


class _Reader:
    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ProtocolError("truncated message")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> Any:
        return fmt.unpack(self.take(fmt.size))[0]

    @property
    def done(self) -> bool:
        return self._pos == len(self._data)


def encode_request(args: Iterable[bytes | str]) -> bytes:
    """Serialize a command as a request body (without the length header)."""
    items = [_as_bytes(a) for a in args]
    parts = [_U32.pack(len(items))]
    for item in items:
        parts.append(_U32.pack(len(item)))
        parts.append(item)
    return b"".join(parts)


def parse_request(payload: bytes | bytearray | memoryview) -> list[bytes]:
    """Parse a request body into its arguments."""
    reader = _Reader(payload)
    nstr = reader.unpack(_U32)
    if nstr > MAX_ARGS:
        raise ProtocolError("too many arguments")
    args = [reader.take(reader.unpack(_U32)) for _ in range(nstr)]
    if not reader.done:
        raise ProtocolError("trailing data in request")
    return args


def frame(payload: bytes | bytearray) -> bytes:
    """Prefix ``payload`` with its length."""
    return _U32.pack(len(payload)) + bytes(payload)


class ResponseBuffer:
    """Accumulates serialized response values."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def nil(self) -> None:
        self._buf += _U8.pack(Tag.NIL)

    def str(self, data: bytes | str) -> None:
        raw = _as_bytes(data)
        self._buf += _U8.pack(Tag.STR)
        self._buf += _U32.pack(len(raw))
        self._buf += raw

    def int(self, value: int) -> None:
        self._buf += _U8.pack(Tag.INT)
        self._buf += _I64.pack(value)

    def dbl(self, value: float) -> None:
        self._buf += _U8.pack(Tag.DBL)
        self._buf += _F64.pack(value)

    def err(self, code: int, message: bytes | str) -> None:
        raw = _as_bytes(message)
        self._buf += _U8.pack(Tag.ERR)
        self._buf += _U32.pack(code)
        self._buf += _U32.pack(len(raw))
        self._buf += raw

    def arr(self, n: int) -> None:
        self._buf += _U8.pack(Tag.ARR)
        self._buf += _U32.pack(n)

    def begin_arr(self) -> int:
        """Start an array of yet unknown length; return its context."""
        self.arr(0)
        return len(self._buf) - 4

    def end_arr(self, ctx: int, n: int) -> None:
        """Set the length of the array started at ``ctx``."""
        if ctx < 1 or ctx + 4 > len(self._buf) or self._buf[ctx - 1] != Tag.ARR:
            raise ValueError("no array starts at this position")
        self._buf[ctx:ctx + 4] = _U32.pack(n)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


def _decode_value(reader: _Reader) -> Value:
    tag = reader.take(1)[0]
    if tag == Tag.NIL:
        return None
    if tag == Tag.ERR:
        code = reader.unpack(_I32)
        return ErrorReply(code, reader.take(reader.unpack(_U32)))
    if tag == Tag.STR:
        return reader.take(reader.unpack(_U32))
    if tag == Tag.INT:
        return reader.unpack(_I64)
    if tag == Tag.DBL:
        return reader.unpack(_F64)
    if tag == Tag.ARR:
        n = reader.unpack(_U32)
        return [_decode_value(reader) for _ in range(n)]
    raise ProtocolError(f"unknown tag {tag}")


def decode_response(data: bytes | bytearray | memoryview) -> Value:
    """Decode a response body into Python values.

    Nil is None, strings are bytes, errors are :class:`ErrorReply` and
    arrays are lists.
    """
    reader = _Reader(data)
    value = _decode_value(reader)
    if not reader.done:
        raise ProtocolError("trailing data in response")
    return value


def _format_value(value: Value, lines: list) -> None:
    if value is None:
        lines.append("(nil)")
    elif isinstance(value, ErrorReply):
        lines.append(f"(err) {value.code} {value.message.decode('utf-8', 'replace')}")
    elif isinstance(value, bytes):
        lines.append(f"(str) {value.decode('utf-8', 'replace')}")
    elif isinstance(value, float):
        lines.append("(dbl) %g" % value)
    elif isinstance(value, list):
        lines.append(f"(arr) len={len(value)}")
        for item in value:
            _format_value(item, lines)
        lines.append("(arr) end")
    else:
        lines.append(f"(int) {value}")


def format_response(data: bytes | bytearray | memoryview) -> str:
    """Render a response body as human-readable lines."""
    lines: list = []
    _format_value(decode_response(data), lines)
    return "\n".join(lines)