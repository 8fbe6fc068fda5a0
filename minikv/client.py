"""Command-line client: sends one command and prints the response."""

from __future__ import annotations

import os
import socket
import struct
import sys
from collections.abc import Iterable

from minikv.protocol import (
    CLIENT_MAX_MSG,
    ProtocolError,
    encode_request,
    format_response,
    frame,
)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 1234

_HEADER = struct.Struct("<I")


def send_request(sock: socket.socket, args: Iterable[bytes | str]) -> None:
    """Send ``args`` as one request; ProtocolError if it is too long."""
    body = encode_request(args)
    if len(body) > CLIENT_MAX_MSG:
        raise ProtocolError("request too long")
    sock.sendall(frame(body))


def _read_full(sock: socket.socket, n: int) -> bytes:
    parts = []
    while n > 0:
        chunk = sock.recv(n)
        if not chunk:
            raise EOFError("EOF")
        parts.append(chunk)
        n -= len(chunk)
    return b"".join(parts)


def read_response(sock: socket.socket) -> bytes:
    """Read one response and return its body."""
    (length,) = _HEADER.unpack(_read_full(sock, 4))
    if length > CLIENT_MAX_MSG:
        raise ProtocolError("too long")
    return _read_full(sock, length)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    host = os.environ.get("MINIKV_HOST", DEFAULT_HOST)
    port = int(os.environ.get("MINIKV_PORT", DEFAULT_PORT))
    try:
        sock = socket.create_connection((host, port))
    except OSError as exc:
        print(f"connect: {exc}", file=sys.stderr)
        return 1
    with sock:
        try:
            send_request(sock, args)
            body = read_response(sock)
        except EOFError:
            print("EOF", file=sys.stderr)
            return 0
        except ProtocolError as exc:
            print(exc, file=sys.stderr)
            return 0
        except OSError:
            print("read() error", file=sys.stderr)
            return 0
        try:
            text = format_response(body)
        except ProtocolError:
            print("bad response", file=sys.stderr)
            return 0
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())