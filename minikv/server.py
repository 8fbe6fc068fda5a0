"""Single-threaded, event-driven TCP server for the key-value database."""

from __future__ import annotations

import argparse
import contextlib
import logging
import selectors
import socket
import struct
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from minikv.protocol import (
    MAX_MSG,
    ErrorCode,
    ProtocolError,
    ResponseBuffer,
    frame,
    parse_request,
)
from minikv.store import Database, monotonic_ms

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1234
IDLE_TIMEOUT_MS = 5 * 1000
READ_CHUNK = 64 * 1024

_HEADER = struct.Struct("<I")
_LISTENER = object()
_WAKEUP = object()

log = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """State of one client connection."""

    sock: socket.socket | None
    last_active_ms: int = 0
    want_read: bool = True
    want_write: bool = False
    want_close: bool = False
    incoming: bytearray = field(default_factory=bytearray)
    outgoing: bytearray = field(default_factory=bytearray)


class Server:
    """Accepts clients, answers their requests and expires idle connections."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        database: Database | None = None,
        clock: Callable[[], int] = monotonic_ms,
        idle_timeout_ms: int = IDLE_TIMEOUT_MS,
    ) -> None:
        self._clock = clock
        self.db = database if database is not None else Database(clock=clock)
        self.idle_timeout_ms = idle_timeout_ms
        self._listener = socket.create_server((host, port))
        self._listener.setblocking(False)
        self.address = self._listener.getsockname()
        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._listener, selectors.EVENT_READ, _LISTENER)
        self._selector.register(self._wake_r, selectors.EVENT_READ, _WAKEUP)
        # Ordered oldest activity first; moved to the end on every event.
        self._idle: OrderedDict[Connection, None] = OrderedDict()
        self._lock = threading.Lock()
        self._stopping = False
        self._serving = False
        self._closed = False

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def handle_data(self, conn: Connection, data: bytes) -> int:
        """Take bytes received on ``conn``; return how many requests were answered."""
        conn.incoming += data
        handled = 0
        while self._try_one_request(conn):
            handled += 1
        if conn.outgoing:
            conn.want_read = False
            conn.want_write = True
        return handled

    def _try_one_request(self, conn: Connection) -> bool:
        if len(conn.incoming) < 4:
            return False
        (length,) = _HEADER.unpack_from(conn.incoming)
        if length > MAX_MSG:
            log.warning("too long")
            conn.want_close = True
            return False
        if 4 + length > len(conn.incoming):
            return False
        try:
            cmd = parse_request(memoryview(conn.incoming)[4:4 + length])
        except ProtocolError:
            log.warning("bad request")
            conn.want_close = True
            return False
        out = ResponseBuffer()
        self.db.execute(cmd, out)
        if len(out) > MAX_MSG:
            out = ResponseBuffer()
            out.err(ErrorCode.TOO_BIG, "response is too big.")
        conn.outgoing += frame(out.getvalue())
        del conn.incoming[:4 + length]
        return True

    def next_timeout(self) -> int | None:
        """Milliseconds until the next timer is due, or None if there is none."""
        now = self._clock()
        next_ms = None
        if self._idle:
            first = next(iter(self._idle))
            next_ms = first.last_active_ms + self.idle_timeout_ms
        expiry = self.db.next_expiry()
        if expiry is not None and (next_ms is None or expiry < next_ms):
            next_ms = expiry
        if next_ms is None:
            return None
        return max(next_ms - now, 0)

    def process_timers(self) -> int:
        """Close idle connections and expire keys; return connections closed."""
        now = self._clock()
        closed = 0
        while self._idle:
            conn = next(iter(self._idle))
            if conn.last_active_ms + self.idle_timeout_ms >= now:
                break
            log.info("removing idle connection: %s", _describe(conn))
            self._destroy(conn)
            closed += 1
        self.db.process_expired(now)
        return closed

    def serve_forever(self) -> None:
        """Run the event loop until :meth:`close` is called."""
        with self._lock:
            if self._stopping:
                return
            self._serving = True
        try:
            while not self._stopping:
                timeout = self.next_timeout()
                events = self._selector.select(None if timeout is None else timeout / 1000)
                for key, mask in events:
                    if key.data is _LISTENER:
                        self._accept()
                    elif key.data is _WAKEUP:
                        with contextlib.suppress(OSError):
                            self._wake_r.recv(READ_CHUNK)
                    else:
                        self._handle_ready(key.data, mask)
                self.process_timers()
        finally:
            with self._lock:
                self._serving = False
            self._cleanup()

    def close(self) -> None:
        """Stop serving and release all sockets and the database."""
        with self._lock:
            self._stopping = True
            serving = self._serving
        if serving:
            with contextlib.suppress(OSError):
                self._wake_w.send(b"\0")
        else:
            self._cleanup()

    def _cleanup(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for conn in list(self._idle):
            self._destroy(conn)
        self._selector.close()
        for sock in (self._listener, self._wake_r, self._wake_w):
            sock.close()
        self.db.close()

    def _accept(self) -> Connection | None:
        try:
            sock, addr = self._listener.accept()
        except BlockingIOError:
            return None
        except OSError as exc:
            log.error("accept() error: %s", exc)
            return None
        log.info("new client from %s:%s", addr[0], addr[1])
        sock.setblocking(False)
        conn = Connection(sock, last_active_ms=self._clock())
        self._idle[conn] = None
        self._selector.register(sock, selectors.EVENT_READ, conn)
        return conn

    def _destroy(self, conn: Connection) -> None:
        self._idle.pop(conn, None)
        if conn.sock is not None:
            with contextlib.suppress(KeyError, ValueError):
                self._selector.unregister(conn.sock)
            conn.sock.close()

    def _handle_ready(self, conn: Connection, mask: int) -> None:
        conn.last_active_ms = self._clock()
        self._idle.move_to_end(conn)
        if mask & selectors.EVENT_READ:
            self._handle_read(conn)
        if mask & selectors.EVENT_WRITE and not conn.want_close:
            self._handle_write(conn)
        if conn.want_close:
            self._destroy(conn)
            return
        events = 0
        if conn.want_read:
            events |= selectors.EVENT_READ
        if conn.want_write:
            events |= selectors.EVENT_WRITE
        self._selector.modify(conn.sock, events or selectors.EVENT_READ, conn)

    def _handle_read(self, conn: Connection) -> None:
        try:
            data = conn.sock.recv(READ_CHUNK)
        except BlockingIOError:
            return
        except OSError as exc:
            log.error("read() error: %s", exc)
            conn.want_close = True
            return
        if not data:
            log.info("client closed" if not conn.incoming else "unexpected EOF")
            conn.want_close = True
            return
        self.handle_data(conn, data)
        if conn.outgoing:
            self._handle_write(conn)

    def _handle_write(self, conn: Connection) -> None:
        try:
            sent = conn.sock.send(conn.outgoing)
        except BlockingIOError:
            return
        except OSError as exc:
            log.error("write() error: %s", exc)
            conn.want_close = True
            return
        del conn.outgoing[:sent]
        if not conn.outgoing:
            conn.want_read = True
            conn.want_write = False


def _describe(conn: Connection) -> str:
    if conn.sock is None:
        return "<detached>"
    try:
        return str(conn.sock.fileno())
    except OSError:
        return "<closed>"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the key-value server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    opts = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = Server(opts.host, opts.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())