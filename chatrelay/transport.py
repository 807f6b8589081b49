"""Line-oriented channel over a connected TCP socket."""

from __future__ import annotations

import logging
import socket
import threading

from .constants import WRITE_TIMEOUT_S

_RECV_SIZE = 4096


def format_peer(addr) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    if addr:
        return str(addr)
    return "-"


class LineChannel:
    """
    One client's duplex text stream.

    Reads happen only on the owning handler's thread. Writes may come from any
    handler thread and are serialized per channel, which keeps a sender's lines
    in order at each recipient.

    The socket timeout bounds each write; a client that stops reading is cut
    off after ``write_timeout_s`` instead of parking every sender behind it.
    Reads simply retry when that timeout fires.
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        peer: str | None = None,
        write_timeout_s: float | None = WRITE_TIMEOUT_S,
    ) -> None:
        self.log = logging.getLogger("chatrelay.transport")
        self._sock = sock
        self._sock.settimeout(write_timeout_s if write_timeout_s and write_timeout_s > 0 else None)
        self._buf = b""
        self._eof = False
        self._write_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self.peer = peer or "-"

    def read_line(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream."""
        while b"\n" not in self._buf:
            if self._eof or self._closed:
                break
            try:
                data = self._sock.recv(_RECV_SIZE)
            except TimeoutError:
                continue
            if not data:
                self._eof = True
                break
            self._buf += data

        if b"\n" in self._buf:
            raw, self._buf = self._buf.split(b"\n", 1)
        elif self._buf and not self._closed:
            raw, self._buf = self._buf, b""
        else:
            return None
        return raw.decode("utf-8", errors="replace").rstrip("\r")

    def write_line(self, line: str) -> bool:
        data = (line + "\n").encode("utf-8")
        with self._write_lock:
            if self._closed:
                return False
            try:
                self._sock.sendall(data)
                return True
            except OSError as e:
                self.log.warning(
                    "Send failed peer=%s bytes=%s err=%s", self.peer, len(data), e
                )

        # Wake the owning handler so it tears the session down.
        self._shutdown()
        return False

    def _shutdown(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        # Shutdown first: it makes a sendall stuck on another thread fail,
        # which frees the write lock.
        self._shutdown()

        got_lock = self._write_lock.acquire(timeout=1.0)
        try:
            self._sock.close()
        except OSError as e:
            self.log.debug("Socket close failed peer=%s err=%s", self.peer, e)
        finally:
            if got_lock:
                self._write_lock.release()
