import socket
import threading
import time

from chatrelay.registry import SessionRegistry
from chatrelay.transport import LineChannel, format_peer

# Far larger than the shrunken socket buffers below, so an unread peer stalls it.
BIG = "x" * (1 << 20)


def _pair(write_timeout_s: float = 5.0):
    a, b = socket.socketpair()
    b.settimeout(5)
    return LineChannel(a, peer="pair", write_timeout_s=write_timeout_s), b


def _stalled_pair(write_timeout_s: float):
    a, b = socket.socketpair()
    a.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096)
    b.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096)
    return LineChannel(a, peer="stalled", write_timeout_s=write_timeout_s), b


def test_read_line_strips_terminators() -> None:
    ch, other = _pair()
    try:
        other.sendall(b"alice\r\nhello world\n")
        assert ch.read_line() == "alice"
        assert ch.read_line() == "hello world"
    finally:
        ch.close()
        other.close()


def test_read_line_returns_none_at_end_of_stream() -> None:
    ch, other = _pair()
    other.sendall(b"last\nunterminated")
    other.close()
    try:
        assert ch.read_line() == "last"
        assert ch.read_line() == "unterminated"
        assert ch.read_line() is None
    finally:
        ch.close()


def test_read_survives_idle_periods_longer_than_write_timeout() -> None:
    ch, other = _pair(write_timeout_s=0.05)
    try:
        timer = threading.Timer(0.3, other.sendall, args=(b"late\n",))
        timer.start()
        assert ch.read_line() == "late"
        timer.join()
    finally:
        ch.close()
        other.close()


def test_invalid_utf8_is_replaced() -> None:
    ch, other = _pair()
    try:
        other.sendall(b"caf\xff\n")
        assert ch.read_line() == "caf�"
    finally:
        ch.close()
        other.close()


def test_write_line_appends_newline() -> None:
    ch, other = _pair()
    try:
        assert ch.write_line("MESSAGE héllo")
        data = other.recv(1024)
        assert data == "MESSAGE héllo\n".encode("utf-8")
    finally:
        ch.close()
        other.close()


def test_write_after_close_fails_quietly() -> None:
    ch, other = _pair()
    ch.close()
    ch.close()
    try:
        assert not ch.write_line("SUBMITNAME")
        assert ch.read_line() is None
    finally:
        other.close()


def test_write_to_stalled_reader_times_out() -> None:
    ch, other = _stalled_pair(write_timeout_s=0.2)
    try:
        started = time.monotonic()
        assert not ch.write_line(BIG)
        assert time.monotonic() - started < 3
        assert not ch.write_line("MESSAGE later")
    finally:
        ch.close()
        other.close()


def test_close_does_not_wait_for_blocked_writer() -> None:
    ch, other = _stalled_pair(write_timeout_s=0)
    results: list[bool] = []
    writer = threading.Thread(target=lambda: results.append(ch.write_line(BIG)), daemon=True)
    writer.start()
    time.sleep(0.2)
    assert writer.is_alive()

    closer = threading.Thread(target=ch.close, daemon=True)
    closer.start()
    closer.join(timeout=3)
    writer.join(timeout=3)
    try:
        assert not closer.is_alive()
        assert not writer.is_alive()
        assert results == [False]
        assert not ch.write_line("MESSAGE after")
    finally:
        other.close()


def test_stalled_member_does_not_hold_up_other_senders() -> None:
    reg = SessionRegistry()
    slow, slow_peer = _stalled_pair(write_timeout_s=0.2)
    fast, fast_peer = _pair()
    reg.try_register("slow", slow)
    reg.try_register("fast", fast)

    first = threading.Thread(
        target=reg.broadcast, args=(BIG,), kwargs={"exclude": "fast"}, daemon=True
    )
    first.start()
    second = threading.Thread(target=reg.broadcast, args=("MESSAGE hello",), daemon=True)
    second.start()

    second.join(timeout=3)
    first.join(timeout=3)
    try:
        assert not second.is_alive()
        assert not first.is_alive()
        assert fast_peer.recv(1024) == b"MESSAGE hello\n"
    finally:
        for ch in (slow, fast):
            ch.close()
        slow_peer.close()
        fast_peer.close()


def test_format_peer() -> None:
    assert format_peer(("127.0.0.1", 5000)) == "127.0.0.1:5000"
    assert format_peer(None) == "-"
    assert format_peer("") == "-"
