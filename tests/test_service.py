import socket

import pytest

from chatrelay.config import RelayRuntimeConfig
from chatrelay.service import RelayService


class Client:
    def __init__(self, address) -> None:
        self.sock = socket.create_connection(address, timeout=5)
        self.reader = self.sock.makefile("r", encoding="utf-8", newline="\n")

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\n").encode("utf-8"))

    def recv(self) -> str:
        line = self.reader.readline()
        assert line, "connection closed"
        return line.rstrip("\n")

    def recv_until(self, prefix: str) -> list[str]:
        lines = []
        while True:
            line = self.recv()
            lines.append(line)
            if line.startswith(prefix):
                return lines

    def close(self) -> None:
        self.reader.close()
        self.sock.close()


@pytest.fixture
def relay(tmp_path):
    cfg = RelayRuntimeConfig(
        host="127.0.0.1",
        port=0,
        max_workers=8,
        activity_log_path=str(tmp_path / "activity.log"),
    )
    svc = RelayService(cfg)
    svc.start()
    yield svc
    svc.stop()


def test_clients_chat_through_relay(relay, tmp_path) -> None:
    alice = Client(relay.address)
    bob = Client(relay.address)
    try:
        assert alice.recv() == "SUBMITNAME"
        alice.send("alice")
        assert alice.recv() == "NAMEACCEPTED alice"
        assert alice.recv_until("COORDINATOR")[-1] == "COORDINATOR alice"

        assert bob.recv() == "SUBMITNAME"
        bob.send("alice")
        assert bob.recv() == "SUBMITNAME"
        bob.send("bob")
        assert bob.recv() == "NAMEACCEPTED bob"
        assert bob.recv_until("MEMBERS")[-2:] == ["COORDINATOR alice", "MEMBERS [alice, bob]"]
        assert alice.recv_until("MEMBERS")[-1] == "MEMBERS [alice, bob]"

        bob.send("hi alice")
        assert alice.recv().endswith("): hi alice")
        assert bob.recv().startswith("MESSAGE bob(")

        alice.send("/quit")
        lines = bob.recv_until("MEMBERS")
        assert lines[0].startswith("MESSAGE alice has left. The new coordinator is: bob(")
        assert lines[1:] == ["COORDINATOR bob", "MEMBERS [bob]"]
    finally:
        alice.close()
        bob.close()

    assert "SERVER START" in (tmp_path / "activity.log").read_text(encoding="utf-8")
    assert relay.stats_manager.get("connections") == 2


def test_stop_disconnects_clients(relay) -> None:
    client = Client(relay.address)
    try:
        assert client.recv() == "SUBMITNAME"
        relay.stop()
        assert client.reader.readline() == ""
        assert not relay.running
        assert len(relay.registry) == 0
    finally:
        client.close()


def test_invalid_worker_count() -> None:
    svc = RelayService(RelayRuntimeConfig(host="127.0.0.1", port=0, max_workers=0))
    with pytest.raises(ValueError):
        svc.start()
