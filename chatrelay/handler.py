from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from . import codec
from .constants import NAME_MAX_CHARS
from .registry import NameRejected, SessionRegistry
from .util import normalize_name, now_hhmm

if TYPE_CHECKING:
    from .activity import ActivityLog
    from .stats import StatsManager

STATE_NEGOTIATING = "negotiating"
STATE_ACTIVE = "active"
STATE_TERMINATED = "terminated"


class Channel(Protocol):
    peer: str

    def read_line(self) -> str | None: ...

    def write_line(self, line: str) -> bool: ...

    def close(self) -> None: ...


class _HeldOutbound:
    """
    Registry route for a member whose NAMEACCEPTED has not gone out yet.

    Lines other handlers send in that window are queued and flushed, in order,
    by ``release`` once the acceptance line is written.
    """

    def __init__(self, channel: Channel) -> None:
        self._channel = channel
        self._lock = threading.Lock()
        self._held: list[str] | None = []

    def write_line(self, line: str) -> bool:
        with self._lock:
            if self._held is not None:
                self._held.append(line)
                return True
        return self._channel.write_line(line)

    def release(self) -> None:
        with self._lock:
            held, self._held = self._held or [], None
            for line in held:
                if not self._channel.write_line(line):
                    break

    def close(self) -> None:
        self._channel.close()


class ConnectionHandler:
    """
    Drives one client from name negotiation to teardown.

    States move strictly forward: negotiating -> active -> terminated. The
    teardown step runs exactly once on every exit path, including faults.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        channel: Channel,
        *,
        activity: ActivityLog | None = None,
        stats: StatsManager | None = None,
        clock: Callable[[], str] = now_hhmm,
        name_max_chars: int = NAME_MAX_CHARS,
    ) -> None:
        self.log = logging.getLogger("chatrelay.handler")
        self.registry = registry
        self.channel = channel
        self.activity = activity
        self.stats = stats
        self.clock = clock
        self.name_max_chars = name_max_chars
        self.state = STATE_NEGOTIATING
        self.name: str | None = None
        self._joined_first = False
        self._route: _HeldOutbound | None = None

    @property
    def peer(self) -> str:
        return getattr(self.channel, "peer", "-")

    def run(self) -> None:
        try:
            if self._negotiate():
                self._enter_active()
                self._message_loop()
        except Exception as e:
            self.log.info(
                "Connection fault name=%r peer=%s err=%s", self.name, self.peer, e
            )
            self.log.debug("Connection fault detail", exc_info=True)
        finally:
            self._teardown()

    def _inc(self, key: str) -> None:
        if self.stats is not None:
            self.stats.inc(key)

    def _record(self, event: str) -> None:
        if self.activity is not None:
            self.activity.append(event)

    def _send(self, line: str) -> None:
        if not self.channel.write_line(line):
            raise ConnectionError("write to client failed")

    def _negotiate(self) -> bool:
        while True:
            self._send(codec.encode_submit_name())
            candidate = self.channel.read_line()
            if candidate is None:
                self.log.debug("End of stream during name negotiation peer=%s", self.peer)
                return False

            name = normalize_name(candidate, max_chars=self.name_max_chars)
            if name is None:
                self._inc("names_rejected")
                self.log.debug("Name rejected peer=%s reason=invalid", self.peer)
                continue

            route = _HeldOutbound(self.channel)
            try:
                joined = self.registry.try_register(name, route)
            except NameRejected as e:
                self._inc("names_rejected")
                self.log.debug("Name rejected peer=%s reason=%s", self.peer, e.reason)
                continue

            self.name = name
            self.state = STATE_ACTIVE
            self._joined_first = joined.first
            self._route = route
            return True

    def _enter_active(self) -> None:
        name = self.name
        t = self.clock()

        try:
            self._send(codec.encode_name_accepted(name))
        finally:
            self._route.release()
        self.log.info("%s joined peer=%s", name, self.peer)
        self._inc("joins")
        self._record(f"{name} joined ({t})")

        self.registry.broadcast(
            codec.encode_message(codec.joined_text(name, t)), exclude=name
        )

        if self._joined_first:
            self._record(f"{name} is coordinator ({t})")
            self._send(codec.encode_message(codec.first_member_text(t)))
            self._send(codec.encode_coordinator(name))
        else:
            roster = self.registry.snapshot()
            self.registry.broadcast(
                codec.encode_coordinator(roster.coordinator),
                codec.encode_members(roster.members),
            )

    def _message_loop(self) -> None:
        while True:
            line = self.channel.read_line()
            if line is None:
                self.log.debug("End of stream name=%r peer=%s", self.name, self.peer)
                return

            if codec.parse_quit(line):
                self.log.debug("Quit requested name=%r", self.name)
                return

            is_private, pm = codec.parse_private(line)
            if is_private:
                self._handle_private(pm)
            else:
                self._handle_chat(line)

    def _handle_private(self, pm: codec.PrivateMessage | None) -> None:
        name = self.name
        t = self.clock()

        if pm is None or not self.registry.send_private(
            pm.target, codec.encode_message(codec.private_text(name, t, pm.body))
        ):
            self._inc("pms_failed")
            self._send(codec.encode_message(codec.wrong_command_text(t)))
            return

        self._inc("pms_delivered")
        self._send(
            codec.encode_message(codec.private_echo_text(pm.target, t, pm.body))
        )
        self._record(f"(private): {name} -> {pm.target}: {pm.body}({t})")

    def _handle_chat(self, text: str) -> None:
        t = self.clock()
        self._inc("msgs_broadcast")
        self.registry.broadcast(
            codec.encode_message(codec.chat_text(self.name, t, text))
        )
        self._record(f"{self.name}({t}): {text}")

    def _teardown(self) -> None:
        if self.state == STATE_TERMINATED:
            return
        was_active = self.state == STATE_ACTIVE
        self.state = STATE_TERMINATED

        name = self.name
        try:
            if was_active and name is not None:
                self._announce_leave(name)
        except Exception:
            self.log.warning("Leave notification failed name=%r", name, exc_info=True)
        finally:
            try:
                self.channel.close()
            except Exception as e:
                self.log.warning("Close failed name=%r peer=%s err=%s", name, self.peer, e)

        self.log.info("%s disconnected peer=%s", name if name else "-", self.peer)

    def _announce_leave(self, name: str) -> None:
        left = self.registry.unregister(name)
        if left is None:
            return

        t = self.clock()
        self._inc("parts")
        roster_lines = (
            codec.encode_coordinator(left.coordinator),
            codec.encode_members(left.members),
        )

        if left.coordinator_changed:
            self._inc("coordinator_changes")
            self.registry.broadcast(
                codec.encode_message(
                    codec.left_new_coordinator_text(name, left.coordinator, t)
                ),
                *roster_lines,
            )
            self._record(f"{name} disconnected. {left.coordinator} is coordinator ({t})")
        else:
            self.registry.broadcast(
                codec.encode_message(codec.left_text(name, t)), *roster_lines
            )
            self._record(f"{name} disconnected ({t})")
