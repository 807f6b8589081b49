"""Shared membership, routing and coordinator state for the relay."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .stats import StatsManager


class Outbound(Protocol):
    def write_line(self, line: str) -> bool: ...

    def close(self) -> None: ...


class NameRejected(ValueError):
    """Raised by try_register for an empty or already claimed name."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"name {name!r} rejected: {reason}")
        self.name = name
        self.reason = reason


@dataclass(frozen=True)
class JoinResult:
    name: str
    first: bool
    coordinator: str
    members: frozenset[str]


@dataclass(frozen=True)
class LeaveResult:
    name: str
    coordinator_changed: bool
    coordinator: str | None
    members: frozenset[str]


@dataclass(frozen=True)
class RosterSnapshot:
    coordinator: str | None
    members: frozenset[str]


class SessionRegistry:
    """
    Single source of truth for who is connected.

    This class is responsible for:
    - Claiming and releasing unique display names
    - Mapping each name to its outbound channel
    - Electing and re-electing the coordinator
    - Broadcast and private delivery

    Every operation holds one lock over names, routes and coordinator, so
    readers never see a name without a route or a stale coordinator. Delivery
    snapshots the recipients under the lock and writes after releasing it.
    """

    def __init__(self, stats: StatsManager | None = None) -> None:
        self.log = logging.getLogger("chatrelay.registry")
        self.stats = stats
        self._state_lock = threading.RLock()
        self._names: set[str] = set()
        self._routes: dict[str, Outbound] = {}
        self._coordinator: str | None = None

    def try_register(self, name: str, outbound: Outbound) -> JoinResult:
        if not name:
            raise NameRejected(name, "empty")

        with self._state_lock:
            if name in self._names:
                raise NameRejected(name, "taken")

            self._names.add(name)
            self._routes[name] = outbound
            first = self._coordinator is None
            if first:
                self._coordinator = name

            result = JoinResult(
                name=name,
                first=first,
                coordinator=self._coordinator,
                members=frozenset(self._names),
            )

        self.log.info(
            "Registered name=%r members=%s coordinator=%r",
            name,
            len(result.members),
            result.coordinator,
        )
        return result

    def unregister(self, name: str) -> LeaveResult | None:
        with self._state_lock:
            if name not in self._names:
                return None

            self._names.discard(name)
            self._routes.pop(name, None)

            changed = False
            if self._coordinator == name:
                self._coordinator = min(self._names) if self._names else None
                changed = True

            result = LeaveResult(
                name=name,
                coordinator_changed=changed,
                coordinator=self._coordinator,
                members=frozenset(self._names),
            )

        if changed:
            self.log.info(
                "Unregistered coordinator name=%r new_coordinator=%r members=%s",
                name,
                result.coordinator,
                len(result.members),
            )
        else:
            self.log.info(
                "Unregistered name=%r members=%s", name, len(result.members)
            )
        return result

    def broadcast(self, *lines: str, exclude: str | None = None) -> int:
        """Deliver ``lines`` in order to every member present right now.

        Returns the number of recipients that accepted every line.
        """
        with self._state_lock:
            recipients = [
                (n, out) for n, out in self._routes.items() if n != exclude
            ]

        delivered = 0
        for name, out in recipients:
            if self._deliver(name, out, lines):
                delivered += 1
        return delivered

    def send_private(self, target: str, line: str) -> bool:
        with self._state_lock:
            out = self._routes.get(target)

        if out is None:
            return False

        self._deliver(target, out, (line,))
        return True

    def _deliver(self, name: str, out: Outbound, lines) -> bool:
        for line in lines:
            try:
                ok = out.write_line(line)
            except Exception:
                self.log.debug("Write raised name=%r", name, exc_info=True)
                ok = False
            if not ok:
                self.log.debug("Write failed name=%r", name)
                if self.stats is not None:
                    self.stats.inc("write_failures")
                return False
        return True

    def snapshot_members(self) -> set[str]:
        with self._state_lock:
            return set(self._names)

    def snapshot(self) -> RosterSnapshot:
        with self._state_lock:
            return RosterSnapshot(self._coordinator, frozenset(self._names))

    @property
    def coordinator(self) -> str | None:
        with self._state_lock:
            return self._coordinator

    def __contains__(self, name: object) -> bool:
        with self._state_lock:
            return name in self._names

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._names)

    def clear_all(self) -> list[Outbound]:
        """
        Drop every member and return their channels for teardown.

        Used on shutdown only; handlers that later unregister get None back.
        """
        with self._state_lock:
            outs = list(self._routes.values())
            self._names.clear()
            self._routes.clear()
            self._coordinator = None
        return outs

    def get_stats(self) -> dict[str, Any]:
        with self._state_lock:
            return {
                "members": len(self._names),
                "coordinator": self._coordinator,
            }
