"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .registry import SessionRegistry


class StatsManager:
    """
    Manages relay statistics collection and reporting.

    Tracks counters for:
    - Connections accepted and names rejected
    - Joins, parts and coordinator changes
    - Broadcast and private messages
    - Failed writes to recipients
    - Activity log failures
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "names_rejected": 0,
            "joins": 0,
            "parts": 0,
            "coordinator_changes": 0,
            "msgs_broadcast": 0,
            "pms_delivered": 0,
            "pms_failed": 0,
            "write_failures": 0,
            "activity_failures": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        try:
            with self._lock:
                self._counters[key] = int(self._counters.get(key, 0)) + int(delta)
        except Exception:
            pass

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self, registry: SessionRegistry | None = None) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"chatrelay {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        if registry is not None:
            reg = registry.get_stats()
            lines.append(f"members={reg['members']} coordinator={reg['coordinator']}")
        lines.append(
            "sessions: connections={} names_rejected={} joins={} parts={} coordinator_changes={}".format(
                c.get("connections", 0),
                c.get("names_rejected", 0),
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("coordinator_changes", 0),
            )
        )
        lines.append(
            "messages: broadcast={} pm_delivered={} pm_failed={}".format(
                c.get("msgs_broadcast", 0),
                c.get("pms_delivered", 0),
                c.get("pms_failed", 0),
            )
        )
        lines.append(
            "faults: write_failures={} activity_failures={}".format(
                c.get("write_failures", 0),
                c.get("activity_failures", 0),
            )
        )

        return "\n".join(lines)
