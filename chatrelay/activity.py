"""Append-only activity log of joins, leaves and messages."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .util import expand_path, now_stamp

if TYPE_CHECKING:
    from .stats import StatsManager

_SEPARATOR = "-" * 120


class ActivityLog:
    """Fire-and-forget event sink.

    ``append`` never raises: a failed write is logged locally and counted,
    and the chat flow carries on. A ``path`` of None disables the sink.
    """

    def __init__(self, path: str | None, stats: StatsManager | None = None) -> None:
        self.log = logging.getLogger("chatrelay.activity")
        self.path = Path(expand_path(path)) if path else None
        self.stats = stats
        self._write_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def mark_start(self) -> None:
        self.append(f"\n{_SEPARATOR}\nSERVER START: {now_stamp()}\n")

    def append(self, event: str) -> None:
        if self.path is None:
            return
        try:
            with self._write_lock:
                if self.path.parent and not self.path.parent.exists():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                fresh = not self.path.exists()
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(event + "\n")
                if fresh:
                    try:
                        os.chmod(self.path, 0o600)
                    except Exception:
                        pass
        except OSError as e:
            if self.stats is not None:
                self.stats.inc("activity_failures")
            self.log.warning("Activity log append failed path=%s err=%s", self.path, e)
            return

        self.log.debug("Stored activity event %r", event)
