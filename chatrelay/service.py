from __future__ import annotations

import logging
import signal
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from .activity import ActivityLog
from .config import RelayRuntimeConfig
from .handler import ConnectionHandler
from .registry import SessionRegistry
from .stats import StatsManager
from .transport import LineChannel, format_peer


class RelayService:
    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("chatrelay.relay")

        self._shutdown = threading.Event()

        self.stats_manager = StatsManager()
        # The only shared mutable state; every handler goes through it.
        self.registry = SessionRegistry(stats=self.stats_manager)
        self.activity = ActivityLog(config.activity_log_path, stats=self.stats_manager)

        self._listener: socket.socket | None = None
        self._pool: ThreadPoolExecutor | None = None
        self._accept_thread: threading.Thread | None = None
        self._channels: set[LineChannel] = set()
        self._channels_lock = threading.Lock()
        self.address: tuple[str, int] | None = None

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._shutdown.is_set()

    def start(self) -> None:
        if self._listener is not None:
            return

        if int(self.config.max_workers) < 1:
            raise ValueError("max_workers must be at least 1")

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((self.config.host, int(self.config.port)))
            listener.listen()
            # Periodic wakeups let the accept loop notice shutdown.
            listener.settimeout(0.5)
        except OSError:
            listener.close()
            raise

        self._listener = listener
        self.address = listener.getsockname()[:2]
        self.stats_manager.set_start_time()
        self.activity.mark_start()

        self._pool = ThreadPoolExecutor(
            max_workers=int(self.config.max_workers),
            thread_name_prefix="chatrelay-conn",
        )
        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="chatrelay-accept", daemon=True
        )
        self._accept_thread.start()

        self.log.info(
            "Relay listening host=%s port=%s max_workers=%s",
            self.address[0],
            self.address[1],
            self.config.max_workers,
        )
        if self.activity.enabled:
            self.log.info("Activity log path=%s", self.activity.path)

    def _accept_loop(self) -> None:
        listener = self._listener
        pool = self._pool
        if listener is None or pool is None:
            return

        while not self._shutdown.is_set():
            try:
                conn, addr = listener.accept()
            except TimeoutError:
                continue
            except OSError:
                if self._shutdown.is_set():
                    break
                self.log.exception("Accept failed")
                time.sleep(0.25)
                continue

            self.stats_manager.inc("connections")
            peer = format_peer(addr)
            self.log.debug("Connection accepted peer=%s", peer)
            try:
                pool.submit(self._serve, conn, peer)
            except RuntimeError:
                # Pool already shut down.
                conn.close()
                break

    def _serve(self, conn: socket.socket, peer: str) -> None:
        channel = LineChannel(
            conn, peer=peer, write_timeout_s=float(self.config.write_timeout_s)
        )
        with self._channels_lock:
            if self._shutdown.is_set():
                channel.close()
                return
            self._channels.add(channel)
        handler = ConnectionHandler(
            self.registry,
            channel,
            activity=self.activity,
            stats=self.stats_manager,
            name_max_chars=int(self.config.name_max_chars),
        )
        try:
            handler.run()
        finally:
            with self._channels_lock:
                self._channels.discard(channel)

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        listener = self._listener
        if listener is not None:
            try:
                listener.close()
            except OSError:
                pass

        self.registry.clear_all()
        with self._channels_lock:
            channels = list(self._channels)
            self._channels.clear()
        for channel in channels:
            try:
                channel.close()
            except Exception:
                pass

        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)

        self.log.info("Relay stopped\n%s", self.stats_manager.format_stats(self.registry))
