"""
Process supervisor.

Binds the listening socket once, runs one uvicorn worker per configured
count, prints what the workers report and replaces workers that exit.
"""
import logging
import multiprocessing
import queue as queue_module
import signal
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import uvicorn

from gallery_api.cluster.worker import MESSAGE_ERROR, MESSAGE_LOG, MESSAGE_WARN, run_worker
from gallery_api.config import Settings, get_settings

logger = logging.getLogger("gallery_api.supervisor")

PRIMARY = "Primary"

# A worker dying sooner than this after start counts as a crash loop
DEFAULT_CRASH_WINDOW = 10.0
DEFAULT_MAX_BACKOFF = 30.0

# Seconds a worker gets to finish after SIGTERM
SHUTDOWN_TIMEOUT = 30.0

_LEVELS = {
    MESSAGE_LOG: logging.INFO,
    MESSAGE_WARN: logging.WARNING,
    MESSAGE_ERROR: logging.ERROR,
}


@dataclass
class WorkerHandle:
    id: int
    process: multiprocessing.process.BaseProcess
    started_at: float = field(default_factory=time.monotonic)

    @property
    def label(self) -> str:
        return f"Worker #{self.id}"


class Supervisor:
    """
    Keeps ``worker_count`` workers alive.

    A worker exiting within ``crash_window`` seconds of its start doubles the
    restart delay (1s, 2s, 4s ... up to ``max_backoff``); one that lived
    longer resets it. Restarts are never abandoned.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        worker_count: Optional[int] = None,
        crash_window: float = DEFAULT_CRASH_WINDOW,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        process_factory: Optional[Callable[[int], multiprocessing.process.BaseProcess]] = None,
        message_queue=None,
    ):
        self.settings = settings or get_settings()
        self.worker_count = worker_count or self.settings.worker_count
        self.crash_window = crash_window
        self.max_backoff = max_backoff

        self._context = multiprocessing.get_context("spawn")
        self.queue = message_queue if message_queue is not None else self._context.Queue()
        self._process_factory = process_factory or self._spawn_process

        self.workers: Dict[int, WorkerHandle] = {}
        self.backoff = 0.0
        self._next_id = 1
        self._pending_restarts: List[float] = []
        self._sockets = []
        self._stopping = False

    # ============== Workers ==============

    def _spawn_process(self, worker_id: int) -> multiprocessing.process.BaseProcess:
        return self._context.Process(
            target=run_worker,
            args=(worker_id, self.queue, self._sockets),
            name=f"gallery-api-worker-{worker_id}",
        )

    def spawn(self) -> WorkerHandle:
        worker_id = self._next_id
        self._next_id += 1

        process = self._process_factory(worker_id)
        process.start()
        handle = WorkerHandle(id=worker_id, process=process)
        self.workers[worker_id] = handle
        self.log(PRIMARY, f"{handle.label} is online", logging.INFO)
        return handle

    def next_delay(self, lifetime: float) -> float:
        """Restart delay after a worker that ran for ``lifetime`` seconds."""
        if lifetime < self.crash_window:
            self.backoff = min(self.max_backoff, self.backoff * 2 if self.backoff else 1.0)
        else:
            self.backoff = 0.0
        return self.backoff

    def handle_exit(self, handle: WorkerHandle, now: Optional[float] = None) -> float:
        """Unregister a dead worker and schedule its replacement; returns the delay."""
        now = time.monotonic() if now is None else now
        self.workers.pop(handle.id, None)
        self.log(handle.label, f"{handle.label} died with code: {handle.process.exitcode}", logging.WARNING)

        delay = self.next_delay(now - handle.started_at)
        if delay:
            self.log(PRIMARY, f"Starting a new worker in {delay:g}s", logging.INFO)
        else:
            self.log(PRIMARY, "Starting a new worker", logging.INFO)
        self._pending_restarts.append(now + delay)
        return delay

    def reap(self, now: Optional[float] = None) -> None:
        """Handle exited workers and start the replacements that are due."""
        now = time.monotonic() if now is None else now
        for handle in list(self.workers.values()):
            if not handle.process.is_alive():
                handle.process.join(timeout=0)
                self.handle_exit(handle, now)

        due = [at for at in self._pending_restarts if at <= now]
        self._pending_restarts = [at for at in self._pending_restarts if at > now]
        for _ in due:
            if not self._stopping:
                self.spawn()

    # ============== Messages ==============

    @staticmethod
    def log(label: str, content: str, level: int) -> None:
        logger.log(level, "[%s] %s", label, content)

    def dispatch(self, message) -> bool:
        """Print a worker message; unknown message types are ignored."""
        if not isinstance(message, dict):
            return False
        level = _LEVELS.get(message.get("type"))
        if level is None:
            return False
        self.log(f"Worker #{message.get('worker', '?')}", str(message.get("content", "")), level)
        return True

    def drain(self, timeout: float = 0.5) -> int:
        """Dispatch queued messages, waiting up to ``timeout`` for the first one."""
        handled = 0
        block = True
        while True:
            try:
                message = self.queue.get(block=block, timeout=timeout if block else None)
            except queue_module.Empty:
                return handled
            block = False
            self.dispatch(message)
            handled += 1

    # ============== Lifecycle ==============

    def stop(self, *_args) -> None:
        self._stopping = True

    def bind(self) -> None:
        config = uvicorn.Config("gallery_api.main:app", host=self.settings.host, port=self.settings.port)
        self._sockets = [config.bind_socket()]
        self.log(PRIMARY, f"Listening on {self.settings.host}:{self.settings.port}", logging.INFO)

    def run(self) -> None:
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)

        self.bind()
        self.log(PRIMARY, f"Starting {self.worker_count} worker(s)", logging.INFO)
        for _ in range(self.worker_count):
            self.spawn()

        try:
            while not self._stopping:
                self.drain()
                self.reap()
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        self._stopping = True
        self.log(PRIMARY, "Stopping workers", logging.INFO)
        for handle in self.workers.values():
            if handle.process.is_alive():
                handle.process.terminate()
        for handle in self.workers.values():
            handle.process.join(timeout=SHUTDOWN_TIMEOUT)
            if handle.process.is_alive():
                handle.process.kill()
                handle.process.join()
        self.drain(timeout=0)
        self.workers.clear()

        for sock in self._sockets:
            sock.close()
        self._sockets = []
        self.log(PRIMARY, "Stopped", logging.INFO)
