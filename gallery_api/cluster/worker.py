"""
Worker process bootstrap.

A worker builds the application, serves it with uvicorn on the socket
inherited from the supervisor and reports its log records, uncaught
exceptions and asyncio errors over the shared message queue as
{"worker": id, "type": "log" | "warn" | "error", "content": str}.
"""
import asyncio
import logging
import os
import socket
import sys
import traceback
from typing import Dict, List, Optional

MESSAGE_LOG = "log"
MESSAGE_WARN = "warn"
MESSAGE_ERROR = "error"


def message_type(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return MESSAGE_ERROR
    if levelno >= logging.WARNING:
        return MESSAGE_WARN
    return MESSAGE_LOG


class QueueRelayHandler(logging.Handler):
    """Forward INFO and above to the supervisor."""

    def __init__(self, worker_id: int, queue, level: int = logging.INFO):
        super().__init__(level)
        self.worker_id = worker_id
        self.queue = queue
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(
                {
                    "worker": self.worker_id,
                    "type": message_type(record.levelno),
                    "content": self.format(record),
                }
            )
        except Exception:
            self.handleError(record)


def report_error(worker_id: int, queue, content: str) -> None:
    queue.put({"worker": worker_id, "type": MESSAGE_ERROR, "content": content})


def install_excepthook(worker_id: int, queue) -> None:
    """Uncaught exceptions are sent to the supervisor with their traceback."""

    def excepthook(exc_type, exc_value, exc_tb):
        report_error(worker_id, queue, "".join(traceback.format_exception(exc_type, exc_value, exc_tb)))

    sys.excepthook = excepthook


def loop_exception_handler(worker_id: int, queue):
    """asyncio handler reporting errors of tasks nobody awaited."""

    def handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is not None:
            content = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            content = str(context.get("message", "Unhandled asyncio error"))
        report_error(worker_id, queue, content)

    return handler


async def _serve(worker_id: int, queue, sockets: List[socket.socket]) -> None:
    import uvicorn

    from gallery_api.server import create_app

    asyncio.get_running_loop().set_exception_handler(loop_exception_handler(worker_id, queue))

    app = create_app()
    config = uvicorn.Config(app, log_config=None, lifespan="on")
    server = uvicorn.Server(config)
    await server.serve(sockets=sockets)


def run_worker(
    worker_id: int,
    queue,
    sockets: List[socket.socket],
    overrides: Optional[Dict[str, str]] = None,
) -> None:
    """
    Process entry point.

    Args:
        worker_id: id assigned by the supervisor
        queue: supervisor message queue
        sockets: listening sockets bound by the supervisor
        overrides: environment variables applied before settings are read
    """
    os.environ.update(overrides or {})
    install_excepthook(worker_id, queue)

    try:
        from gallery_api.utils.logger import setup_logging

        setup_logging(extra_handlers=[QueueRelayHandler(worker_id, queue)], local_output=False)
        asyncio.run(_serve(worker_id, queue, sockets))
    except Exception:
        report_error(worker_id, queue, traceback.format_exc())
        sys.exit(1)
