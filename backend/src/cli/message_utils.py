from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Optional

from textual.message import Message
from textual.message_pump import MessagePump

logger = logging.getLogger(__name__)


def dispatch_message(pump: MessagePump, message: Message) -> None:
    """Post a Textual message and ensure awaitables are scheduled."""
    logger.debug(f"dispatch pump={pump.__class__.__name__} message={message.__class__.__name__}")
    result = pump.post_message(message)
    if inspect.isawaitable(result):
        asyncio.create_task(result)


def drain_task_result(task: asyncio.Task, label: str, log: Optional[logging.Logger] = None) -> None:
    """Done-callback helper: surface unexpected errors from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        (log or logger).error(f"{label} task failed: {exc}")


def track_task(coro: Any, label: str, log: Optional[logging.Logger] = None) -> asyncio.Task:
    task = asyncio.create_task(coro)
    task.add_done_callback(lambda completed: drain_task_result(completed, label, log))
    return task
