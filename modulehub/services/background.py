"""Fire-and-forget background work, decoupled from the code that triggers it."""

import asyncio
from typing import Awaitable

import structlog

logger = structlog.get_logger(__name__)

# Module-level background task tracking
_pending_tasks: set[asyncio.Task] = set()


async def _guarded(coro: Awaitable, name: str) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("background_task_failed", task=name, error=str(e))


def run_in_background(coro: Awaitable, name: str = "background") -> asyncio.Task:
    """Schedule a coroutine without awaiting it.

    Failures are logged and never reach the caller.

    Args:
        coro: Coroutine to run in the background
        name: Label used in logs

    Returns:
        The created asyncio Task
    """
    task = asyncio.create_task(_guarded(coro, name))
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task


def pending_count() -> int:
    """Number of background tasks still running."""
    return len(_pending_tasks)


async def await_pending_tasks(timeout: float = 5.0) -> None:
    """Wait for all pending background tasks to complete.

    Called during application shutdown to drain pending deliveries.

    Args:
        timeout: Maximum seconds to wait for pending tasks
    """
    if not _pending_tasks:
        return

    logger.info("draining_background_tasks", count=len(_pending_tasks))
    try:
        await asyncio.wait_for(
            asyncio.gather(*_pending_tasks, return_exceptions=True),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("background_tasks_timeout", remaining=len(_pending_tasks))
