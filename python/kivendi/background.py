"""Detached best-effort work.

REST handlers schedule post-response work through FastAPI BackgroundTasks.
WebSocket loops have no response to attach work to, so they use
spawn_detached(): the sync callable runs in the threadpool inside an
asyncio task that outlives the frame that spawned it. Failures are logged,
never raised.

Both paths accept the same `Schedule` signature, so services take a
`schedule` callable and stay agnostic of where they run.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from starlette.concurrency import run_in_threadpool

from kivendi.logging import get_logger

logger = get_logger(__name__)

Schedule = Callable[..., Any]

_pending: set[asyncio.Task] = set()


async def _run_detached(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    try:
        await run_in_threadpool(fn, *args, **kwargs)
    except Exception:
        logger.exception("detached_task_failed", task=getattr(fn, "__name__", repr(fn)))


def spawn_detached(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Task:
    """Run fn(*args, **kwargs) in the threadpool without awaiting it.

    Must be called from a running event loop. A strong reference is kept
    until the task finishes.
    """
    task = asyncio.get_running_loop().create_task(_run_detached(fn, *args, **kwargs))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_detached(timeout_s: float = 5.0) -> None:
    """Wait for in-flight detached tasks (shutdown, tests)."""
    if not _pending:
        return
    _, still_running = await asyncio.wait(set(_pending), timeout=timeout_s)
    for task in still_running:
        task.cancel()
