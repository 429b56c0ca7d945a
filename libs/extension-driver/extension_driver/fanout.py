"""Concurrent fan-out of independent per-unit operations."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from .errors import FanOutError

logger = logging.getLogger(__name__)

TaskFn = Callable[[], Awaitable[Any]]


async def run_best_effort(tasks: Mapping[str, TaskFn]) -> None:
    """
    Run all tasks concurrently and wait for every one of them.

    A failing task does not stop the others.

    Args:
        tasks: Mapping of sub-unit key to zero-argument coroutine function

    Raises:
        FanOutError: If any task failed, listing (key, error) in task order
    """
    if not tasks:
        return

    keys = list(tasks)
    results = await asyncio.gather(
        *(tasks[key]() for key in keys), return_exceptions=True
    )

    errors: list[tuple[str, BaseException]] = [
        (key, result)
        for key, result in zip(keys, results)
        if isinstance(result, BaseException)
    ]
    if errors:
        logger.warning(
            f"{len(errors)} of {len(keys)} task(s) failed: "
            f"{', '.join(key for key, _ in errors)}"
        )
        raise FanOutError(errors)


async def run_exit_on_first_error(tasks: Mapping[str, TaskFn]) -> None:
    """
    Run all tasks concurrently and stop at the first failure.

    On the first failure the remaining tasks are cancelled and joined, then
    the failure is re-raised unchanged. No task outlives this call.

    Args:
        tasks: Mapping of sub-unit key to zero-argument coroutine function

    Raises:
        Exception: The first error raised by any task
    """
    if not tasks:
        return

    running = {
        asyncio.ensure_future(fn()): key for key, fn in tasks.items()
    }
    try:
        done, pending = await asyncio.wait(
            running, return_when=asyncio.FIRST_EXCEPTION
        )
        failed = [
            task
            for task in running
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failed:
            first = failed[0]
            logger.warning(
                f"Task {running[first]} failed, cancelling {len(pending)} remaining task(s)"
            )
            raise first.exception()
    finally:
        for task in running:
            if not task.done():
                task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
