#!/usr/bin/env python3
"""
Gaslighter - Scheduling Helpers

Rate limiting for whatever drives ``load_more`` (scroll events, an autoscroll
timer), plus the scroll arithmetic those drivers use.
"""

import asyncio
import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("gaslighter")

LOAD_MORE_THRESHOLD = 0.8
AUTOSCROLL_BASE_SPEED = 0.5
# Preset speeds: a higher value scrolls slower
AUTOSCROLL_PRESETS = {8: 1.0, 5: 5.0, 2: 12.0}


def debounce(delay: float) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., asyncio.Task]]:
    """
    Run a coroutine function only after ``delay`` seconds without another call.

    Each call cancels the previously scheduled run and returns the new task.
    Must be called from inside a running event loop.
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., asyncio.Task]:
        scheduled: Optional[asyncio.Task] = None

        @wraps(func)
        def wrapper(*args, **kwargs) -> asyncio.Task:
            nonlocal scheduled
            if scheduled is not None and not scheduled.done():
                scheduled.cancel()

            async def delayed():
                await asyncio.sleep(delay)
                return await func(*args, **kwargs)

            scheduled = asyncio.get_running_loop().create_task(delayed())
            return scheduled

        return wrapper
    return decorator


def throttle(
    interval: float,
    clock: Callable[[], float] = time.monotonic,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """
    Let at most one call through per ``interval`` seconds.

    Calls arriving too early return None without running the function.
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        last_run: Optional[float] = None

        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            nonlocal last_run
            now = clock()
            if last_run is not None and now - last_run < interval:
                logger.debug(f"Throttled {func.__name__}")
                return None
            last_run = now
            return await func(*args, **kwargs)

        return wrapper
    return decorator


def should_load_more(
    scroll_y: float,
    viewport_height: float,
    document_height: float,
    threshold: float = LOAD_MORE_THRESHOLD,
) -> bool:
    """True once the bottom of the viewport passes ``threshold`` of the document."""
    return scroll_y + viewport_height >= document_height * threshold


def autoscroll_step(speed: int) -> float:
    """Pixels to scroll per ~16ms tick for an autoscroll speed setting."""
    if speed <= 0:
        raise ValueError(f"Autoscroll speed must be positive, got {speed}")
    if speed in AUTOSCROLL_PRESETS:
        return AUTOSCROLL_BASE_SPEED * AUTOSCROLL_PRESETS[speed]
    return AUTOSCROLL_BASE_SPEED * (10 / speed)
