import asyncio
import time
from datetime import timedelta
from typing import Awaitable, Callable, Optional, TypeVar

R = TypeVar("R")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


async def poll_until(
    operation: Callable[[], Awaitable[R]],
    done: Callable[[R], bool],
    *,
    interval: timedelta,
    timeout: timedelta,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
    started_at: Optional[float] = None,
) -> Optional[R]:
    """
    Call `operation` until `done` accepts its result or `timeout` has elapsed.

    The deadline is checked before every attempt and is measured from
    `started_at` (defaults to now). Between rejected attempts the coroutine
    awaits `sleep(interval)`, so cancelling the caller stops the loop. Returns
    the last result, or None when the deadline had passed before any attempt.
    """
    if started_at is None:
        started_at = clock()

    result: Optional[R] = None
    while clock() - started_at < timeout.total_seconds():
        result = await operation()
        if done(result):
            return result
        await sleep(interval.total_seconds())

    return result
