import asyncio
import math
import os
from typing import Any, Callable, Optional, TypeVar

from app.services.errors import StoreTimeoutError

T = TypeVar("T")

DEFAULT_STORE_TIMEOUT_SECONDS = 10.0


def store_timeout_seconds() -> float:
    raw = os.getenv("BOOKING_STORE_TIMEOUT_SECONDS", "")
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_STORE_TIMEOUT_SECONDS
    if not math.isfinite(value) or value <= 0:
        return DEFAULT_STORE_TIMEOUT_SECONDS
    return value


async def run_blocking(func: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
    """Run a blocking backend call in a worker thread.

    The caller is suspended, never blocked. A call that outlives the timeout
    raises ``StoreTimeoutError``; it is not retried.
    """
    limit = timeout if timeout is not None else store_timeout_seconds()
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=limit)
    except asyncio.TimeoutError as exc:
        raise StoreTimeoutError(f"Store call timed out after {limit:g}s") from exc
