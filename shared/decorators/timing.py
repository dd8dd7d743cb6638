# shared/decorators/timing.py
import asyncio
import functools
import logging
import time
from typing import Callable, Optional


def time_execution(func: Optional[Callable] = None, *, slow_ms: Optional[float] = None):
    """
    Measure how long a call takes

    The duration of the latest call is kept on the wrapper as
    ``last_duration_ms``. Calls slower than ``slow_ms`` are logged as warnings.
    Usable bare (``@time_execution``) or with options (``@time_execution(slow_ms=50)``).
    """

    def decorator(fn: Callable) -> Callable:
        logger = logging.getLogger(fn.__module__)

        def _record(wrapper, started: float) -> None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            wrapper.last_duration_ms = elapsed_ms
            if slow_ms is not None and elapsed_ms > slow_ms:
                logger.warning(f"🐢 {fn.__qualname__} took {elapsed_ms:.2f} ms (limit {slow_ms} ms)")
            else:
                logger.debug(f"⏱️ {fn.__qualname__} executed in {elapsed_ms:.2f} ms")

        @functools.wraps(fn)
        async def async_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                return await fn(*args, **kwargs)
            finally:
                _record(async_wrapper, started)

        @functools.wraps(fn)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                _record(sync_wrapper, started)

        wrapper = async_wrapper if asyncio.iscoroutinefunction(fn) else sync_wrapper
        wrapper.last_duration_ms = None
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
