# shared/decorators/error_handling.py
import functools
import logging
import traceback
from typing import Any, Callable, Optional, Sequence
import asyncio

logger = logging.getLogger(__name__)

def handle_errors(
    default_return: Any = None,
    log_errors: bool = True,
    reraise: bool = False,
    handled_exceptions: Optional[Sequence[type]] = None,
    custom_handler: Optional[Callable] = None
):
    """
    Decorator that degrades a failing call to a default value

    Args:
        default_return: Value returned when the call fails
        log_errors: Log the failure
        reraise: Log, then raise again
        handled_exceptions: Exception types to handle (default: all); others propagate
        custom_handler: Called as handler(exception, func_name, args, kwargs); its result is returned
    """
    handled = tuple(handled_exceptions) if handled_exceptions else (Exception,)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except handled as e:
                return _handle_exception(
                    e, func.__name__, args, kwargs,
                    default_return, log_errors, reraise, custom_handler
                )

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except handled as e:
                return _handle_exception(
                    e, func.__name__, args, kwargs,
                    default_return, log_errors, reraise, custom_handler
                )

        # Return appropriate wrapper based on function type
        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator

def _handle_exception(
    exception: Exception,
    func_name: str,
    args: tuple,
    kwargs: dict,
    default_return: Any,
    log_errors: bool,
    reraise: bool,
    custom_handler: Optional[Callable]
) -> Any:
    """Internal exception handling logic"""

    if log_errors:
        logger.error(f"❌ Error in {func_name}: {exception}")
        logger.debug(f"🔍 Traceback: {traceback.format_exc()}")

    if reraise:
        raise exception

    if custom_handler:
        return custom_handler(exception, func_name, args, kwargs)

    return default_return
