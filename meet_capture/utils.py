"""
Small helpers shared across the bot: duration formatting, jitter and async retries.
"""

import asyncio
import functools
import logging
import random
from typing import Optional, Tuple, Type


def format_duration(seconds: float) -> str:
    """Render seconds as e.g. "1h 30m 45s"; zero units are omitted."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)

    parts = [f"{value}{unit}" for value, unit in ((hours, "h"), (minutes, "m")) if value]
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def jittered(base: float, spread: float = 0.5) -> float:
    """A delay between base and base * (1 + spread), so polling never looks robotic."""
    return random.uniform(base, base * (1 + spread))


def retry_async(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    logger: Optional[logging.Logger] = None,
    max_delay: float = 30.0,
):
    """
    Retry an async function on the given exceptions with exponential backoff.

    Args:
        max_retries: Retries after the first attempt (0 disables retrying).
        delay: Delay before the first retry, in seconds.
        backoff: Multiplier applied to the delay after each retry.
        exceptions: Exception types that trigger a retry; anything else propagates at once.
        logger: Optional logger for retry warnings.
        max_delay: Upper bound for any single delay.

    The last exception is re-raised once retries are exhausted.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            wait = delay
            attempts = max_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        raise
                    if logger:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt}/{attempts}): {e}. "
                            f"Retrying in {wait:.1f}s"
                        )
                    await asyncio.sleep(wait)
                    wait = min(wait * backoff, max_delay)

        return wrapper

    return decorator
