#!/usr/bin/env python3
"""
FeedMirror Retry Logic
=====================

Bounded retries with exponential backoff for unreliable asynchronous
operations (upstream fetches, media downloads, whole refresh attempts).
"""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from ..utils.logging import get_logger_for_component


T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3                   # Total attempts, including the first
    base_delay: float = 1.0                 # Delay after the first failure, in seconds
    exponential_base: float = 2.0           # Backoff multiplier

    # Exceptions that trigger another attempt; anything else propagates at once
    retry_on_exceptions: tuple = (Exception,)

    def delay_for(self, attempt_index: int) -> float:
        """Delay after the failure of attempt ``attempt_index`` (0-based)."""
        return self.base_delay * (self.exponential_base ** attempt_index)


@dataclass
class RetryAttempt:
    """Information about a failed attempt."""
    operation: str
    attempt_number: int
    delay: float
    exception: Exception
    timestamp: datetime


class RetryManager:
    """Runs an async callable under a :class:`RetryConfig`.

    The sleep function is injectable so callers (and tests) can control
    how backoff waits are performed.
    """

    def __init__(self,
                 config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 component: str = 'retry_manager'):
        self.config = config or RetryConfig()
        self.sleep = sleep
        self.logger = get_logger_for_component(component)
        self.history: List[RetryAttempt] = []

    async def retry_async(self,
                          func: Callable[..., Any],
                          *args,
                          config: Optional[RetryConfig] = None,
                          operation: Optional[str] = None,
                          **kwargs) -> Any:
        """
        Retry an async function with exponential backoff.

        Args:
            func: Async function (or plain callable) to run
            *args: Function arguments
            config: Override the manager's retry configuration
            operation: Name used in log messages (defaults to the function name)
            **kwargs: Function keyword arguments

        Returns:
            Function result on the first successful attempt

        Raises:
            The last exception once all attempts have failed
        """
        retry_config = config or self.config
        name = operation or getattr(func, '__name__', repr(func))

        for attempt in range(retry_config.max_attempts):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                if attempt > 0:
                    self.logger.info(f"{name} succeeded on attempt {attempt + 1}/{retry_config.max_attempts}")
                return result

            except retry_config.retry_on_exceptions as e:
                if attempt == retry_config.max_attempts - 1:
                    self.logger.error(
                        f"{name} failed after {retry_config.max_attempts} attempts: {e}"
                    )
                    raise

                delay = retry_config.delay_for(attempt)
                self.history.append(RetryAttempt(
                    operation=name,
                    attempt_number=attempt + 1,
                    delay=delay,
                    exception=e,
                    timestamp=datetime.now(),
                ))
                if len(self.history) > 1000:
                    self.history = self.history[-1000:]
                self.logger.warning(
                    f"Retrying {name} (attempt {attempt + 1}/{retry_config.max_attempts}): {e}. "
                    f"Next attempt in {delay:.2f}s",
                    extra={'operation': name, 'attempt': attempt + 1, 'delay': delay},
                )
                await self.sleep(delay)

        # max_attempts >= 1 is enforced by settings; reached only with a bad config
        raise ValueError(f"RetryConfig.max_attempts must be positive, got {retry_config.max_attempts}")
