#!/usr/bin/env python3
"""
FeedMirror Source Scheduler
==========================

One long-lived asyncio task per source identifier. Each task refreshes its
source, then sleeps for a randomized interval after a success or a short
fixed interval after exhausted retries, and repeats until stopped.

A failure in one source's task is reported and absorbed there; it never
reaches other sources or the event loop.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..processing.pipeline import RefreshPipeline
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..utils.logging import get_logger_for_component


class SourceScheduler:
    """Registry of per-source refresh tasks."""

    def __init__(
        self,
        pipeline: RefreshPipeline,
        min_refresh_minutes: int = 10,
        max_refresh_minutes: int = 15,
        failure_retry_seconds: float = 60.0,
        attempt_config: Optional[RetryConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random = None,
    ):
        self.pipeline = pipeline
        self.min_refresh_minutes = min_refresh_minutes
        self.max_refresh_minutes = max_refresh_minutes
        self.failure_retry_seconds = failure_retry_seconds
        self.error_handler = error_handler or ErrorHandler()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.retry_manager = RetryManager(
            attempt_config or RetryConfig(max_attempts=3, base_delay=1.0),
            sleep=sleep,
            component="scheduler",
        )
        self.logger = get_logger_for_component("scheduler")
        self._tasks: Dict[str, asyncio.Task] = {}

    def next_success_interval(self) -> float:
        """Seconds until the next refresh after a success (whole minutes, inclusive bounds)."""
        return self.rng.randint(self.min_refresh_minutes, self.max_refresh_minutes) * 60.0

    async def tick(self, source_id: str) -> float:
        """Run one scheduled refresh and return the delay before the next one."""
        try:
            await self.retry_manager.retry_async(
                self.pipeline.refresh, source_id, operation=f"refresh {source_id}"
            )
        except Exception as e:
            self.error_handler.handle_error(
                e, ErrorContext(component="scheduler", operation="tick", source_id=source_id)
            )
            self.logger.error(
                f"All refresh attempts failed for {source_id}. "
                f"Next attempt in {self.failure_retry_seconds / 60:g} minutes",
                extra={"source_id": source_id},
            )
            return self.failure_retry_seconds

        interval = self.next_success_interval()
        self.logger.info(
            f"Feed updated for {source_id}. Next update in {interval / 60:g} minutes",
            extra={"source_id": source_id},
        )
        return interval

    async def _run(self, source_id: str, initial_delay: Optional[float]) -> None:
        if initial_delay:
            await self.sleep(initial_delay)

        while True:
            try:
                delay = await self.tick(source_id)
            except Exception as e:
                # tick() absorbs refresh failures; this guards the loop itself
                self.error_handler.handle_error(
                    e, ErrorContext(component="scheduler", operation="run", source_id=source_id)
                )
                delay = self.failure_retry_seconds
            await self.sleep(delay)

    def start(self, source_id: str, initial_delay: Optional[float] = None) -> asyncio.Task:
        """Start polling a source; returns the existing task if already running.

        Args:
            source_id: Source to poll
            initial_delay: Seconds to wait before the first tick (None = tick now)
        """
        task = self._tasks.get(source_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(
            self._run(source_id, initial_delay), name=f"feedmirror-source-{source_id}"
        )
        self._tasks[source_id] = task
        self.logger.info(
            f"Started polling {source_id}"
            + (f" (first refresh in {initial_delay / 60:g} minutes)" if initial_delay else ""),
            extra={"source_id": source_id},
        )
        return task

    def is_running(self, source_id: str) -> bool:
        task = self._tasks.get(source_id)
        return task is not None and not task.done()

    def sources(self) -> List[str]:
        return sorted(s for s in self._tasks if self.is_running(s))

    async def stop(self, source_id: str) -> None:
        """Cancel a source's task and wait for it to finish."""
        task = self._tasks.pop(source_id, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.warning(f"Task for {source_id} had failed: {e}", extra={"source_id": source_id})
        self.logger.info(f"Stopped polling {source_id}", extra={"source_id": source_id})

    async def stop_all(self) -> None:
        for source_id in list(self._tasks):
            await self.stop(source_id)
