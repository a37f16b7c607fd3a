# src/pomeocore/scheduling.py
"""
Periodic background tasks.

The cache janitor and the storage rebalancer are both a callback run on a
fixed interval for as long as their owner is alive. :class:`PeriodicTask`
drives such a callback from an asyncio task and stops it through an
``asyncio.Event``, so shutdown never has to cancel a sweep halfway.

Example:
    janitor = PeriodicTask(
        name="cache_janitor",
        callback=cache.cleanup,
        interval_seconds=120,
    )
    janitor.start()
    ...
    await janitor.stop()
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """
    Runs ``callback`` every ``interval_seconds`` until stopped.

    The first run happens one interval after :meth:`start`. Callback errors
    are logged and counted; they never stop the schedule.

    Attributes:
        name: Identifier used in log messages.
        interval_seconds: Delay between the end of one run and the next.
        run_count: Completed runs (successful or not).
        error_count: Runs that raised.
        consecutive_errors: Errors since the last successful run.
        last_error: Message of the most recent error.
        last_run: When the last run finished (UTC).
    """

    def __init__(
        self,
        name: str,
        callback: Callback,
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.callback = callback
        self.interval_seconds = interval_seconds

        self.run_count = 0
        self.error_count = 0
        self.consecutive_errors = 0
        self.last_error: Optional[str] = None
        self.last_run: Optional[datetime] = None

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """True while the background loop is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Start the background loop on the running event loop.

        Idempotent: starting a running task does nothing.
        """
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name=f"periodic:{self.name}")
        logger.debug("Periodic task '%s' started (every %.1fs)", self.name, self.interval_seconds)

    async def stop(self) -> None:
        """
        Signal the loop to stop and wait for it to finish.

        A run already in progress completes before this returns.
        """
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.debug("Periodic task '%s' stopped after %d runs", self.name, self.run_count)

    async def run_once(self) -> Any:
        """Run the callback immediately, recording the outcome.

        Returns:
            The callback's result, or None if it raised.
        """
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self.error_count += 1
            self.consecutive_errors += 1
            self.last_error = str(e)
            logger.error("Periodic task '%s' failed: %s", self.name, e, exc_info=True)
            result = None
        else:
            self.consecutive_errors = 0
            self.last_error = None
        self.run_count += 1
        self.last_run = datetime.now(timezone.utc)
        return result

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_once()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the task's status to a dictionary."""
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "running": self.is_running,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
            "last_error": self.last_error,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }
