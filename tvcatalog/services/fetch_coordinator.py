"""
Fetch Coordination

Single-flight execution of refresh operations: while one refresh of a
resource is running, further requests join it instead of starting another.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class FetchCoordinator:
    """
    Coordinates refresh operations so at most one runs at a time.

    Every caller that arrives while a refresh is in flight awaits the same
    task and observes the same result or exception.
    """

    def __init__(self, name: str = "fetch"):
        self.name = name
        self._inflight: asyncio.Task | None = None

    async def execute(self, fetch_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run `fetch_func`, or join the refresh already in progress.

        Args:
            fetch_func: Zero-argument coroutine factory performing the refresh

        Returns:
            Result of the (possibly shared) refresh

        Raises:
            Any exception raised by the shared refresh
        """
        task = self._inflight
        if task is not None and not task.done():
            logger.info("%s already in progress, joining the running request", self.name)
        else:
            task = asyncio.ensure_future(fetch_func())
            self._inflight = task
            task.add_done_callback(self._clear)

        # A cancelled caller must not cancel the refresh other callers share
        return await asyncio.shield(task)

    def _clear(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s finished with error: %s", self.name, task.exception())

    def is_fetching(self) -> bool:
        """
        Check if a fetch operation is currently in progress.

        Returns:
            True if fetch is running, False otherwise
        """
        return self._inflight is not None and not self._inflight.done()
