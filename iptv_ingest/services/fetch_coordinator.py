"""
Fetch Coordination

Single-flight execution for playlist loads: starting a new load cancels the
one in flight and waits for its cleanup, so at most one writer ever targets
the cache file.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from iptv_ingest.errors import LoadCancelledError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchCoordinator:
    """
    Runs one fetch operation at a time, newest wins.

    Each operation runs in its own task. A caller whose operation is
    superseded gets LoadCancelledError; a caller that is itself cancelled
    cancels its operation and sees CancelledError as usual.
    """

    def __init__(self):
        """Initialize the fetch coordinator with no operation in flight."""
        self._task: asyncio.Task | None = None

    async def execute(self, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """
        Cancel any in-flight operation, then run fetch_func.

        Args:
            fetch_func: Async function to execute (typically the load logic)

        Returns:
            Result from fetch_func

        Raises:
            LoadCancelledError: If a newer execute() call superseded this one
            Any exception raised by fetch_func
        """
        await self.cancel_current()

        task = asyncio.create_task(fetch_func())
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Fetch superseded by a newer request")
            raise LoadCancelledError("Superseded by a newer load") from None
        finally:
            if self._task is task:
                self._task = None

    async def cancel_current(self) -> None:
        """Cancel the in-flight operation and wait until its cleanup has run."""
        # Loop: another caller may have started a task while we were waiting
        while self._task is not None and not self._task.done():
            previous = self._task
            logger.info("Cancelling in-flight fetch")
            previous.cancel()
            await asyncio.wait([previous])

    def is_fetching(self) -> bool:
        """
        Check if a fetch operation is currently in progress.

        Returns:
            True if fetch is running, False otherwise
        """
        return self._task is not None and not self._task.done()
