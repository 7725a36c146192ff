"""
Bounded in-process event queue connecting the fetcher and the file writer.

Single producer, single consumer. Publishing blocks while the queue is full,
so HTTP paging is paced by how fast records reach disk; nothing is dropped.
The consumer acknowledges each message after its handler returns, which is
what wait_drained() waits on.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5000


class EventQueue:
    """Bounded FIFO of serialized log records with a drain barrier."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize queue.

        Args:
            capacity: Maximum number of pending records before publish() blocks
        """
        if capacity <= 0:
            raise ValueError("queue capacity must be positive")
        self.capacity = capacity
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=capacity)

    async def publish(self, message: str) -> None:
        """Enqueue a record, waiting for free capacity if the queue is full."""
        await self._queue.put(message)

    async def subscribe(self, handler: Callable[[str], Awaitable[None]]) -> None:
        """Hand every record to handler, in publish order, until cancelled.

        Args:
            handler: Async callback receiving one record

        Raises:
            Exception: Whatever the handler raises; the loop stops on first failure
        """
        while True:
            message = await self._queue.get()
            try:
                await handler(message)
            except Exception as e:
                logger.error("Queue handler failed", extra={"error": str(e)})
                raise
            finally:
                self._queue.task_done()

    def depth(self) -> int:
        """Number of records published but not yet taken by the consumer."""
        return self._queue.qsize()

    async def wait_drained(self) -> None:
        """Block until every published record has been handled."""
        await self._queue.join()
