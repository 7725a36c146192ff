"""
Poll Loop - one fetch cycle from checkpoint to now.

A cycle moves through:

    Fetching -> Draining -> Flushing -> Checkpointing

Fetching streams every record of [checkpoint, now] into the event queue.
Draining waits until the consumer has written all of them to the temp file.
Flushing rotates that file, writes it to every output and deletes it.
Checkpointing persists `now` as the new lower bound.

A cycle with no records skips Draining and Flushing but still checkpoints, so
an empty window is not scanned again. Any failure leaves the checkpoint where
the previous successful cycle put it.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from apps.collector.client import RecordSink
from apps.collector.outputs import Output, write_to_outputs
from apps.collector.writer import TmpWriter
from utils import checkpoint as checkpoint_store
from utils.exceptions import OutputError
from utils.links import format_rfc3339, utc_now
from utils.mq import EventQueue
from utils.schemas import Checkpoint

logger = logging.getLogger(__name__)


class LogFetcher(Protocol):
    async def get_logs(self, since: Optional[datetime], until: datetime, sink: RecordSink) -> int: ...


class PollLoop:
    """Drives fetch cycles and owns the checkpoint."""

    def __init__(
        self,
        fetcher: LogFetcher,
        queue: EventQueue,
        writer: TmpWriter,
        outputs: Sequence[Output],
        state_path: str,
        initial_since: Optional[datetime] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.fetcher = fetcher
        self.queue = queue
        self.writer = writer
        self.outputs = list(outputs)
        self.state_path = state_path
        self.initial_since = initial_since
        self.clock = clock
        self.checkpoint: Checkpoint = checkpoint_store.new()
        self.cycles = 0

    def load_checkpoint(self) -> Checkpoint:
        """Restore the persisted checkpoint, or start from an empty one."""
        self.checkpoint = checkpoint_store.load_or_create(self.state_path)
        return self.checkpoint

    async def run_cycle(self) -> int:
        """
        Run one complete fetch cycle.

        Returns:
            Number of records fetched and flushed

        Raises:
            CollectorError: On any fetch, output or checkpoint failure
        """
        window = self.checkpoint.window_until(self.clock(), default_since=self.initial_since)
        start_time = time.monotonic()

        logger.info(
            "Getting data",
            extra={
                "since": format_rfc3339(window.since) if window.since else None,
                "until": format_rfc3339(window.until),
            },
        )

        count = await self.fetcher.get_logs(window.since, window.until, self.queue.publish)

        if count > 0:
            await self.queue.wait_drained()
            await self._flush(window.until)

        logger.info(
            "%d events processed",
            count,
            extra={"records": count, "elapsed": round(time.monotonic() - start_time, 3)},
        )

        updated = Checkpoint(last_poll_timestamp=window.until)
        checkpoint_store.save(updated, self.state_path)
        self.checkpoint = updated
        self.cycles += 1

        return count

    async def _flush(self, timestamp: datetime) -> None:
        batch_path = self.writer.rotate()

        await asyncio.to_thread(write_to_outputs, self.outputs, batch_path, timestamp)

        try:
            Path(batch_path).unlink()
        except OSError as e:
            raise OutputError(f"Unable to remove tmp file {batch_path}: {e}") from e
