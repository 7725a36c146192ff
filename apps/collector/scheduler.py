"""
Collection Scheduler - Periodic and On-Demand Execution

Runs the poll loop on a fixed schedule using APScheduler, alongside the
consumer task that drains the event queue into the temp file.

Features:
- One cycle at a time: the next run is armed SCHEDULE_SECONDS after the
  previous one finishes
- RUN_ONCE mode for a single immediate cycle
- Fatal errors stop the scheduler and propagate to main()
- Graceful shutdown handling

Usage:
    # Scheduled mode (default)
    python -m apps.collector

    # Run once and exit
    RUN_ONCE=true python -m apps.collector
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

import aiohttp
from apscheduler.events import EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import ValidationError

from apps.collector.client import AuditLogClient
from apps.collector.outputs import build_outputs
from apps.collector.poller import PollLoop
from apps.collector.writer import TmpWriter
from utils.config import Settings, get_settings
from utils.exceptions import CollectorError, Stage, WriterError
from utils.logging import setup_logging
from utils.mq import EventQueue

logger = logging.getLogger(__name__)

JOB_ID = "poll_cycle"


class CollectorScheduler:
    """
    Scheduler for periodic or on-demand collection cycles.

    Handles:
    - APScheduler setup and job re-arming
    - Consumer task lifecycle
    - Fatal error capture and shutdown
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        settings: Settings,
        run_once: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        handle_signals: bool = True,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            settings: Resolved application settings
            run_once: If True, run a single cycle and exit
            session: HTTP session to reuse instead of creating one
            handle_signals: Install SIGINT/SIGTERM handlers on start
        """
        self.settings = settings
        self.run_once = run_once
        self.session = session
        self.handle_signals = handle_signals
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.poll_loop: PollLoop | None = None
        self.queue = EventQueue(settings.QUEUE_CAPACITY)
        self.writer: TmpWriter | None = None
        self.fatal_error: BaseException | None = None

        logger.info(
            "CollectorScheduler initialized",
            extra={
                "run_once": run_once,
                "schedule_seconds": settings.SCHEDULE_SECONDS,
                "queue_capacity": settings.QUEUE_CAPACITY,
                "outputs": settings.OUTPUTS,
            },
        )

    async def handle_message(self, message: str) -> None:
        """Append one record from the queue to the current temp file."""
        self.writer.write_log(message)

    async def execute_cycle(self) -> None:
        """
        Execute one poll cycle.

        Errors are recorded rather than raised, since APScheduler would only
        log them; start() re-raises after shutdown.
        """
        try:
            await self.poll_loop.run_cycle()
        except Exception as e:
            stage = e.stage.value if isinstance(e, CollectorError) else "unknown"
            logger.error(
                "Poll cycle failed",
                extra={"stage": stage, "error": str(e)},
                exc_info=True,
            )
            self.fatal_error = e
            self.shutdown_event.set()
            return

        if self.run_once:
            logger.info("RUN_ONCE mode: signaling shutdown")
            self.shutdown_event.set()

    def on_cycle_executed(self, event: JobExecutionEvent) -> None:
        """Re-arm the poll job once the previous run has fully finished."""
        if event.job_id == JOB_ID and not self.shutdown_event.is_set():
            self.schedule_next(self.settings.SCHEDULE_SECONDS)

    def schedule_next(self, delay_seconds: float) -> None:
        """Arm the single poll job to run delay_seconds from now."""
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            self.execute_cycle,
            trigger=DateTrigger(run_date=run_date),
            id=JOB_ID,
            name="Audit log poll cycle",
            replace_existing=True,
            misfire_grace_time=None,
        )

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int) -> None:
            logger.info("Received signal %d, initiating graceful shutdown", signum)
            self.shutdown_event.set()

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    async def start(self) -> None:
        """
        Start collection and run until shutdown.

        In scheduled mode, runs cycles until a fatal error or shutdown signal.
        In RUN_ONCE mode, executes a single cycle and exits.

        Raises:
            CollectorError: If a cycle or the consumer failed
        """
        if self.handle_signals:
            self.setup_signal_handlers()

        self.writer = TmpWriter(self.settings.TMP_DIR)
        outputs = build_outputs(self.settings)

        async with AuditLogClient.from_settings(self.settings, session=self.session) as client:
            self.poll_loop = PollLoop(
                fetcher=client,
                queue=self.queue,
                writer=self.writer,
                outputs=outputs,
                state_path=self.settings.STATE_PATH,
                initial_since=self.settings.INITIAL_SINCE,
            )
            self.poll_loop.load_checkpoint()

            consumer_task = asyncio.create_task(self.queue.subscribe(self.handle_message))
            shutdown_task = asyncio.create_task(self.shutdown_event.wait())
            logger.info("Consumer started")

            waiters = [shutdown_task, consumer_task]
            try:
                if self.run_once:
                    logger.info("Running in RUN_ONCE mode")
                    cycle_task = asyncio.create_task(self.execute_cycle())
                    waiters.append(cycle_task)
                else:
                    logger.info("Running in scheduled mode")
                    self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
                    self.scheduler.add_listener(self.on_cycle_executed, EVENT_JOB_EXECUTED)
                    self.scheduler.start()
                    self.schedule_next(0)
                    logger.info("Scheduler started, first cycle armed")

                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if consumer_task.done() and not consumer_task.cancelled():
                    error = consumer_task.exception()
                    if error is not None and self.fatal_error is None:
                        logger.error(
                            "Consumer failed",
                            extra={"stage": Stage.WRITE.value, "error": str(error)},
                        )
                        self.fatal_error = error

            finally:
                logger.info("Shutting down collector")
                if self.scheduler:
                    self.scheduler.shutdown(wait=False)

                for task in waiters:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*waiters, return_exceptions=True)

                self.writer.close()
                if self.handle_signals:
                    self.remove_signal_handlers()
                logger.info(
                    "Collector shutdown complete",
                    extra={"cycles": self.poll_loop.cycles},
                )

        if self.fatal_error is not None:
            if isinstance(self.fatal_error, CollectorError):
                raise self.fatal_error
            raise WriterError(f"Unable to write to temp file: {self.fatal_error}") from self.fatal_error


async def main() -> None:
    """Main entry point for the collector."""
    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging()
        logger.error("Initialization failed", extra={"error": str(e)})
        sys.exit(1)

    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    scheduler = CollectorScheduler(settings, run_once=settings.RUN_ONCE)

    try:
        await scheduler.start()
    except CollectorError as e:
        logger.error("Collector failed", extra={"stage": e.stage.value, "error": str(e)})
        sys.exit(1)
    except Exception as e:
        logger.error("Collector failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
