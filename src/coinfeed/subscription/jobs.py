import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class RecurringJob:
    """Runs ``job`` every ``interval`` seconds on its own task.

    Runs are sequential: the next interval starts after the previous run
    finishes. A failing run is logged and does not stop the schedule.
    """

    def __init__(self, job: Job, interval: float, name: Optional[str] = None) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.job = job
        self.interval = interval
        self.name = name or getattr(job, "__name__", "job")
        self.task: Optional[asyncio.Task] = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def start(self) -> None:
        if self.running:
            return
        self.task = asyncio.create_task(self.loop(), name=f"recurring_{self.name}")
        logger.info("Scheduled %s every %.0fs", self.name, self.interval)

    async def loop(self) -> None:
        try:
            while True:
                await self.run_once()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("Recurring job %s stopped", self.name)

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self.job()
        except Exception as e:
            self.failures += 1
            logger.error("Recurring job %s failed: %s", self.name, e)

    async def stop(self) -> None:
        if self.task is None:
            return
        self.task.cancel()
        await asyncio.wait([self.task])
        self.task = None
