import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from perptrader.services.metrics import tick_failures_counter, ticks_skipped_counter

logger = logging.getLogger("scheduler")

Job = Callable[[], Awaitable[Any]]


class PeriodicTask:
    """Runs ``job`` every ``interval`` seconds with skip-if-busy semantics.

    A tick that arrives while the previous run is still in flight is dropped
    and counted, never queued. Exceptions from a run are logged and the loop
    carries on.
    """

    def __init__(self, name: str, interval: float, job: Job):
        self.name = name
        self.interval = interval
        self.job = job
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def tick(self) -> bool:
        """Start one run unless the previous one is still going; True when started."""
        if self.busy:
            self.skipped += 1
            ticks_skipped_counter.labels(task=self.name).inc()
            logger.warning(f"{self.name}: previous run still in progress, tick dropped ({self.skipped} so far)")
            return False
        self._run_task = asyncio.get_running_loop().create_task(self._run())
        return True

    async def _run(self):
        self.last_run = datetime.now(timezone.utc)
        try:
            await self.job()
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            self.last_error = f"{type(e).__name__}: {e}"
            tick_failures_counter.labels(task=self.name).inc()
            logger.exception(f"{self.name}: run failed")

    async def _loop(self):
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    def start(self):
        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._loop(), name=f"periodic-{self.name}")
        logger.info(f"{self.name}: started, every {self.interval}s")

    async def stop(self):
        for task in (self._loop_task, self._run_task):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._loop_task, self._run_task):
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = self._run_task = None
        logger.info(f"{self.name}: stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "interval_sec": self.interval,
            "running": self.running,
            "busy": self.busy,
            "runs": self.runs,
            "skipped": self.skipped,
            "failures": self.failures,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


class Scheduler:
    def __init__(self):
        self.tasks: Dict[str, PeriodicTask] = {}

    def add(self, name: str, interval: float, job: Job) -> PeriodicTask:
        if name in self.tasks:
            raise ValueError(f"Task {name} already registered")
        task = PeriodicTask(name, interval, job)
        self.tasks[name] = task
        return task

    @property
    def running(self) -> bool:
        return any(t.running for t in self.tasks.values())

    def start(self):
        for task in self.tasks.values():
            task.start()

    async def stop(self):
        await asyncio.gather(*(t.stop() for t in self.tasks.values()))

    def status(self) -> Dict[str, Any]:
        return {"running": self.running, "tasks": {n: t.status() for n, t in self.tasks.items()}}
