"""Schedule expressions and the loop that fires cycles on them.

Accepts `@every <duration>` with Go style durations, six field cron with
seconds first, plain five field cron and the usual `@hourly` style
descriptors. Cron fields are matched against UTC wall time.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from croniter import croniter

logger = logging.getLogger("kpubber")

EVERY_PREFIX = "@every"
DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    text = text.strip()
    seconds = 0.0
    position = 0
    for match in DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        position = match.end()
    if not text or position != len(text):
        raise ValueError(f"invalid duration {text!r}")
    if seconds <= 0:
        raise ValueError(f"duration must be positive, got {text!r}")
    return timedelta(seconds=seconds)


class Schedule(ABC):
    @abstractmethod
    def next_after(self, now: datetime) -> datetime: ...


class IntervalSchedule(Schedule):
    def __init__(self, interval: timedelta):
        self.interval = interval

    def next_after(self, now: datetime) -> datetime:
        return now + self.interval


class CronSchedule(Schedule):
    def __init__(self, expression: str):
        self.expression = expression
        self.seconds_first = len(expression.split()) == 6
        # Fails early on bad expressions
        self._iter(datetime.now(timezone.utc))

    def _iter(self, start: datetime) -> croniter:
        if self.seconds_first:
            return croniter(self.expression, start, second_at_beginning=True)
        return croniter(self.expression, start)

    def next_after(self, now: datetime) -> datetime:
        return self._iter(now).get_next(datetime)


def parse_schedule(expression: str) -> Schedule:
    expression = expression.strip()
    if expression.startswith(EVERY_PREFIX):
        return IntervalSchedule(parse_duration(expression[len(EVERY_PREFIX):]))
    return CronSchedule(expression)


class Scheduler:
    """Runs `job` once right away and then on every fire time.

    Every fire starts a new task without waiting for the previous one, the
    job decides what to do about overlap. An exception escaping any run
    stops the scheduler and is re-raised.
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[None]],
        schedule: Optional[Schedule],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.job = job
        self.schedule = schedule
        self.clock = clock

    async def run(self, stop: asyncio.Event) -> None:
        running: set[asyncio.Task] = {asyncio.create_task(self.job())}
        fire_at = self._next()
        stopped = asyncio.create_task(stop.wait())
        try:
            while not stop.is_set():
                timeout = None
                if fire_at is not None:
                    timeout = max(0.0, (fire_at - self.clock()).total_seconds())
                done, _ = await asyncio.wait(
                    running | {stopped},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done - {stopped}:
                    running.discard(task)
                    task.result()

                if fire_at is not None and self.clock() >= fire_at:
                    running.add(asyncio.create_task(self.job()))
                    fire_at = self._next()
        finally:
            stopped.cancel()

        logger.info("Stopping, waiting for running cycles to finish")
        if running:
            await asyncio.gather(*running)

    def _next(self) -> Optional[datetime]:
        if self.schedule is None:
            return None
        fire_at = self.schedule.next_after(self.clock())
        logger.debug(f"Next run at {fire_at.isoformat()}")
        return fire_at
