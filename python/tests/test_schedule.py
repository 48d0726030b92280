import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from kpubber.errorhandling import PublicIPError
from kpubber.schedule import (
    CronSchedule,
    IntervalSchedule,
    Schedule,
    Scheduler,
    parse_duration,
    parse_schedule,
)

NOW = datetime(2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5m", timedelta(minutes=5)),
        ("90s", timedelta(seconds=90)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(minutes=90)),
        ("500ms", timedelta(milliseconds=500)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "5", "m", "5x", "5m garbage", "0s"])
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_every():
    schedule = parse_schedule("@every 5m")

    assert isinstance(schedule, IntervalSchedule)
    assert schedule.next_after(NOW) == NOW + timedelta(minutes=5)


def test_cron_with_seconds_first():
    schedule = parse_schedule("0 */15 * * * *")

    assert isinstance(schedule, CronSchedule)
    assert schedule.next_after(NOW) == datetime(2024, 5, 1, 12, 15, tzinfo=timezone.utc)


def test_five_field_cron():
    schedule = parse_schedule("0 * * * *")

    assert schedule.next_after(NOW) == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)


def test_descriptor():
    schedule = parse_schedule("@daily")

    assert schedule.next_after(NOW) == datetime(2024, 5, 2, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("expression", ["not a cron", "@every", "@every -5m", "99 * * * *"])
def test_bad_expressions(expression):
    with pytest.raises(ValueError):
        parse_schedule(expression)


class Job:
    def __init__(self, error=None, delay=0.0):
        self.runs = 0
        self.error = error
        self.delay = delay

    async def __call__(self):
        self.runs += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_scheduler_runs_immediately_and_on_schedule():
    job = Job()
    stop = asyncio.Event()
    scheduler = Scheduler(job, IntervalSchedule(timedelta(milliseconds=20)))

    runner = asyncio.create_task(scheduler.run(stop))
    await asyncio.sleep(0.11)
    stop.set()
    await runner

    assert job.runs >= 3


@pytest.mark.asyncio
async def test_scheduler_without_schedule_runs_once():
    job = Job()
    stop = asyncio.Event()

    runner = asyncio.create_task(Scheduler(job, None).run(stop))
    await asyncio.sleep(0.05)
    assert not runner.done()
    stop.set()
    await runner

    assert job.runs == 1


@pytest.mark.asyncio
async def test_scheduler_waits_for_running_job_on_stop():
    job = Job(delay=0.05)
    stop = asyncio.Event()
    stop.set()

    await Scheduler(job, IntervalSchedule(timedelta(hours=1))).run(stop)

    assert job.runs == 1


@pytest.mark.asyncio
async def test_scheduler_reraises_fatal_errors():
    job = Job(error=PublicIPError("no ip"))

    with pytest.raises(PublicIPError):
        await Scheduler(job, IntervalSchedule(timedelta(hours=1))).run(asyncio.Event())


def test_schedule_base_is_abstract():
    with pytest.raises(TypeError):
        Schedule()
