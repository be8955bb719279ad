"""Tests for per-channel recurring purge jobs."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from conftest import GENERAL_ID, MEDIA_ID, make_config
from purgebot.purge.executor import PurgeResult
from purgebot.purge.scheduler import TaskScheduler


class RecordingExecutor:
    """Counts passes and tracks overlap per channel."""

    def __init__(self, duration: float = 0.0, fail_first: bool = False) -> None:
        self.duration = duration
        self.fail_first = fail_first
        self.calls: list[int] = []
        self.completed: list[int] = []
        self.in_flight: dict[int, int] = {}
        self.max_in_flight: dict[int, int] = {}

    async def run_once(self, config):
        channel_id = config.channel_id
        self.calls.append(channel_id)
        self.in_flight[channel_id] = self.in_flight.get(channel_id, 0) + 1
        self.max_in_flight[channel_id] = max(
            self.max_in_flight.get(channel_id, 0), self.in_flight[channel_id]
        )
        try:
            if self.fail_first and len(self.calls) == 1:
                raise RuntimeError("gateway exploded")
            await asyncio.sleep(self.duration)
            self.completed.append(channel_id)
            return PurgeResult(channel_id=channel_id)
        finally:
            self.in_flight[channel_id] -= 1


def fast_config(channel_id=GENERAL_ID, interval_ms=50, **overrides):
    return make_config(channel_id=channel_id, interval_ms=interval_ms, **overrides)


@pytest_asyncio.fixture
async def make_scheduler():
    created = []

    def factory(executor):
        scheduler = TaskScheduler(executor)
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        await scheduler.shutdown()


@pytest.mark.asyncio
async def test_job_fires_repeatedly(make_scheduler):
    executor = RecordingExecutor()
    scheduler = make_scheduler(executor)

    await scheduler.start(fast_config())
    await asyncio.sleep(0.28)

    assert scheduler.is_running(GENERAL_ID)
    assert executor.calls.count(GENERAL_ID) >= 3


@pytest.mark.asyncio
async def test_start_twice_leaves_one_job(make_scheduler):
    executor = RecordingExecutor()
    scheduler = make_scheduler(executor)

    await scheduler.start(fast_config())
    first_task = scheduler._jobs[GENERAL_ID].task
    await scheduler.start(fast_config())
    await asyncio.sleep(0.02)

    assert scheduler.active_channels() == [GENERAL_ID]
    assert first_task.done()
    assert scheduler._jobs[GENERAL_ID].task is not first_task
    assert not scheduler._jobs[GENERAL_ID].task.done()


@pytest.mark.asyncio
async def test_slow_ticks_never_overlap_on_one_channel(make_scheduler):
    executor = RecordingExecutor(duration=0.12)
    scheduler = make_scheduler(executor)

    await scheduler.start(fast_config())
    await asyncio.sleep(0.45)

    assert executor.calls.count(GENERAL_ID) >= 2
    assert executor.max_in_flight[GENERAL_ID] == 1


@pytest.mark.asyncio
async def test_replacement_waits_for_pass_in_flight(make_scheduler):
    executor = RecordingExecutor(duration=0.1)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(last_run=long_ago))
    await asyncio.sleep(0.02)  # first pass now in flight
    await scheduler.start(fast_config(last_run=long_ago))
    await asyncio.sleep(0.3)

    assert executor.max_in_flight[GENERAL_ID] == 1
    assert executor.completed.count(GENERAL_ID) >= 2


@pytest.mark.asyncio
async def test_channels_run_concurrently(make_scheduler):
    executor = RecordingExecutor(duration=0.1)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(GENERAL_ID, interval_ms=1000, last_run=long_ago))
    await scheduler.start(fast_config(MEDIA_ID, interval_ms=1000, last_run=long_ago))
    await asyncio.sleep(0.05)

    assert executor.in_flight[GENERAL_ID] == 1
    assert executor.in_flight[MEDIA_ID] == 1


@pytest.mark.asyncio
async def test_stop_prevents_further_firings(make_scheduler):
    executor = RecordingExecutor()
    scheduler = make_scheduler(executor)

    await scheduler.start(fast_config())
    await asyncio.sleep(0.12)
    assert await scheduler.stop(GENERAL_ID) is True
    count = len(executor.calls)
    await asyncio.sleep(0.15)

    assert len(executor.calls) == count
    assert not scheduler.is_running(GENERAL_ID)


@pytest.mark.asyncio
async def test_stop_lets_pass_in_flight_finish(make_scheduler):
    executor = RecordingExecutor(duration=0.1)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(last_run=long_ago))
    await asyncio.sleep(0.03)
    await scheduler.stop(GENERAL_ID)
    await asyncio.sleep(0.2)

    assert executor.calls == [GENERAL_ID]
    assert executor.completed == [GENERAL_ID]


@pytest.mark.asyncio
async def test_stop_unknown_channel_is_noop(make_scheduler):
    scheduler = make_scheduler(RecordingExecutor())
    assert await scheduler.stop(GENERAL_ID) is False


@pytest.mark.asyncio
async def test_tick_errors_do_not_end_the_job(make_scheduler):
    executor = RecordingExecutor(fail_first=True)
    scheduler = make_scheduler(executor)

    await scheduler.start(fast_config())
    await asyncio.sleep(0.2)

    assert scheduler.is_running(GENERAL_ID)
    assert len(executor.calls) >= 2
    assert executor.completed


@pytest.mark.asyncio
async def test_rehydrate_starts_only_active_configs(make_scheduler):
    scheduler = make_scheduler(RecordingExecutor())
    configs = [
        make_config(GENERAL_ID),
        make_config(MEDIA_ID),
        make_config(2000, active=False),
    ]

    started = await scheduler.rehydrate(configs)

    assert started == 2
    assert sorted(scheduler.active_channels()) == [GENERAL_ID, MEDIA_ID]


@pytest.mark.asyncio
async def test_run_now_is_serialized_with_recurring_pass(make_scheduler):
    executor = RecordingExecutor(duration=0.1)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(interval_ms=10_000, last_run=long_ago))
    await asyncio.sleep(0.02)
    result = await scheduler.run_now(fast_config(interval_ms=10_000))

    assert result.channel_id == GENERAL_ID
    assert executor.max_in_flight[GENERAL_ID] == 1
    assert scheduler.last_result(GENERAL_ID) is result


@pytest.mark.asyncio
async def test_shutdown_clears_all_jobs(make_scheduler):
    scheduler = make_scheduler(RecordingExecutor())
    await scheduler.start(fast_config(GENERAL_ID, interval_ms=10_000))
    await scheduler.start(fast_config(MEDIA_ID, interval_ms=10_000))

    await scheduler.shutdown()

    assert scheduler.active_channels() == []


@pytest.mark.asyncio
async def test_stop_forgets_channel_state_once_pass_ends(make_scheduler):
    executor = RecordingExecutor(duration=0.1)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(last_run=long_ago))
    await asyncio.sleep(0.03)
    await scheduler.stop(GENERAL_ID)

    assert GENERAL_ID in scheduler._retired
    await asyncio.sleep(0.2)

    assert executor.completed == [GENERAL_ID]
    assert scheduler._retired == {}
    assert GENERAL_ID not in scheduler._channel_locks
    assert scheduler.last_result(GENERAL_ID) is None


@pytest.mark.asyncio
async def test_replaced_job_task_is_collected(make_scheduler):
    scheduler = make_scheduler(RecordingExecutor())

    await scheduler.start(fast_config(interval_ms=10_000))
    await scheduler.start(fast_config(interval_ms=20_000))
    await asyncio.sleep(0.02)

    assert scheduler._retired == {}
    assert scheduler.active_channels() == [GENERAL_ID]


@pytest.mark.asyncio
async def test_shutdown_cancels_pass_of_stopped_job(make_scheduler):
    executor = RecordingExecutor(duration=1.0)
    scheduler = make_scheduler(executor)
    long_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    await scheduler.start(fast_config(last_run=long_ago))
    await asyncio.sleep(0.03)
    await scheduler.stop(GENERAL_ID)
    await scheduler.shutdown()
    await asyncio.sleep(0)

    assert executor.calls == [GENERAL_ID]
    assert executor.completed == []
    assert executor.in_flight[GENERAL_ID] == 0
    assert scheduler._retired == {}


@pytest.mark.asyncio
async def test_run_now_on_unscheduled_channel_keeps_no_state(make_scheduler):
    scheduler = make_scheduler(RecordingExecutor())

    result = await scheduler.run_now(fast_config(MEDIA_ID))

    assert result.channel_id == MEDIA_ID
    assert scheduler._channel_locks == {}
    assert scheduler._immediate == {}
    assert scheduler.last_result(MEDIA_ID) is None


def test_initial_delay_catches_up_after_restart():
    now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    config = make_config(interval_ms=60_000)

    assert TaskScheduler.initial_delay(config, now) == 60
    recent = make_config(interval_ms=60_000, last_run=now - timedelta(seconds=20))
    assert TaskScheduler.initial_delay(recent, now) == pytest.approx(40)
    overdue = make_config(interval_ms=60_000, last_run=now - timedelta(hours=3))
    assert TaskScheduler.initial_delay(overdue, now) == 0
    naive = make_config(interval_ms=60_000, last_run=datetime(2026, 1, 1, 11, 59, 30))
    assert TaskScheduler.initial_delay(naive, now) == pytest.approx(30)
