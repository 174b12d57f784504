"""작업 큐 -- single-flight, 재시도/backoff, 재시도 불가 오류, 타임아웃, stall 복구, 영속화."""

import asyncio
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import pytest_asyncio

from api.event_bus import EVT_SCRAPE_COMPLETED, EVT_SCRAPE_FAILED, EVT_SCRAPE_QUEUED, EventBus
from database import init_db, make_engine, make_session_factory
from processor.errors import CompetitorNotFound
from scheduler.config import QueueSettings
from scheduler.job_queue import JobQueue
from scheduler.job_state import ACTIVE, COMPLETED, DEAD, WAITING
from scheduler.job_store import JobStore


def fast_settings(**overrides) -> QueueSettings:
    values = dict(
        attempts=3,
        backoff_base_s=0.01,
        job_timeout_s=2.0,
        lock_duration_s=60.0,
        heartbeat_interval_s=0.05,
        stalled_check_interval_s=0.05,
        max_stalled_count=2,
        max_history=100,
    )
    values.update(overrides)
    return QueueSettings(**values)


async def wait_until(predicate, timeout: float = 3.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.mark.asyncio
async def test_job_runs_to_completion_with_progress():
    bus = EventBus()
    seen_progress = []

    async def handler(competitor_id, report):
        await report(60)
        seen_progress.append(queue.latest_for(competitor_id).progress)
        return {"competitor_id": competitor_id, "added": 3}

    queue = JobQueue(handler, settings=fast_settings(), bus=bus)
    async with queue:
        job, created = await queue.enqueue(5)
        assert created
        await wait_until(lambda: queue.get(job.id).state == COMPLETED)

    done = queue.get(job.id)
    assert done.result == {"competitor_id": 5, "added": 3}
    assert done.progress == 100
    assert seen_progress == [60]
    assert [e.event for e in bus.recent(EVT_SCRAPE_QUEUED)] == [EVT_SCRAPE_QUEUED]
    assert bus.recent(EVT_SCRAPE_COMPLETED)[-1].data["job_id"] == job.id


@pytest.mark.asyncio
async def test_enqueue_is_single_flight_per_competitor():
    release = asyncio.Event()
    calls = []

    async def handler(competitor_id, report):
        calls.append(competitor_id)
        await release.wait()
        return {}

    queue = JobQueue(handler, settings=fast_settings(), bus=EventBus())
    async with queue:
        first, created_first = await queue.enqueue(1)
        await wait_until(lambda: queue.get(first.id).state == ACTIVE)
        again, created_again = await queue.enqueue(1)
        other, created_other = await queue.enqueue(2)

        assert created_first and not created_again and created_other
        assert again.id == first.id

        release.set()
        await wait_until(lambda: queue.get(other.id).state == COMPLETED)

        # 완료 후에는 새 작업을 받는다
        later, created_later = await queue.enqueue(1)
        assert created_later and later.id != first.id
        await wait_until(lambda: queue.get(later.id).state == COMPLETED)

    assert calls == [1, 2, 1]


@pytest.mark.asyncio
async def test_failures_retry_then_die():
    bus = EventBus()
    calls = 0

    async def handler(competitor_id, report):
        nonlocal calls
        calls += 1
        raise RuntimeError("platform exploded")

    queue = JobQueue(handler, settings=fast_settings(attempts=3), bus=bus)
    async with queue:
        job, _ = await queue.enqueue(1)
        await wait_until(lambda: queue.get(job.id).state == DEAD)

    dead = queue.get(job.id)
    assert calls == 3
    assert dead.attempts == 3
    assert "platform exploded" in dead.last_error
    assert len(bus.recent(EVT_SCRAPE_FAILED)) == 1


@pytest.mark.asyncio
async def test_missing_competitor_is_not_retried():
    calls = 0

    async def handler(competitor_id, report):
        nonlocal calls
        calls += 1
        raise CompetitorNotFound(competitor_id)

    queue = JobQueue(handler, settings=fast_settings(attempts=5), bus=EventBus())
    async with queue:
        job, _ = await queue.enqueue(404)
        await wait_until(lambda: queue.get(job.id).state == DEAD)

    assert calls == 1
    assert "Competitor with ID 404 not found" in queue.get(job.id).last_error


@pytest.mark.asyncio
async def test_job_timeout_counts_as_failure():
    async def handler(competitor_id, report):
        await asyncio.sleep(5)

    queue = JobQueue(handler, settings=fast_settings(attempts=1, job_timeout_s=0.05), bus=EventBus())
    async with queue:
        job, _ = await queue.enqueue(1)
        await wait_until(lambda: queue.get(job.id).state == DEAD)

    assert queue.get(job.id).last_error.startswith("ScrapeTimeout")


@pytest.mark.asyncio
async def test_priority_decides_claim_order():
    clock = Clock(datetime(2026, 3, 1))

    async def handler(competitor_id, report):
        return {}

    queue = JobQueue(handler, settings=fast_settings(), bus=EventBus(), clock=clock)
    await queue.enqueue(1, priority=20)
    clock.advance(1)
    urgent, _ = await queue.enqueue(2, priority=1)

    claimed = await queue._claim_next()

    assert claimed.id == urgent.id
    assert claimed.state == ACTIVE


@pytest.mark.asyncio
async def test_stalled_job_is_requeued_then_dies():
    clock = Clock(datetime(2026, 3, 1))
    bus = EventBus()

    async def handler(competitor_id, report):
        return {}

    settings = fast_settings(lock_duration_s=30, max_stalled_count=2)
    queue = JobQueue(handler, settings=settings, bus=bus, clock=clock)
    job, _ = await queue.enqueue(1)

    for expected_stalls in (1, 2):
        await queue._claim_next()
        clock.advance(31)
        recovered = await queue.check_stalled()
        assert [j.id for j in recovered] == [job.id]
        current = queue.get(job.id)
        assert current.state == WAITING
        assert current.stall_count == expected_stalls
        assert current.attempts == 0

    await queue._claim_next()
    clock.advance(31)
    await queue.check_stalled()

    assert queue.get(job.id).state == DEAD
    assert bus.recent(EVT_SCRAPE_FAILED)[-1].data["job_id"] == job.id


@pytest.mark.asyncio
async def test_fresh_heartbeat_is_not_stalled():
    clock = Clock(datetime(2026, 3, 1))

    async def handler(competitor_id, report):
        return {}

    queue = JobQueue(handler, settings=fast_settings(lock_duration_s=30), bus=EventBus(), clock=clock)
    job, _ = await queue.enqueue(1)
    await queue._claim_next()
    clock.advance(20)
    await queue._touch(job.id, queue.get(job.id).started_at)
    clock.advance(20)

    assert await queue.check_stalled() == []
    assert queue.get(job.id).state == ACTIVE


@pytest.mark.asyncio
async def test_history_is_trimmed():
    async def handler(competitor_id, report):
        return {}

    queue = JobQueue(handler, settings=fast_settings(max_history=2), bus=EventBus())
    async with queue:
        for cid in (1, 2, 3):
            job, _ = await queue.enqueue(cid)
            await wait_until(lambda: queue.get(job.id) is None or queue.get(job.id).state == COMPLETED)

    assert len(queue.jobs) == 2
    assert sorted(j.competitor_id for j in queue.jobs) == [2, 3]


@pytest_asyncio.fixture
async def job_store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await init_db(engine)
    yield JobStore(make_session_factory(engine))
    await engine.dispose()


@pytest.mark.asyncio
async def test_persisted_jobs_survive_restart(job_store):
    async def idle_handler(competitor_id, report):
        return {}

    # 워커 없이 등록만 → 재기동 후 실행
    first = JobQueue(idle_handler, settings=fast_settings(), store=job_store, bus=EventBus())
    job, _ = await first.enqueue(9)

    async def handler(competitor_id, report):
        return {"restored": competitor_id}

    second = JobQueue(handler, settings=fast_settings(), store=job_store, bus=EventBus())
    async with second:
        assert second.get(job.id) is not None
        await wait_until(lambda: second.get(job.id).state == COMPLETED)

    stored = {j.id: j for j in await job_store.load_all()}
    assert stored[job.id].state == COMPLETED
    assert stored[job.id].result == {"restored": 9}
