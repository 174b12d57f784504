"""경쟁사 수집 작업 큐 -- 단일 워커, 재시도/backoff, stall 감지, 이력 정리.

사용법:
    queue = JobQueue(pipeline.scrape_competitor, store=JobStore())
    await queue.start()
    job, created = await queue.enqueue(competitor_id)
    ...
    await queue.stop()

워커는 시스템 전체에 하나 (동시 실행 1). 같은 경쟁사의 작업이 대기/재시도/실행 중이면
enqueue는 새 작업을 만들지 않고 기존 작업을 돌려준다.
상태 전이는 scheduler.job_state의 순수 함수로만 한다.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from loguru import logger

from api.event_bus import (
    EVT_SCRAPE_COMPLETED,
    EVT_SCRAPE_FAILED,
    EVT_SCRAPE_QUEUED,
    EVT_SCRAPE_STARTED,
    EventBus,
    event_bus as default_bus,
)
from crawler.models import utcnow
from processor.errors import CompetitorNotFound, ScrapeTimeout
from scheduler import job_state
from scheduler.config import QueueSettings, queue_settings
from scheduler.job_state import ACTIVE, DEAD, Job, RetryPolicy
from scheduler.job_store import JobStore

ProgressFn = Callable[[int], Awaitable[None]]
JobHandler = Callable[[int, ProgressFn], Awaitable[dict]]

# 재시도해도 결과가 같은 오류
NON_RETRYABLE = (CompetitorNotFound,)


class JobQueue:
    def __init__(
        self,
        handler: JobHandler,
        settings: QueueSettings | None = None,
        store: JobStore | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.handler = handler
        self.settings = settings or queue_settings
        self.store = store
        self.bus = bus or default_bus
        self.clock = clock
        self.policy = RetryPolicy(attempts=self.settings.attempts, backoff_base_s=self.settings.backoff_base_s)

        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task | None = None
        self._monitor: asyncio.Task | None = None
        self._running = False

    # ── Lifecycle ──

    async def start(self):
        if self._running:
            return
        if self.store is not None:
            for job in await self.store.load_all():
                self._jobs[job.id] = job
            logger.info("[queue] restored {} persisted jobs", len(self._jobs))
        # 이전 프로세스가 남긴 active 작업은 stall 규칙으로 판정
        await self.check_stalled()

        self._running = True
        self._worker = asyncio.create_task(self._worker_loop(), name="scrape-queue-worker")
        self._monitor = asyncio.create_task(self._stall_monitor(), name="scrape-queue-stall-monitor")
        logger.info("[queue] started")

    async def stop(self):
        """워커/모니터 중지. 실행 중이던 작업은 active로 남아 다음 기동 때 stall 판정."""
        self._running = False
        self._wakeup.set()
        for task in (self._worker, self._monitor):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._worker = self._monitor = None
        logger.info("[queue] stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()

    # ── 조회 ──

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def latest_for(self, competitor_id: int) -> Job | None:
        """미완료 작업 우선, 없으면 가장 최근에 만들어진 작업."""
        outstanding = job_state.outstanding_for(self._jobs.values(), competitor_id)
        if outstanding is not None:
            return outstanding
        mine = [j for j in self._jobs.values() if j.competitor_id == competitor_id]
        return max(mine, key=lambda j: j.created_at) if mine else None

    def counts(self) -> dict[str, int]:
        counts = {state: 0 for state in job_state.STATES}
        for job in self._jobs.values():
            counts[job.state] += 1
        return counts

    # ── 등록 ──

    async def enqueue(self, competitor_id: int, priority: int | None = None) -> tuple[Job, bool]:
        """(작업, 새로 만들었는지). 미완료 작업이 있으면 그것을 돌려준다."""
        async with self._lock:
            existing = job_state.outstanding_for(self._jobs.values(), competitor_id)
            if existing is not None:
                logger.debug("[queue] competitor {} already queued ({})", competitor_id, existing.state)
                return existing, False

            job = job_state.new_job(
                competitor_id,
                self.clock(),
                priority=self.settings.default_priority if priority is None else priority,
            )
            await self._save(job)

        logger.info("[queue] enqueued job {} for competitor {}", job.id, competitor_id)
        await self.bus.publish(EVT_SCRAPE_QUEUED, {"job_id": job.id, "competitor_id": competitor_id})
        self._wakeup.set()
        return job, True

    # ── 워커 ──

    async def _worker_loop(self):
        while self._running:
            # 확인 전에 clear: 그 사이 들어온 enqueue 신호를 놓치지 않도록
            self._wakeup.clear()
            try:
                job = await self._claim_next()
                if job is None:
                    await self._sleep_until_work()
                    continue
                await self._run(job)
            except asyncio.CancelledError:
                raise
            except Exception:
                # 큐 장부 기록 실패 등. 워커는 계속 돈다
                logger.exception("[queue] worker iteration failed")
                await asyncio.sleep(self.settings.backoff_base_s)

    async def _claim_next(self) -> Job | None:
        async with self._lock:
            candidate = job_state.select_next(self._jobs.values(), self.clock())
            if candidate is None:
                return None
            job = job_state.start(candidate, self.clock())
            await self._save(job)
            return job

    async def _sleep_until_work(self):
        timeout = self.settings.stalled_check_interval_s
        retry_at = job_state.next_retry_at(self._jobs.values())
        if retry_at is not None:
            timeout = min(timeout, max(0.0, (retry_at - self.clock()).total_seconds()))
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)

    async def _run(self, job: Job):
        logger.info(
            "[queue] job {} started (competitor {}, attempt {}/{})",
            job.id, job.competitor_id, job.attempts, self.policy.attempts,
        )
        await self.bus.publish(EVT_SCRAPE_STARTED, {"job_id": job.id, "competitor_id": job.competitor_id})

        beat = asyncio.create_task(self._heartbeat_loop(job.id, job.started_at))

        async def report(progress: int):
            await self._touch(job.id, job.started_at, progress)

        error: BaseException | None = None
        result: dict | None = None
        try:
            result = await asyncio.wait_for(
                self.handler(job.competitor_id, report), timeout=self.settings.job_timeout_s,
            )
        except asyncio.TimeoutError:
            error = ScrapeTimeout(job.competitor_id, self.settings.job_timeout_s)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
        finally:
            beat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await beat

        async with self._lock:
            current = self._jobs.get(job.id)
            # stall 모니터가 이미 회수한 실행이면 결과 폐기
            if current is None or current.state != ACTIVE or current.started_at != job.started_at:
                logger.warning("[queue] job {} finished after being reclaimed, result dropped", job.id)
                return

            now = self.clock()
            if error is None:
                finished = job_state.complete(current, now, result)
            else:
                finished = job_state.fail(
                    current, now, f"{type(error).__name__}: {error}", self.policy,
                    retryable=not isinstance(error, NON_RETRYABLE),
                )
            await self._save(finished)
            await self._trim()

        await self._announce(finished)

    async def _announce(self, job: Job):
        payload = {"job_id": job.id, "competitor_id": job.competitor_id, "state": job.state}
        if job.state == job_state.COMPLETED:
            logger.info("[queue] job {} completed", job.id)
            await self.bus.publish(EVT_SCRAPE_COMPLETED, {**payload, "result": job.result})
        elif job.state == DEAD:
            logger.error("[queue] job {} failed permanently after {} attempts: {}", job.id, job.attempts, job.last_error)
            await self.bus.publish(EVT_SCRAPE_FAILED, {**payload, "error": job.last_error})
        else:
            logger.warning(
                "[queue] job {} attempt {} failed, retrying at {}: {}",
                job.id, job.attempts, job.next_attempt_at, job.last_error,
            )
            self._wakeup.set()

    async def _heartbeat_loop(self, job_id: str, started_at: datetime | None):
        while True:
            await asyncio.sleep(self.settings.heartbeat_interval_s)
            await self._touch(job_id, started_at)

    async def _touch(self, job_id: str, started_at: datetime | None, progress: int | None = None):
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.state != ACTIVE or current.started_at != started_at:
                return
            await self._save(job_state.heartbeat(current, self.clock(), progress))

    # ── stall 감지 ──

    async def _stall_monitor(self):
        while self._running:
            await asyncio.sleep(self.settings.stalled_check_interval_s)
            try:
                await self.check_stalled()
            except Exception:
                logger.exception("[queue] stall check failed")

    async def check_stalled(self) -> list[Job]:
        """heartbeat가 lock 시간보다 오래된 active 작업 회수."""
        lock = timedelta(seconds=self.settings.lock_duration_s)
        recovered: list[Job] = []
        async with self._lock:
            now = self.clock()
            for job in list(self._jobs.values()):
                if not job_state.is_stalled(job, now, lock):
                    continue
                fixed = job_state.recover_stalled(job, now, self.settings.max_stalled_count)
                await self._save(fixed)
                recovered.append(fixed)
                if fixed.state == DEAD:
                    logger.error("[queue] job {} stalled too often, marked dead", job.id)
                else:
                    logger.warning("[queue] job {} stalled ({}), requeued", job.id, fixed.stall_count)

        for job in recovered:
            if job.state == DEAD:
                await self.bus.publish(EVT_SCRAPE_FAILED, {
                    "job_id": job.id, "competitor_id": job.competitor_id, "state": job.state, "error": job.last_error,
                })
        if recovered:
            self._wakeup.set()
        return recovered

    # ── 저장 ──

    async def _save(self, job: Job):
        """호출자가 _lock을 잡고 있어야 한다."""
        if self.store is not None:
            await self.store.save(job)
        self._jobs[job.id] = job

    async def _trim(self):
        drop = job_state.trim_history(self._jobs.values(), self.settings.max_history)
        if not drop:
            return
        if self.store is not None:
            await self.store.delete(drop)
        for job_id in drop:
            self._jobs.pop(job_id, None)
        logger.debug("[queue] trimmed {} finished jobs", len(drop))
