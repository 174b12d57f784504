"""수집 작업 상태 머신 -- 순수 전이 함수.

    waiting ──start──▶ active ──complete──▶ completed
       ▲                 │
       │                 ├──fail (시도 남음)──▶ retrying(next_attempt_at) ──start──▶ active
       │                 ├──fail (소진/재시도 불가)──▶ dead
       └──stall 복구─────┘  (stall 한도 초과 시 dead)

모든 함수는 새 Job을 돌려주고 입력을 바꾸지 않는다. 시각은 호출자가 넘긴다.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable

WAITING = "waiting"
ACTIVE = "active"
RETRYING = "retrying"
COMPLETED = "completed"
DEAD = "dead"

STATES = (WAITING, ACTIVE, RETRYING, COMPLETED, DEAD)
OUTSTANDING = frozenset({WAITING, RETRYING, ACTIVE})

PROGRESS_STARTED = 10
PROGRESS_DONE = 100


class InvalidTransition(ValueError):
    def __init__(self, job: "Job", action: str):
        super().__init__(f"cannot {action} job {job.id} in state {job.state}")
        self.job_id = job.id
        self.state = job.state
        self.action = action


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_base_s: float = 5.0

    def backoff(self, attempt: int) -> timedelta:
        """attempt번째 실패 후 대기: base × 2^(attempt-1) → 5s, 10s, 20s…"""
        return timedelta(seconds=self.backoff_base_s * (2 ** max(0, attempt - 1)))


@dataclass(frozen=True)
class Job:
    id: str
    competitor_id: int
    created_at: datetime
    state: str = WAITING
    attempts: int = 0
    stall_count: int = 0
    priority: int = 10
    progress: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    next_attempt_at: datetime | None = None
    heartbeat_at: datetime | None = None
    last_error: str | None = None
    result: dict | None = field(default=None, compare=False)

    @property
    def is_outstanding(self) -> bool:
        return self.state in OUTSTANDING

    def is_ready(self, now: datetime) -> bool:
        if self.state == WAITING:
            return True
        if self.state == RETRYING:
            return self.next_attempt_at is None or self.next_attempt_at <= now
        return False


def new_job(competitor_id: int, now: datetime, priority: int = 10, job_id: str | None = None) -> Job:
    return Job(id=job_id or str(uuid.uuid4()), competitor_id=competitor_id, created_at=now, priority=priority)


def start(job: Job, now: datetime) -> Job:
    if not job.is_ready(now):
        raise InvalidTransition(job, "start")
    return replace(
        job,
        state=ACTIVE,
        attempts=job.attempts + 1,
        progress=PROGRESS_STARTED,
        started_at=now,
        heartbeat_at=now,
        next_attempt_at=None,
    )


def heartbeat(job: Job, now: datetime, progress: int | None = None) -> Job:
    if job.state != ACTIVE:
        raise InvalidTransition(job, "heartbeat")
    if progress is None:
        return replace(job, heartbeat_at=now)
    return replace(job, heartbeat_at=now, progress=max(job.progress, min(progress, PROGRESS_DONE)))


def complete(job: Job, now: datetime, result: dict | None = None) -> Job:
    if job.state != ACTIVE:
        raise InvalidTransition(job, "complete")
    return replace(
        job,
        state=COMPLETED,
        progress=PROGRESS_DONE,
        finished_at=now,
        heartbeat_at=now,
        last_error=None,
        result=result,
    )


def fail(job: Job, now: datetime, error: str, policy: RetryPolicy, retryable: bool = True) -> Job:
    """실패 처리: 시도가 남았으면 retrying(backoff), 아니면 dead."""
    if job.state != ACTIVE:
        raise InvalidTransition(job, "fail")
    if retryable and job.attempts < policy.attempts:
        return replace(
            job,
            state=RETRYING,
            next_attempt_at=now + policy.backoff(job.attempts),
            last_error=error,
        )
    return replace(job, state=DEAD, finished_at=now, last_error=error)


def is_stalled(job: Job, now: datetime, lock_duration: timedelta) -> bool:
    if job.state != ACTIVE:
        return False
    last = job.heartbeat_at or job.started_at or job.created_at
    return now - last > lock_duration


def recover_stalled(job: Job, now: datetime, max_stalled_count: int) -> Job:
    """멈춘 active 작업 → waiting 재투입. 한도를 넘으면 dead.

    멈춘 실행은 재시도 횟수에 넣지 않는다.
    """
    if job.state != ACTIVE:
        raise InvalidTransition(job, "recover")
    stalls = job.stall_count + 1
    if stalls > max_stalled_count:
        return replace(
            job,
            state=DEAD,
            stall_count=stalls,
            finished_at=now,
            last_error=f"job stalled more than allowable limit ({max_stalled_count})",
        )
    return replace(
        job,
        state=WAITING,
        stall_count=stalls,
        attempts=max(0, job.attempts - 1),
        progress=0,
        heartbeat_at=None,
        last_error="job stalled",
    )


# ── 큐 단위 질의 ──

def outstanding_for(jobs: Iterable[Job], competitor_id: int) -> Job | None:
    """single-flight 판정 -- 해당 경쟁사의 미완료 작업."""
    for job in jobs:
        if job.competitor_id == competitor_id and job.is_outstanding:
            return job
    return None


def select_next(jobs: Iterable[Job], now: datetime) -> Job | None:
    """실행할 작업: 준비된 것 중 priority 낮은 순 → 오래된 순."""
    ready = [j for j in jobs if j.is_ready(now)]
    if not ready:
        return None
    return min(ready, key=lambda j: (j.priority, j.created_at))


def next_retry_at(jobs: Iterable[Job]) -> datetime | None:
    times = [j.next_attempt_at for j in jobs if j.state == RETRYING and j.next_attempt_at is not None]
    return min(times) if times else None


def trim_history(jobs: Iterable[Job], max_history: int) -> list[str]:
    """보관 한도를 넘으면 지울 작업 id -- 오래된 completed 먼저, 그다음 dead."""
    jobs = list(jobs)
    excess = len(jobs) - max_history
    if excess <= 0:
        return []
    completed = sorted((j for j in jobs if j.state == COMPLETED), key=lambda j: j.finished_at or j.created_at)
    dead = sorted((j for j in jobs if j.state == DEAD), key=lambda j: j.finished_at or j.created_at)
    return [j.id for j in (completed + dead)[:excess]]


def public_status(job: Job) -> str:
    """폴링 응답용: in_progress / completed / failed."""
    if job.state == COMPLETED:
        return "completed"
    if job.state == DEAD:
        return "failed"
    return "in_progress"
