"""작업 큐 영속화 -- ScrapeJob 테이블 ↔ Job 값 객체."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import async_session as default_session_factory
from database.models import ScrapeJob
from scheduler.job_state import Job

_FIELDS = (
    "competitor_id", "state", "attempts", "stall_count", "priority", "progress",
    "created_at", "started_at", "finished_at", "next_attempt_at", "heartbeat_at",
    "last_error", "result",
)


def to_job(row: ScrapeJob) -> Job:
    return Job(id=row.id, **{name: getattr(row, name) for name in _FIELDS})


class JobStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory or default_session_factory

    async def load_all(self) -> list[Job]:
        async with self.session_factory() as session:
            rows = await session.execute(select(ScrapeJob).order_by(ScrapeJob.created_at))
            return [to_job(row) for row in rows.scalars().all()]

    async def save(self, job: Job):
        async with self.session_factory() as session:
            row = await session.get(ScrapeJob, job.id)
            if row is None:
                row = ScrapeJob(id=job.id)
                session.add(row)
            for name in _FIELDS:
                setattr(row, name, getattr(job, name))
            await session.commit()

    async def delete(self, job_ids: list[str]):
        if not job_ids:
            return
        async with self.session_factory() as session:
            await session.execute(delete(ScrapeJob).where(ScrapeJob.id.in_(job_ids)))
            await session.commit()
