"""광고 저장소 -- SQLAlchemy async 세션 위의 대조용 어댑터.

호출마다 자체 세션을 열고 커밋한다 (reconcile이 삽입/갱신을 동시에 돌리므로).
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crawler.models import utcnow
from database import async_session as default_session_factory
from database.models import Ad, Competitor
from processor.reconciler import AdUpdate, NewAd, StoredAd


class AdStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory or default_session_factory

    async def find_competitor(self, competitor_id: int) -> Competitor | None:
        async with self.session_factory() as session:
            return await session.get(Competitor, competitor_id)

    async def list_competitor_ids(self) -> list[int]:
        async with self.session_factory() as session:
            rows = await session.execute(select(Competitor.id).order_by(Competitor.id))
            return list(rows.scalars().all())

    async def list_ads(self, competitor_id: int) -> list[StoredAd]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(Ad.id, Ad.platform, Ad.content, Ad.is_active, Ad.content_hash)
                .where(Ad.competitor_id == competitor_id)
            )
            return [
                StoredAd(id=r.id, platform=r.platform, content=r.content, is_active=r.is_active, content_hash=r.content_hash)
                for r in rows.all()
            ]

    async def insert_ads(self, rows: list[NewAd]) -> int:
        if not rows:
            return 0
        async with self.session_factory() as session:
            session.add_all([
                Ad(
                    competitor_id=row.competitor_id,
                    platform=row.platform,
                    type=row.kind,
                    content=row.content,
                    content_hash=row.content_hash,
                    media_url=row.media_url,
                    landing_page=row.landing_page,
                    first_seen=row.first_seen,
                    last_seen=row.last_seen,
                    is_active=row.is_active,
                    analysis=row.analysis,
                )
                for row in rows
            ])
            await session.commit()
        logger.debug("[ad-store] inserted {} ads", len(rows))
        return len(rows)

    async def update_ads(self, updates: list[AdUpdate]) -> int:
        if not updates:
            return 0
        now = utcnow()
        async with self.session_factory() as session:
            for u in updates:
                await session.execute(
                    update(Ad)
                    .where(Ad.id == u.ad_id)
                    .values(is_active=u.is_active, last_seen=u.last_seen, updated_at=now)
                )
            await session.commit()
        return len(updates)

    async def mark_inactive(self, ad_ids: list[int], at: datetime) -> int:
        if not ad_ids:
            return 0
        async with self.session_factory() as session:
            res = await session.execute(
                update(Ad)
                .where(Ad.id.in_(ad_ids), Ad.is_active.is_(True))
                .values(is_active=False, updated_at=at)
            )
            await session.commit()
        return res.rowcount or 0

    async def touch_competitor(self, competitor_id: int, at: datetime | None = None):
        at = at or utcnow()
        async with self.session_factory() as session:
            await session.execute(
                update(Competitor)
                .where(Competitor.id == competitor_id)
                .values(last_scraped=at, updated_at=at)
            )
            await session.commit()
