"""변경 이벤트 기록 -- Alert 행 저장 + 이벤트 버스 발행."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.event_bus import EVT_ALERT_CREATED, EventBus, event_bus as default_bus
from database import async_session as default_session_factory
from database.models import Alert
from processor.reconciler import ChangeEvent


class AlertRecorder:
    """record_finding(event) 구현체."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        bus: EventBus | None = None,
    ):
        self.session_factory = session_factory or default_session_factory
        self.bus = bus or default_bus

    async def __call__(self, event: ChangeEvent) -> None:
        await self.record_finding(event)

    async def record_finding(self, event: ChangeEvent) -> int:
        async with self.session_factory() as session:
            alert = Alert(
                competitor_id=event.competitor_id,
                type=event.kind,
                title=event.title,
                description=event.description,
            )
            session.add(alert)
            await session.commit()
            alert_id = alert.id

        logger.debug("[alerts] {} #{}: {}", event.kind, alert_id, event.title)
        await self.bus.publish(EVT_ALERT_CREATED, {
            "alert_id": alert_id,
            "competitor_id": event.competitor_id,
            "type": event.kind,
            "title": event.title,
            "platform": event.platform,
        })
        return alert_id
