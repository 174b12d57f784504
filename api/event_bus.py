"""인메모리 이벤트 버스 -- 수집 작업/알림 이벤트를 SSE 구독자에게 푸시.

사용법:
  from api.event_bus import event_bus, EVT_ALERT_CREATED
  await event_bus.publish(EVT_ALERT_CREATED, {"competitor_id": 3, "title": "..."})

  async with event_bus.subscribe(competitor_id=3) as sub:
      evt = await sub.next(timeout=30)   # 타임아웃이면 None

구독은 경쟁사 단위로 거를 수 있다. competitor_id가 없는 이벤트는 모든 구독자에게 간다.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

logger = logging.getLogger("adwatch.event_bus")

# 이벤트 타입
EVT_SCRAPE_QUEUED = "scrape_queued"
EVT_SCRAPE_STARTED = "scrape_started"
EVT_SCRAPE_COMPLETED = "scrape_completed"
EVT_SCRAPE_FAILED = "scrape_failed"
EVT_ALERT_CREATED = "alert_created"

JOB_EVENTS = (EVT_SCRAPE_QUEUED, EVT_SCRAPE_STARTED, EVT_SCRAPE_COMPLETED, EVT_SCRAPE_FAILED)


@dataclass
class BusEvent:
    event: str
    data: dict
    timestamp: float = field(default_factory=time.time)

    @property
    def competitor_id(self) -> int | None:
        return self.data.get("competitor_id")

    def format_sse(self) -> str:
        payload = json.dumps({**self.data, "_ts": self.timestamp}, ensure_ascii=False, default=str)
        return f"event: {self.event}\ndata: {payload}\n\n"


class Subscription:
    def __init__(self, competitor_id: int | None, queue_size: int):
        self.competitor_id = competitor_id
        self.queue: asyncio.Queue[BusEvent] = asyncio.Queue(maxsize=queue_size)

    def accepts(self, evt: BusEvent) -> bool:
        return self.competitor_id is None or evt.competitor_id in (None, self.competitor_id)

    async def next(self, timeout: float | None = None) -> BusEvent | None:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class EventBus:
    """구독마다 큐 하나. 꽉 찬 큐(느린 클라이언트)는 끊는다."""

    def __init__(self, max_history: int = 50, queue_size: int = 100):
        self._subscriptions: list[Subscription] = []
        self._history: list[BusEvent] = []
        self._max_history = max_history
        self._queue_size = queue_size
        self._lock = asyncio.Lock()

    async def publish(self, event_type: str, data: dict | None = None):
        evt = BusEvent(event=event_type, data=data or {})

        async with self._lock:
            self._history.append(evt)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history:]

            dropped: list[Subscription] = []
            for sub in self._subscriptions:
                if not sub.accepts(evt):
                    continue
                try:
                    sub.queue.put_nowait(evt)
                except asyncio.QueueFull:
                    dropped.append(sub)
            for sub in dropped:
                self._subscriptions.remove(sub)
                logger.warning("Dropped slow subscriber (competitor=%s)", sub.competitor_id)

        logger.debug("Event published: %s (%d subscribers)", event_type, len(self._subscriptions))

    @asynccontextmanager
    async def subscribe(
        self, since_ts: float = 0, competitor_id: int | None = None,
    ) -> AsyncIterator[Subscription]:
        """since_ts > 0 이면 그 이후 히스토리(필터 적용)를 먼저 재생."""
        sub = Subscription(competitor_id, self._queue_size)
        async with self._lock:
            self._subscriptions.append(sub)
            if since_ts > 0:
                for evt in self._history:
                    if evt.timestamp > since_ts and sub.accepts(evt):
                        try:
                            sub.queue.put_nowait(evt)
                        except asyncio.QueueFull:
                            break
        try:
            yield sub
        finally:
            async with self._lock:
                if sub in self._subscriptions:
                    self._subscriptions.remove(sub)

    def recent(self, event_type: str | None = None, competitor_id: int | None = None) -> list[BusEvent]:
        return [
            e for e in self._history
            if (event_type is None or e.event == event_type)
            and (competitor_id is None or e.competitor_id == competitor_id)
        ]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


event_bus = EventBus()
