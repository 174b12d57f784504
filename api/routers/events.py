"""SSE 엔드포인트 -- 수집 작업 진행/알림 이벤트 스트림 (경쟁사별 필터 가능)."""

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from api.event_bus import EVT_ALERT_CREATED, JOB_EVENTS, event_bus

logger = logging.getLogger("adwatch.events")

router = APIRouter(prefix="/api/events", tags=["events"])

# 이 시간 동안 보낼 이벤트가 없으면 SSE 주석으로 연결 유지
KEEPALIVE_INTERVAL_S = 30
KEEPALIVE = ": keep-alive\n\n"


@router.get("/stream")
async def sse_stream(
    request: Request,
    last_event_ts: float = Query(default=0, description="마지막으로 받은 이벤트 타임스탬프 (재연결 시 재생)"),
    competitor_id: int | None = Query(default=None, description="이 경쟁사 이벤트만"),
):
    async def generate():
        async with event_bus.subscribe(since_ts=last_event_ts, competitor_id=competitor_id) as sub:
            while not await request.is_disconnected():
                evt = await sub.next(timeout=KEEPALIVE_INTERVAL_S)
                yield KEEPALIVE if evt is None else evt.format_sse()
        logger.debug("SSE client left (competitor=%s)", competitor_id)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/alerts/recent")
async def recent_alerts(competitor_id: int | None = None):
    """최근 알림 이벤트 (인메모리 히스토리, 최신순)."""
    events = event_bus.recent(EVT_ALERT_CREATED, competitor_id=competitor_id)
    return [{"ts": e.timestamp, **e.data} for e in reversed(events)]


@router.get("/status")
async def event_status(request: Request):
    """구독자 수 + 작업 큐 상태 요약 + 최근 작업 이벤트."""
    queue = getattr(request.app.state, "queue", None)
    last_job_event = next((e for e in reversed(event_bus.recent()) if e.event in JOB_EVENTS), None)
    return {
        "active_subscribers": event_bus.subscriber_count,
        "queue": queue.counts() if queue is not None else None,
        "last_job_event": (
            {"event": last_job_event.event, "ts": last_job_event.timestamp, **last_job_event.data}
            if last_job_event is not None else None
        ),
    }
