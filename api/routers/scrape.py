"""경쟁사 수집 API -- 큐 등록 / 상태 폴링 / 자사 사이트 동기 크롤 / cron 트리거."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_pipeline, get_queue, get_store, require_cron_secret
from database.schemas import CrawlOut, CrawlRequest, CronOut, ScrapeEnqueueOut, ScrapeStatusOut
from processor.ad_store import AdStore
from processor.errors import AdWatchError, CompetitorNotFound
from processor.pipeline import ScrapePipeline
from scheduler.config import queue_settings
from scheduler.job_queue import JobQueue
from scheduler.job_state import public_status
from scheduler.scheduler import enqueue_all

logger = logging.getLogger("adwatch.scrape")

router = APIRouter(prefix="/api", tags=["scrape"])


async def _require_competitor(store: AdStore, competitor_id: int):
    competitor = await store.find_competitor(competitor_id)
    if competitor is None:
        raise HTTPException(status_code=404, detail="Competitor not found")
    return competitor


@router.post("/competitors/{competitor_id}/scrape", response_model=ScrapeEnqueueOut, status_code=202)
async def enqueue_scrape(
    competitor_id: int,
    queue: JobQueue = Depends(get_queue),
    store: AdStore = Depends(get_store),
):
    """수집 작업 등록. 이미 대기/실행 중이면 그 작업을 돌려준다."""
    await _require_competitor(store, competitor_id)
    job, created = await queue.enqueue(competitor_id, priority=queue_settings.manual_priority)
    return ScrapeEnqueueOut(job_id=job.id, status="queued" if created else "already_queued", state=job.state)


@router.get("/competitors/{competitor_id}/scrape", response_model=ScrapeStatusOut)
async def get_scrape_status(
    competitor_id: int,
    queue: JobQueue = Depends(get_queue),
    store: AdStore = Depends(get_store),
):
    competitor = await _require_competitor(store, competitor_id)
    job = queue.latest_for(competitor_id)
    if job is None:
        # 큐 이력에 없으면 마지막 수집 시각 기준
        return ScrapeStatusOut(
            status="completed" if competitor.last_scraped else "idle",
            last_scraped=competitor.last_scraped,
        )
    return ScrapeStatusOut(
        status=public_status(job),
        state=job.state,
        progress=job.progress,
        attempts=job.attempts,
        error=job.last_error if job.state == "dead" else None,
        last_scraped=competitor.last_scraped,
    )


@router.post("/competitors/{competitor_id}/crawl", response_model=CrawlOut)
async def crawl_website(
    competitor_id: int,
    body: CrawlRequest | None = None,
    pipeline: ScrapePipeline = Depends(get_pipeline),
):
    """자사 웹사이트 동기 크롤 (플랫폼 "other"만 대조)."""
    try:
        result = await pipeline.crawl_website(competitor_id, body.max_pages if body else None)
    except CompetitorNotFound:
        raise HTTPException(status_code=404, detail="Competitor not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid website: {e}")
    except AdWatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Website crawl for competitor %s: %s", competitor_id, result)
    return CrawlOut(**result)


@router.post("/cron/scrape", response_model=CronOut, dependencies=[Depends(require_cron_secret)])
async def cron_scrape(
    queue: JobQueue = Depends(get_queue),
    store: AdStore = Depends(get_store),
):
    """외부 cron 트리거 -- 모든 경쟁사 수집 등록."""
    return CronOut(**await enqueue_all(queue, store, queue_settings.cron_priority))
