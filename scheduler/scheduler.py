"""주기 수집 스케줄러 -- APScheduler로 전체 경쟁사를 일정 간격마다 큐에 등록."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from processor.ad_store import AdStore
from scheduler.config import QueueSettings, queue_settings
from scheduler.job_queue import JobQueue


async def enqueue_all(queue: JobQueue, store: AdStore, priority: int) -> dict:
    """모든 경쟁사 등록. 이미 대기/실행 중인 경쟁사는 건너뛴다."""
    enqueued = skipped = 0
    for competitor_id in await store.list_competitor_ids():
        _job, created = await queue.enqueue(competitor_id, priority=priority)
        if created:
            enqueued += 1
        else:
            skipped += 1
    logger.info("[schedule] periodic scrape: {} enqueued, {} already queued", enqueued, skipped)
    return {"enqueued": enqueued, "skipped": skipped}


class ScrapeScheduler:
    """Periodic scrape scheduler."""

    def __init__(self, queue: JobQueue, store: AdStore | None = None, settings: QueueSettings | None = None):
        self.queue = queue
        self.store = store or AdStore()
        self.settings = settings or queue_settings
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    def setup_schedules(self):
        if not self.settings.cron_enabled:
            logger.info("[schedule] periodic scrape disabled")
            return
        self.scheduler.add_job(
            self._run_periodic_scrape,
            IntervalTrigger(hours=self.settings.cron_interval_hours),
            id="periodic_scrape",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("[schedule] periodic scrape every {}h", self.settings.cron_interval_hours)

    async def _run_periodic_scrape(self):
        try:
            await enqueue_all(self.queue, self.store, self.settings.cron_priority)
        except Exception:
            logger.exception("[schedule] periodic scrape enqueue failed")

    def start(self):
        """Start scheduler."""
        self.scheduler.start()
        logger.info("AdWatch scheduler started")

    def stop(self):
        """Stop scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("AdWatch scheduler stopped")
