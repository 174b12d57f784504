"""수집 오케스트레이터 -- 플랫폼 스크래퍼 + 사이트 크롤러 → 대조/저장.

scrape_competitor: 추적 플랫폼 전부 + 자사 사이트 (작업 큐 워커가 호출)
crawl_website:     자사 사이트만 (API에서 동기 호출)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from loguru import logger

from crawler.browser_pool import BrowserPool
from crawler.config import CrawlerSettings, crawler_settings
from crawler.models import ALL_PLATFORMS, PLATFORM_OTHER, RawAdCandidate, utcnow
from crawler.platforms import PlatformScraper, get_scraper
from crawler.site_crawler import CrawlResult, SiteCrawler
from processor.ad_analyzer import analyze as default_analyze
from processor.ad_store import AdStore
from processor.alerts import AlertRecorder
from processor.errors import AdWatchError, CompetitorNotFound
from processor.reconciler import Analyze, RecordFinding, ReconcileResult, reconcile

ProgressCallback = Callable[[int], Awaitable[None]]
ScraperFactory = Callable[[str, BrowserPool, CrawlerSettings], PlatformScraper]


@dataclass
class ScrapeOutcome:
    competitor_id: int
    found: dict[str, int] = field(default_factory=dict)
    failed_platforms: list[str] = field(default_factory=list)
    pages_visited: int = 0
    reconcile: ReconcileResult = field(default_factory=ReconcileResult)

    def as_dict(self) -> dict:
        return {
            "competitor_id": self.competitor_id,
            "found": self.found,
            "failed_platforms": self.failed_platforms,
            "pages_visited": self.pages_visited,
            **self.reconcile.summary(),
        }


def site_crawl_succeeded(result: CrawlResult) -> bool:
    """한 페이지라도 읽었으면 성공 (전부 실패면 사이트 다운으로 보고 비활성 판정 제외)."""
    return len(result.visited) > len(result.failed)


class ScrapePipeline:
    def __init__(
        self,
        pool: BrowserPool,
        store: AdStore | None = None,
        analyze: Analyze | None = None,
        record_finding: RecordFinding | None = None,
        settings: CrawlerSettings | None = None,
        scraper_factory: ScraperFactory | None = None,
        site_crawler: SiteCrawler | None = None,
    ):
        self.pool = pool
        self.settings = settings or crawler_settings
        self.store = store or AdStore()
        self.analyze = analyze or default_analyze
        self.record_finding = record_finding or AlertRecorder()
        self.scraper_factory = scraper_factory or get_scraper
        self.site_crawler = site_crawler or SiteCrawler(pool, self.settings)
        # 경쟁사별 대조 직렬화 (큐 작업과 동기 크롤이 겹칠 수 있음)
        self._locks: dict[int, asyncio.Lock] = {}

    async def _load_competitor(self, competitor_id: int):
        competitor = await self.store.find_competitor(competitor_id)
        if competitor is None:
            raise CompetitorNotFound(competitor_id)
        return competitor

    def competitor_lock(self, competitor_id: int) -> asyncio.Lock:
        return self._locks.setdefault(competitor_id, asyncio.Lock())

    # ── 전체 수집 ──

    async def scrape_competitor(
        self, competitor_id: int, on_progress: ProgressCallback | None = None,
    ) -> dict:
        competitor = await self._load_competitor(competitor_id)
        platforms = competitor.tracked_platforms()
        logger.info("[pipeline] scraping {} (#{}) on {}", competitor.name, competitor_id, platforms or "no platforms")

        outcome = ScrapeOutcome(competitor_id=competitor_id)
        sem = asyncio.Semaphore(self.settings.platform_concurrency)

        async def run_platform(platform: str) -> tuple[str, list[RawAdCandidate] | None]:
            async with sem:
                try:
                    scraper = self.scraper_factory(platform, self.pool, self.settings)
                    return platform, await scraper.scrape(competitor.name)
                except Exception as e:
                    logger.error("[pipeline] {} scrape failed for {}: {}", platform, competitor.name, e)
                    return platform, None

        async def run_site() -> tuple[str, list[RawAdCandidate] | None]:
            async with sem:
                try:
                    result = await self.site_crawler.crawl(competitor.name, competitor.website)
                except Exception as e:
                    logger.error("[pipeline] site crawl failed for {}: {}", competitor.name, e)
                    return PLATFORM_OTHER, None
                outcome.pages_visited = len(result.visited)
                if not site_crawl_succeeded(result):
                    return PLATFORM_OTHER, None
                return PLATFORM_OTHER, result.candidates

        tasks = [run_platform(p) for p in platforms]
        if competitor.website:
            tasks.append(run_site())
        results = await asyncio.gather(*tasks)

        if on_progress is not None:
            await on_progress(60)

        buckets: dict[str, list[RawAdCandidate]] = {}
        for platform, ads in results:
            if ads is None:
                outcome.failed_platforms.append(platform)
                continue
            buckets[platform] = ads
            outcome.found[platform] = len(ads)

        # 이번에 확인하지 못한 플랫폼의 광고는 내리지 않는다
        scope = set(ALL_PLATFORMS) - set(outcome.failed_platforms)
        if not competitor.website:
            scope.discard(PLATFORM_OTHER)

        async with self.competitor_lock(competitor_id):
            outcome.reconcile = await reconcile(
                competitor_id,
                buckets,
                store=self.store,
                analyze=self.analyze,
                record_finding=self.record_finding,
                inactivation_scope=scope,
            )
            await self.store.touch_competitor(competitor_id, utcnow())

        logger.info(
            "[pipeline] {} done: found={} failed={} added={} updated={} removed={}",
            competitor.name, outcome.found, outcome.failed_platforms,
            outcome.reconcile.added, outcome.reconcile.updated, outcome.reconcile.removed,
        )
        return outcome.as_dict()

    # ── 자사 사이트만 ──

    async def crawl_website(self, competitor_id: int, max_pages: int | None = None) -> dict:
        competitor = await self._load_competitor(competitor_id)
        if not competitor.website:
            raise AdWatchError(f"Competitor {competitor_id} has no website")

        crawl = await self.site_crawler.crawl(competitor.name, competitor.website, max_pages)
        scope = {PLATFORM_OTHER} if site_crawl_succeeded(crawl) else set()

        async with self.competitor_lock(competitor_id):
            result = await reconcile(
                competitor_id,
                {PLATFORM_OTHER: crawl.candidates},
                store=self.store,
                analyze=self.analyze,
                record_finding=self.record_finding,
                inactivation_scope=scope,
            )
            await self.store.touch_competitor(competitor_id, utcnow())

        return {
            "ads_found": len(crawl.candidates),
            "added": result.added,
            "updated": result.updated,
            "errors": result.errors,
            "pages_visited": len(crawl.visited),
        }
