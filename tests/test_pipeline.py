"""수집 오케스트레이터 -- 플랫폼 격리, 비활성 판정 범위, 사이트 단독 크롤."""

import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from crawler.models import RawAdCandidate
from crawler.site_crawler import CrawlResult
from processor.errors import AdWatchError, CompetitorNotFound
from processor.pipeline import ScrapePipeline, site_crawl_succeeded
from processor.reconciler import StoredAd


class Competitor(SimpleNamespace):
    def tracked_platforms(self):
        return list(self.platforms)


class MemoryStore:
    def __init__(self, competitors, ads=()):
        self.competitors = {c.id: c for c in competitors}
        self.ads = {a.id: a for a in ads}
        self.touched = []

    async def find_competitor(self, competitor_id):
        return self.competitors.get(competitor_id)

    async def list_ads(self, competitor_id):
        return [StoredAd(a.id, a.platform, a.content, a.is_active) for a in self.ads.values()]

    async def insert_ads(self, rows):
        for row in rows:
            new_id = max(self.ads, default=0) + 1
            self.ads[new_id] = StoredAd(new_id, row.platform, row.content, row.is_active)
        return len(rows)

    async def update_ads(self, updates):
        for u in updates:
            self.ads[u.ad_id].is_active = u.is_active
        return len(updates)

    async def mark_inactive(self, ad_ids, at):
        for ad_id in ad_ids:
            self.ads[ad_id].is_active = False
        return len(ad_ids)

    async def touch_competitor(self, competitor_id, at=None):
        self.touched.append(competitor_id)

    def is_active(self, content):
        return next(a.is_active for a in self.ads.values() if a.content == content)


class FakeScraper:
    def __init__(self, results):
        self.results = results

    async def scrape(self, competitor_name):
        if isinstance(self.results, Exception):
            raise self.results
        return [RawAdCandidate(kind="text", content=c) for c in self.results]


class FakeSiteCrawler:
    def __init__(self, contents=(), failed=False):
        self.contents = contents
        self.failed = failed
        self.calls = []

    async def crawl(self, competitor_name, website, max_pages=None):
        self.calls.append((competitor_name, website, max_pages))
        seed = f"https://{website}/"
        result = CrawlResult(seed_url=seed, visited=[seed])
        if self.failed:
            result.failed.append(seed)
            return result
        result.candidates = [RawAdCandidate(kind="text", content=c) for c in self.contents]
        return result


async def _analyze(content, kind):
    return {"summary": content}


def make_pipeline(store, per_platform, site=None):
    events = []

    async def record(event):
        events.append(event)

    def factory(platform, pool, settings):
        return FakeScraper(per_platform[platform])

    pipeline = ScrapePipeline(
        pool=None,
        store=store,
        analyze=_analyze,
        record_finding=record,
        scraper_factory=factory,
        site_crawler=site or FakeSiteCrawler(),
    )
    return pipeline, events


ACME = Competitor(id=1, name="Acme", website="acme.com", platforms=["facebook", "google"])


def test_site_crawl_success_rule():
    assert site_crawl_succeeded(CrawlResult("s", visited=["a", "b"], failed=["a"]))
    assert not site_crawl_succeeded(CrawlResult("s", visited=["a"], failed=["a"]))
    assert not site_crawl_succeeded(CrawlResult("s"))


@pytest.mark.asyncio
async def test_full_scrape_collects_every_source():
    store = MemoryStore([ACME])
    site = FakeSiteCrawler(["Spring sale on the homepage"])
    pipeline, events = make_pipeline(
        store, {"facebook": ["FB ad"], "google": ["Google ad", "FB ad"]}, site,
    )
    progress = []

    async def on_progress(value):
        progress.append(value)

    result = await pipeline.scrape_competitor(1, on_progress)

    assert result["found"] == {"facebook": 1, "google": 2, "other": 1}
    assert result["failed_platforms"] == []
    assert result["added"] == 3
    assert result["pages_visited"] == 1
    assert progress == [60]
    assert store.touched == [1]
    assert len(events) == 3
    assert site.calls == [("Acme", "acme.com", None)]


@pytest.mark.asyncio
async def test_failed_platform_does_not_abort_or_inactivate():
    store = MemoryStore([ACME], [
        StoredAd(1, "facebook", "Old FB ad", True),
        StoredAd(2, "google", "Old Google ad", True),
    ])
    pipeline, _ = make_pipeline(store, {"facebook": RuntimeError("blocked"), "google": []})

    result = await pipeline.scrape_competitor(1)

    assert result["failed_platforms"] == ["facebook"]
    assert result["removed"] == 1
    assert store.is_active("Old FB ad") is True
    assert store.is_active("Old Google ad") is False


@pytest.mark.asyncio
async def test_failed_site_crawl_keeps_site_ads():
    store = MemoryStore([ACME], [StoredAd(1, "other", "Homepage banner", True)])
    pipeline, _ = make_pipeline(store, {"facebook": [], "google": []}, FakeSiteCrawler(failed=True))

    result = await pipeline.scrape_competitor(1)

    assert "other" in result["failed_platforms"]
    assert store.is_active("Homepage banner") is True


@pytest.mark.asyncio
async def test_no_website_skips_site_and_its_ads():
    competitor = Competitor(id=2, name="Globex", website=None, platforms=["linkedin"])
    store = MemoryStore([competitor], [StoredAd(1, "other", "Legacy banner", True)])
    site = FakeSiteCrawler(["never"])
    pipeline, _ = make_pipeline(store, {"linkedin": ["LinkedIn ad"]}, site)

    result = await pipeline.scrape_competitor(2)

    assert site.calls == []
    assert result["found"] == {"linkedin": 1}
    assert store.is_active("Legacy banner") is True


@pytest.mark.asyncio
async def test_unknown_competitor():
    pipeline, _ = make_pipeline(MemoryStore([]), {})
    with pytest.raises(CompetitorNotFound):
        await pipeline.scrape_competitor(42)


@pytest.mark.asyncio
async def test_crawl_website_only_touches_site_ads():
    store = MemoryStore([ACME], [
        StoredAd(1, "facebook", "FB ad", True),
        StoredAd(2, "other", "Old banner", True),
        StoredAd(3, "other", "Kept banner", False),
    ])
    site = FakeSiteCrawler(["Kept banner", "New banner"])
    pipeline, _ = make_pipeline(store, {}, site)

    result = await pipeline.crawl_website(1, max_pages=5)

    assert result == {"ads_found": 2, "added": 1, "updated": 1, "errors": 0, "pages_visited": 1}
    assert site.calls == [("Acme", "acme.com", 5)]
    assert store.is_active("FB ad") is True
    assert store.is_active("Old banner") is False
    assert store.is_active("Kept banner") is True


@pytest.mark.asyncio
async def test_crawl_website_requires_website():
    competitor = Competitor(id=3, name="Initech", website="", platforms=[])
    pipeline, _ = make_pipeline(MemoryStore([competitor]), {})
    with pytest.raises(AdWatchError):
        await pipeline.crawl_website(3)
