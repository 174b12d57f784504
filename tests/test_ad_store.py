"""AdStore + AlertRecorder -- 임시 SQLite 파일 위에서 실제 SQL 경로 검증."""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from api.event_bus import EVT_ALERT_CREATED, EventBus
from crawler.models import RawAdCandidate
from crawler.site_crawler import CrawlResult
from database import init_db, make_engine, make_session_factory
from database.models import Ad, Alert, Competitor
from processor.ad_store import AdStore
from processor.alerts import AlertRecorder
from processor.pipeline import ScrapePipeline
from processor.reconciler import ChangeEvent, reconcile

T0 = datetime(2026, 2, 1, 9, 0, 0)
T1 = datetime(2026, 2, 2, 9, 0, 0)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'adwatch-test.db'}")
    await init_db(engine)
    factory = make_session_factory(engine)
    async with factory() as session:
        session.add_all([
            Competitor(id=1, name="Acme", website="acme.com"),
            Competitor(id=2, name="Globex", track_linkedin=True, track_google=False),
        ])
        await session.commit()
    yield factory
    await engine.dispose()


async def _analyze(content, kind):
    return {"summary": "ok"}


@pytest.mark.asyncio
async def test_competitor_lookup(session_factory):
    store = AdStore(session_factory)

    acme = await store.find_competitor(1)
    globex = await store.find_competitor(2)

    assert acme.name == "Acme"
    assert acme.tracked_platforms() == ["facebook", "google", "instagram"]
    assert globex.tracked_platforms() == ["facebook", "instagram", "linkedin"]
    assert await store.find_competitor(99) is None
    assert await store.list_competitor_ids() == [1, 2]


@pytest.mark.asyncio
async def test_reconcile_against_database(session_factory):
    store = AdStore(session_factory)
    events = []

    async def record(event):
        events.append(event)

    first = await reconcile(
        1,
        {"facebook": [RawAdCandidate(kind="image", content="Spring sale", media_url="https://cdn/x.jpg")],
         "google": [RawAdCandidate(kind="text", content="Try Acme free")]},
        store=store, analyze=_analyze, record_finding=record, now=T0,
    )
    assert first.added == 2

    second = await reconcile(
        1,
        {"google": [RawAdCandidate(kind="text", content="Try Acme free")]},
        store=store, analyze=_analyze, record_finding=record, now=T1,
    )
    assert (second.added, second.updated, second.removed) == (0, 0, 1)

    async with session_factory() as session:
        rows = (await session.execute(select(Ad).order_by(Ad.id))).scalars().all()
    assert [(r.platform, r.is_active) for r in rows] == [("facebook", False), ("google", True)]
    assert rows[0].analysis == {"summary": "ok"}
    assert rows[0].media_url == "https://cdn/x.jpg"
    assert rows[1].last_seen == T1
    assert rows[1].first_seen <= T0


@pytest.mark.asyncio
async def test_mark_inactive_only_counts_active_rows(session_factory):
    store = AdStore(session_factory)
    await reconcile(
        1, {"facebook": [RawAdCandidate(kind="text", content="Only ad")]},
        store=store, analyze=_analyze, record_finding=_noop, now=T0,
    )
    ad_id = (await store.list_ads(1))[0].id

    assert await store.mark_inactive([ad_id], T1) == 1
    assert await store.mark_inactive([ad_id], T1) == 0


@pytest.mark.asyncio
async def test_touch_competitor_sets_last_scraped(session_factory):
    store = AdStore(session_factory)

    await store.touch_competitor(1, T1)

    competitor = await store.find_competitor(1)
    assert competitor.last_scraped == T1


@pytest.mark.asyncio
async def test_alert_recorder_persists_and_publishes(session_factory):
    bus = EventBus()
    recorder = AlertRecorder(session_factory, bus=bus)

    alert_id = await recorder.record_finding(ChangeEvent(
        competitor_id=1, kind="new_campaign", title="New text ad on google",
        description="Try Acme free", platform="google",
    ))

    async with session_factory() as session:
        count = (await session.execute(select(func.count(Alert.id)))).scalar()
        alert = await session.get(Alert, alert_id)
    assert count == 1
    assert alert.type == "new_campaign"
    assert alert.is_read is False

    published = bus.recent(EVT_ALERT_CREATED)
    assert published[-1].data["alert_id"] == alert_id
    assert published[-1].data["platform"] == "google"


async def _noop(event):
    return None


class _EmptyScraper:
    async def scrape(self, competitor_name):
        return []


class _SlowSiteCrawler:
    """두 수집이 같은 새 광고를 거의 동시에 들고 오도록 지연."""

    async def crawl(self, competitor_name, website, max_pages=None):
        await asyncio.sleep(0.05)
        seed = f"https://{website}/"
        return CrawlResult(
            seed_url=seed, visited=[seed],
            candidates=[RawAdCandidate(kind="text", content="Acme summer promo: buy now, 30% off")],
        )


async def _slow_analyze(content, kind):
    await asyncio.sleep(0.02)
    return {"summary": "ok"}


@pytest.mark.asyncio
async def test_scrape_and_site_crawl_for_same_competitor_do_not_collide(session_factory):
    store = AdStore(session_factory)
    pipeline = ScrapePipeline(
        None,
        store=store,
        analyze=_slow_analyze,
        record_finding=_noop,
        scraper_factory=lambda platform, pool, settings: _EmptyScraper(),
        site_crawler=_SlowSiteCrawler(),
    )

    full, site_only = await asyncio.gather(pipeline.scrape_competitor(1), pipeline.crawl_website(1))

    assert full["added"] + site_only["added"] == 1
    async with session_factory() as session:
        rows = (await session.execute(select(Ad).where(Ad.competitor_id == 1))).scalars().all()
    assert [(r.platform, r.is_active) for r in rows] == [("other", True)]
