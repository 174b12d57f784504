"""브라우저 풀 -- 가짜 Playwright 드라이버로 컨텍스트 정리/재기동 확인."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

import pytest

from crawler.browser_pool import BrowserPool
from crawler import browser_pool
from crawler.config import CrawlerSettings
from crawler.fingerprints import Fingerprint


class FakePage:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, options):
        self.options = options
        self.pages: list[FakePage] = []
        self.init_scripts: list[str] = []
        self.closed = False

    def set_default_timeout(self, ms):
        self.timeout = ms

    def set_default_navigation_timeout(self, ms):
        self.navigation_timeout = ms

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def new_page(self):
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.connected = True
        self.contexts: list[FakeContext] = []
        self.closed = False

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self):
        self.launches: list[FakeBrowser] = []

    async def launch(self, **kwargs):
        browser = FakeBrowser()
        self.launches.append(browser)
        return browser


class FakePlaywright:
    def __init__(self):
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


@pytest.fixture
def pool():
    pool = BrowserPool(CrawlerSettings(stealth_enabled=False))
    pool._playwright = FakePlaywright()
    return pool


@pytest.mark.asyncio
async def test_session_releases_context_on_success(pool):
    async with pool.session() as page:
        assert pool.open_contexts == 1
        context = pool._browser.contexts[0]

    assert pool.open_contexts == 0
    assert context.closed
    assert page.closed
    assert context.options["locale"]
    assert context.init_scripts  # navigator.webdriver 패치


@pytest.mark.asyncio
async def test_session_releases_context_on_error(pool):
    with pytest.raises(RuntimeError):
        async with pool.session():
            raise RuntimeError("selector blew up")

    assert pool.open_contexts == 0
    assert pool._browser.contexts[0].closed


@pytest.mark.asyncio
async def test_browser_is_shared_and_relaunched_when_disconnected(pool):
    async with pool.session():
        pass
    async with pool.session():
        pass
    assert len(pool._playwright.chromium.launches) == 1

    pool._browser.connected = False
    async with pool.session():
        pass
    assert len(pool._playwright.chromium.launches) == 2


@pytest.mark.asyncio
async def test_stop_closes_everything_and_blocks_new_sessions(pool):
    driver = pool._playwright
    context, _page = await pool.acquire()
    browser = pool._browser

    await pool.stop()

    assert context.closed
    assert browser.closed
    assert driver.stopped
    with pytest.raises(RuntimeError):
        await pool.acquire()


@pytest.mark.asyncio
async def test_with_session_returns_callback_result(pool):
    async def title(page):
        return "ok"

    assert await pool.with_session(title) == "ok"
    assert pool.open_contexts == 0


@pytest.mark.asyncio
async def test_stealth_platform_follows_fingerprint(monkeypatch):
    seen = []

    class RecordingStealth:
        def __init__(self, **kwargs):
            seen.append(kwargs)
            self.enabled_scripts = ["/* stealth */"]

    monkeypatch.setattr(browser_pool, "Stealth", RecordingStealth)
    pool = BrowserPool(CrawlerSettings(stealth_enabled=True))
    pool._playwright = FakePlaywright()
    mac = Fingerprint(
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)", viewport_width=1440,
        viewport_height=900, locale="en-US", timezone_id="America/New_York", platform_hint="macOS",
    )

    context, _page = await pool.acquire(mac)
    await pool.release(context)

    assert seen[0]["navigator_platform_override"] == "MacIntel"
    assert "/* stealth */" in context.init_scripts
