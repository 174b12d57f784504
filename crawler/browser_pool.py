"""브라우저 풀 -- 프로세스 단위 Chromium 1개 + 호출마다 격리된 stealth 컨텍스트.

사용법:
    pool = BrowserPool()
    await pool.start()
    async with pool.session() as page:
        await page.goto(...)
    await pool.stop()

브라우저는 최초 acquire() 시점에 띄우고, 연결이 끊겨 있으면 다시 띄운다.
컨텍스트/페이지는 성공·예외·타임아웃·취소 모든 경로에서 정리된다.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright_stealth import Stealth

from crawler.config import CrawlerSettings, crawler_settings
from crawler.fingerprints import Fingerprint, random_fingerprint

T = TypeVar("T")

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-infobars",
    "--disable-notifications",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-translate",
    "--mute-audio",
    "--hide-scrollbars",
]

# navigator.webdriver 등 기본 봇 감지 회피
BASE_STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    if (!window.chrome) window.chrome = {};
    if (!window.chrome.runtime) window.chrome.runtime = { connect: () => {}, sendMessage: () => {} };
    const origQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (params) =>
        params.name === 'notifications'
            ? Promise.resolve({ state: Notification.permission })
            : origQuery(params);
"""


class BrowserPool:
    """Chromium 프로세스 공유 + 컨텍스트 단위 격리."""

    def __init__(self, settings: CrawlerSettings | None = None):
        self.settings = settings or crawler_settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._contexts: set[BrowserContext] = set()
        self._launch_lock = asyncio.Lock()
        self._closed = False

    # ── Lifecycle ──

    async def start(self):
        """Playwright 드라이버 시작. 브라우저 자체는 acquire() 때 lazy launch."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        self._closed = False
        logger.info("[browser-pool] started (headless={})", self.settings.headless)

    async def stop(self):
        """열린 컨텍스트 전부 정리 후 브라우저/드라이버 종료."""
        self._closed = True
        for context in list(self._contexts):
            await self.release(context)
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("[browser-pool] browser close failed: {}", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("[browser-pool] stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()

    @property
    def open_contexts(self) -> int:
        return len(self._contexts)

    # ── 브라우저 ──

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("[browser-pool] browser disconnected, relaunching")
                self._browser = None
            if self._playwright is None:
                await self.start()

            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                slow_mo=self.settings.slow_mo_ms or None,
                args=LAUNCH_ARGS,
            )
            logger.info("[browser-pool] chromium launched")
            return self._browser

    # ── 컨텍스트 ──

    async def acquire(self, fingerprint: Fingerprint | None = None) -> tuple[BrowserContext, Page]:
        """새 stealth 컨텍스트 + 페이지 생성."""
        if self._closed:
            raise RuntimeError("BrowserPool is stopped")

        browser = await self._ensure_browser()
        fp = fingerprint or random_fingerprint()
        context = await browser.new_context(**fp.context_options())
        self._contexts.add(context)
        try:
            context.set_default_timeout(self.settings.page_timeout_ms)
            context.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
            await context.add_init_script(BASE_STEALTH_SCRIPT)
            if self.settings.stealth_enabled:
                await self._apply_stealth(context, fp)
            page = await context.new_page()
        except BaseException:
            await self.release(context)
            raise

        logger.debug(
            "[browser-pool] context acquired ({}x{}, {})",
            fp.viewport_width, fp.viewport_height, fp.locale,
        )
        return context, page

    async def _apply_stealth(self, context: BrowserContext, fp: Fingerprint):
        stealth = Stealth(
            navigator_languages_override=(fp.locale, fp.locale.split("-")[0]),
            navigator_platform_override=fp.navigator_platform,
            # UA는 핑거프린트가 관리
            navigator_user_agent=False,
            chrome_runtime=False,
        )
        for script in list(stealth.enabled_scripts):
            await context.add_init_script(script)

    async def release(self, context: BrowserContext):
        """컨텍스트와 소속 페이지 정리. 절대 예외를 올리지 않는다."""
        self._contexts.discard(context)
        try:
            for p in list(context.pages):
                try:
                    await p.close()
                except Exception:
                    pass
            await context.close()
        except Exception as e:
            logger.debug("[browser-pool] context close failed: {}", e)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Page]:
        """격리된 페이지를 빌려주고 종료 시 반드시 반납."""
        context, page = await self.acquire()
        try:
            yield page
        finally:
            # 취소 중에도 정리가 끝나도록 shield
            await asyncio.shield(self.release(context))

    async def with_session(self, fn: Callable[[Page], Awaitable[T]]) -> T:
        async with self.session() as page:
            return await fn(page)
