"""플랫폼 스크래퍼 베이스 -- 광고 투명성 검색 → 로그인 벽 감지 → fallback/카드 파싱.

하위 클래스는 platform, card_spec, search_url()만 정하면 된다.
검색 화면이 입력 폼 방식이면 open_results()를 override.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import quote_plus

from loguru import logger
from playwright.async_api import Page

from crawler import page_utils
from crawler.browser_pool import BrowserPool
from crawler.config import CrawlerSettings, crawler_settings
from crawler.models import RawAdCandidate
from crawler.platforms.card_parser import CardSpec, parse_cards
from crawler.platforms.search_fallback import SearchFallback

AUTH_URL_TOKENS = ("login", "checkpoint", "authwall", "signin", "sign-in")

AUTH_TEXT_PHRASES = (
    "log in to continue",
    "log into facebook",
    "sign in to",
    "you must log in",
    "please log in",
    "join now to see",
    "to continue, please sign in",
    "create an account or log in",
)


def detect_auth_wall(url: str | None, body_text: str | None) -> str | None:
    """로그인 벽 판정. 감지되면 근거 문자열, 아니면 None."""
    lowered_url = (url or "").lower()
    for token in AUTH_URL_TOKENS:
        if token in lowered_url:
            return f"url:{token}"
    # 본문 앞부분만 (푸터의 "Log in" 링크 오탐 방지)
    head = " ".join((body_text or "").lower().split())[:2_000]
    for phrase in AUTH_TEXT_PHRASES:
        if phrase in head:
            return f"text:{phrase}"
    return None


class PlatformScraper(ABC):
    """모든 플랫폼 스크래퍼가 상속하는 베이스 클래스."""

    platform: str = ""  # 하위 클래스에서 override
    card_spec: CardSpec

    def __init__(
        self,
        pool: BrowserPool,
        settings: CrawlerSettings | None = None,
        fallback: SearchFallback | None = None,
    ):
        self.pool = pool
        self.settings = settings or crawler_settings
        self.fallback = fallback or SearchFallback(self.settings)

    @abstractmethod
    def search_url(self, competitor_name: str) -> str:
        """광고 투명성 검색 URL."""

    @staticmethod
    def quote(value: str) -> str:
        return quote_plus(value.strip())

    async def scrape(self, competitor_name: str) -> list[RawAdCandidate]:
        """격리된 세션 하나에서 경쟁사 광고 수집."""
        async with self.pool.session() as page:
            return await self.scrape_page(page, competitor_name)

    async def scrape_page(self, page: Page, competitor_name: str) -> list[RawAdCandidate]:
        opened = await self.open_results(page, competitor_name)
        blocked = None
        if opened:
            blocked = detect_auth_wall(page.url, await page_utils.page_text(page))

        if not opened or blocked:
            logger.info(
                "[{}] primary path unavailable for {} ({}), using search fallback",
                self.platform, competitor_name, blocked or "navigation failed",
            )
            return await self.fallback.search_ads(page, competitor_name, self.platform)

        await page_utils.dismiss_cookie_banner(page)
        await page_utils.scroll_page(page, self.settings.platform_scroll_count)

        html = await page_utils.page_html(page)
        ads = parse_cards(html, self.card_spec, base_url=page.url, limit=self.settings.max_cards_per_platform)
        logger.info("[{}] {}: {} ad cards", self.platform, competitor_name, len(ads))
        return ads

    async def open_results(self, page: Page, competitor_name: str) -> bool:
        """검색 결과 화면까지 이동. 실패 시 False."""
        if not await page_utils.goto(page, self.search_url(competitor_name)):
            return False
        await page_utils.wait_ms(page, self.settings.platform_settle_ms)
        return True
