"""Google 광고 스크래퍼 -- Google 광고 투명성 센터.

검색이 URL 파라미터가 아닌 입력 폼 방식이라 open_results()를 override:
검색창 입력 → 광고주 제안/카드 대기 → 첫 광고주 클릭 → 크리에이티브 목록.
"""

from __future__ import annotations

from loguru import logger
from playwright.async_api import Page

from crawler import page_utils
from crawler.models import PLATFORM_GOOGLE
from crawler.platforms.base import PlatformScraper
from crawler.platforms.card_parser import CardSpec

GOOGLE_TRANSPARENCY_URL = "https://adstransparency.google.com/?region=anywhere"

SEARCH_INPUT_SELECTORS = [
    'input[aria-label="Search for an advertiser"]',
    'input[aria-label*="advertiser"]',
    "search-input input",
    'input[type="text"]',
]

ADVERTISER_RESULT_SELECTORS = [
    ".advertiser-card",
    "material-select-item[role='option']",
    "search-suggestion-renderer",
]

GOOGLE_CARD_SPEC = CardSpec(
    card_selectors=(
        ".ad-card",
        "creative-preview",
        "priority-creative-grid creative-preview",
    ),
    content_selectors=(
        ".ad-text",
        ".creative-text",
        "[class*='headline']",
        ".advertiser-name",
    ),
    landing_selectors=("a.ad-destination", "a[href*='adurl=']"),
    date_selectors=(".ad-date", ".last-shown"),
)


class GoogleScraper(PlatformScraper):
    platform = PLATFORM_GOOGLE
    card_spec = GOOGLE_CARD_SPEC

    def search_url(self, competitor_name: str) -> str:
        return GOOGLE_TRANSPARENCY_URL

    async def open_results(self, page: Page, competitor_name: str) -> bool:
        if not await page_utils.goto(page, self.search_url(competitor_name)):
            return False

        search_input = await self._first_present(page, SEARCH_INPUT_SELECTORS)
        if search_input is None:
            # 입력창이 없으면 로그인 벽/차단 페이지일 수 있음. 판정은 호출자가 한다
            logger.debug("[{}] search input not found", self.platform)
            return True

        try:
            await page.fill(search_input, competitor_name)
            await page.press(search_input, "Enter")
        except Exception as e:
            logger.warning("[{}] search input failed: {}", self.platform, str(e)[:120])
            return False

        advertiser = await self._first_present(page, ADVERTISER_RESULT_SELECTORS)
        if advertiser is not None:
            try:
                await page.click(advertiser, timeout=self.settings.selector_timeout_ms)
            except Exception as e:
                logger.debug("[{}] advertiser click failed: {}", self.platform, str(e)[:120])

        await page_utils.wait_ms(page, self.settings.platform_settle_ms)
        return True

    async def _first_present(self, page: Page, selectors: list[str]) -> str | None:
        for sel in selectors:
            if await page_utils.wait_for_selector_safe(page, sel, timeout_ms=self.settings.cookie_banner_timeout_ms):
                return sel
        return None
