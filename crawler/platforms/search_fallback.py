"""검색엔진 fallback -- 광고 투명성 페이지가 로그인 벽에 막혔을 때.

"<경쟁사> <플랫폼> ads"로 일반 웹 검색을 하고, 플랫폼명 또는 광고 관련
용어를 언급하는 결과 스니펫만 텍스트 후보로 남긴다.
"""

from __future__ import annotations

from urllib.parse import quote_plus

from bs4 import BeautifulSoup
from loguru import logger
from playwright.async_api import Page

from crawler import page_utils
from crawler.config import CrawlerSettings, crawler_settings
from crawler.models import RawAdCandidate
from crawler.platforms.card_parser import unwrap_redirect
from processor.ad_extractor import first_attr, first_text, parse_html, resolve_url
from processor.ad_rules import mentions_ad_context

RESULT_SELECTORS = (".result", ".web-result", "div[data-testid='result']", "li.b_algo")
TITLE_SELECTORS = [".result__title a", "a.result__a", "h2 a", "h3 a"]
SNIPPET_SELECTORS = [".result__snippet", "[data-result='snippet']", ".b_caption p", "p"]

# 플랫폼 언급 판정용 별칭
PLATFORM_ALIASES: dict[str, tuple[str, ...]] = {
    "facebook": ("facebook", "meta ad library", "fb.com"),
    "instagram": ("instagram",),
    "google": ("google", "adwords", "youtube", "display network"),
    "linkedin": ("linkedin",),
    "other": (),
}


def build_query(competitor_name: str, platform: str) -> str:
    return f"{competitor_name} {platform} ads"


def mentions_platform(text: str, platform: str) -> bool:
    lowered = text.lower()
    return any(alias in lowered for alias in PLATFORM_ALIASES.get(platform, (platform,)))


def parse_search_results(
    html: str | BeautifulSoup, platform: str, base_url: str | None = None, limit: int = 10,
) -> list[RawAdCandidate]:
    """검색 결과 HTML → 관련 스니펫 후보 (순수 함수)."""
    soup = html if isinstance(html, BeautifulSoup) else parse_html(html)

    results = []
    for sel in RESULT_SELECTORS:
        results = soup.select(sel)
        if results:
            break

    candidates: list[RawAdCandidate] = []
    seen: set[str] = set()
    for result in results:
        title = first_text(result, TITLE_SELECTORS) or ""
        snippet = first_text(result, SNIPPET_SELECTORS) or ""
        if not snippet and not title:
            continue
        text = f"{title} {snippet}"
        if not (mentions_platform(text, platform) or mentions_ad_context(text)):
            continue

        content = f"{title} - {snippet}" if title and snippet else (title or snippet)
        if content in seen:
            continue
        seen.add(content)

        href = resolve_url(first_attr(result, TITLE_SELECTORS, "href"), base_url)
        candidates.append(RawAdCandidate(
            kind="text",
            content=content,
            landing_page_url=unwrap_redirect(href),
        ))
        if len(candidates) >= limit:
            break
    return candidates


class SearchFallback:
    """일반 웹 검색 기반 보조 전략."""

    def __init__(self, settings: CrawlerSettings | None = None):
        self.settings = settings or crawler_settings

    def search_url(self, competitor_name: str, platform: str) -> str:
        return self.settings.search_fallback_url.format(query=quote_plus(build_query(competitor_name, platform)))

    async def search_ads(self, page: Page, competitor_name: str, platform: str) -> list[RawAdCandidate]:
        url = self.search_url(competitor_name, platform)
        logger.info("[search-fallback] {} / {}: {}", competitor_name, platform, url)
        if not await page_utils.goto(page, url):
            return []
        await page_utils.wait_ms(page, self.settings.site_page_settle_ms)
        html = await page_utils.page_html(page)
        if not html:
            return []
        found = parse_search_results(
            html, platform, base_url=url, limit=self.settings.search_fallback_max_results,
        )
        logger.info("[search-fallback] {} / {}: {} snippets kept", competitor_name, platform, len(found))
        return found
