"""경쟁사 자사 웹사이트 크롤러 -- 페이지 수 제한 BFS로 배너/프로모션 영역 수집.

- 시드: 경쟁사 website (스킴 자동 보정, 깨진 URL은 도메인 추정)
- 동일 hostname 링크만 추적, 로그인/계정/약관/사이트맵 등 회피
- 깊이 제한 없음, max_pages로만 종료 보장 (순환 링크 그래프 포함)
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse

from loguru import logger
from playwright.async_api import Page

from crawler import page_utils
from crawler.browser_pool import BrowserPool
from crawler.config import CrawlerSettings, crawler_settings
from crawler.models import RawAdCandidate
from processor.ad_extractor import scan_page
from processor.ad_rules import AdRuleSet

AVOID_KEYWORDS = (
    "login",
    "log-in",
    "sign in",
    "signin",
    "sign-in",
    "register",
    "account",
    "password",
    "privacy policy",
    "privacy-policy",
    "terms of service",
    "terms-of-service",
    "cookie policy",
    "cookie-policy",
    "sitemap",
)

_SKIP_EXTENSIONS = (
    ".pdf", ".zip", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
    ".mp4", ".mp3", ".xml", ".css", ".js", ".ico", ".dmg", ".exe",
)

_HOST_RE = re.compile(r"([a-z0-9-]+(?:\.[a-z0-9-]+)+)", re.I)


def normalize_seed_url(website: str) -> str:
    """경쟁사 website → 크롤 시드 URL.

    스킴이 없으면 https:// 부여, 파싱 불가하면 도메인처럼 보이는 토큰만 추출.
    """
    raw = (website or "").strip()
    if not raw:
        raise ValueError("empty website")

    candidate = raw if re.match(r"^[a-z][a-z0-9+.-]*://", raw, re.I) else f"https://{raw}"
    try:
        parsed = urlparse(candidate)
        host, scheme = parsed.hostname, parsed.scheme
    except ValueError:
        host, scheme = None, ""

    if host and "." in host and " " not in candidate and scheme in ("http", "https"):
        return canonical_url(candidate)

    # 도메인 추정 fallback
    match = _HOST_RE.search(raw)
    if not match:
        raise ValueError(f"cannot derive domain from {website!r}")
    guess = f"https://{match.group(1).lower()}/"
    logger.warning("[site-crawler] malformed website {!r}, guessing {}", website, guess)
    return guess


def canonical_url(url: str) -> str:
    """스킴/호스트 소문자, 빈 path는 "/" -- 같은 페이지의 중복 방문 방지."""
    parsed = urlparse(url)
    return parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        path=parsed.path or "/",
        fragment="",
    ).geturl()


def seed_hostname(seed_url: str) -> str:
    return (urlparse(seed_url).hostname or "").lower()


def adopt_redirect_host(hostname: str, final_url: str) -> str:
    """시드가 www 유무만 다른 호스트로 리다이렉트되면 그 호스트를 기준으로 삼는다."""
    final_host = (urlparse(final_url).hostname or "").lower()
    if final_host and final_host != hostname and final_host.removeprefix("www.") == hostname.removeprefix("www."):
        logger.debug("[site-crawler] seed redirected {} -> {}", hostname, final_host)
        return final_host
    return hostname


def is_avoided(link: str) -> bool:
    lowered = link.lower()
    return any(k in lowered for k in AVOID_KEYWORDS)


def resolve_crawl_link(href: str, current_url: str, hostname: str) -> str | None:
    """링크를 절대 URL로 해석하고 크롤 대상이면 반환."""
    if not href or is_avoided(href):
        return None
    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "tel:", "data:", "#")):
        return None
    try:
        absolute, _frag = urldefrag(urljoin(current_url, href))
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    if (parsed.hostname or "").lower() != hostname:
        return None
    if parsed.path.lower().endswith(_SKIP_EXTENSIONS):
        return None
    return canonical_url(absolute)


@dataclass
class CrawlResult:
    seed_url: str
    candidates: list[RawAdCandidate] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class SiteCrawler:
    """경쟁사 도메인 BFS 크롤러."""

    def __init__(self, pool: BrowserPool, settings: CrawlerSettings | None = None):
        self.pool = pool
        self.settings = settings or crawler_settings
        self.rules = AdRuleSet(max_element_text=self.settings.max_candidate_length)

    async def crawl(self, competitor_name: str, website: str, max_pages: int | None = None) -> CrawlResult:
        max_pages = max(1, min(max_pages or self.settings.site_crawl_default_pages,
                               self.settings.site_crawl_max_pages))
        seed = normalize_seed_url(website)
        hostname = seed_hostname(seed)
        result = CrawlResult(seed_url=seed)

        visited: set[str] = set()
        seen: set[str] = {seed}
        frontier: deque[str] = deque([seed])

        logger.info("[site-crawler] {} start {} (max_pages={})", competitor_name, seed, max_pages)

        async with self.pool.session() as page:
            while frontier and len(visited) < max_pages:
                url = frontier.popleft()
                if url in visited:
                    continue
                visited.add(url)
                result.visited.append(url)

                try:
                    loaded = await self._load(page, url)
                    if loaded is None:
                        result.failed.append(url)
                        continue
                    final_url, html = loaded
                    if len(visited) == 1:
                        hostname = adopt_redirect_host(hostname, final_url)
                    if seed_hostname(final_url) != hostname:
                        # 리다이렉트로 다른 도메인에 도착한 페이지는 경쟁사 사이트가 아니다
                        logger.debug("[site-crawler] {} left the site ({}), skipped", url, final_url)
                        continue

                    scan = scan_page(html, final_url, competitor_name, self.rules)
                    page_ads = scan.candidates
                    result.candidates.extend(page_ads)

                    for href in scan.links:
                        link = resolve_crawl_link(href, final_url, hostname)
                        if link and link not in visited and link not in seen:
                            seen.add(link)
                            frontier.append(link)

                    logger.debug("[site-crawler] {} -> {} candidates, frontier={}", url, len(page_ads), len(frontier))
                except Exception as e:
                    logger.warning("[site-crawler] page failed {}: {}", url, e)
                    result.failed.append(url)
                    continue

                await page_utils.wait_ms(page, self.settings.site_inter_page_delay_ms)

        logger.info(
            "[site-crawler] {} done: visited {} pages, {} candidates",
            competitor_name, len(result.visited), len(result.candidates),
        )
        return result

    async def _load(self, page: Page, url: str) -> tuple[str, str] | None:
        """이동 후 (최종 URL, HTML). 실패 시 None."""
        if not await page_utils.goto(page, url):
            return None
        await page_utils.wait_ms(page, self.settings.site_page_settle_ms)
        await page_utils.dismiss_cookie_banner(page)
        html = await page_utils.page_html(page)
        if not html:
            return None
        return (page.url or url), html
