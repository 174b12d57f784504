"""플랫폼별 광고 스크래퍼 레지스트리."""

from crawler.browser_pool import BrowserPool
from crawler.config import CrawlerSettings
from crawler.platforms.base import PlatformScraper
from crawler.platforms.facebook import FacebookScraper
from crawler.platforms.google import GoogleScraper
from crawler.platforms.instagram import InstagramScraper
from crawler.platforms.linkedin import LinkedInScraper

SCRAPERS: dict[str, type[PlatformScraper]] = {
    FacebookScraper.platform: FacebookScraper,
    GoogleScraper.platform: GoogleScraper,
    InstagramScraper.platform: InstagramScraper,
    LinkedInScraper.platform: LinkedInScraper,
}


def get_scraper(platform: str, pool: BrowserPool, settings: CrawlerSettings | None = None) -> PlatformScraper:
    try:
        cls = SCRAPERS[platform]
    except KeyError:
        raise ValueError(f"unsupported platform: {platform}") from None
    return cls(pool, settings)
