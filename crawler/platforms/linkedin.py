"""LinkedIn 광고 스크래퍼 -- LinkedIn Ad Library 회사명 검색."""

from __future__ import annotations

from crawler.models import PLATFORM_LINKEDIN
from crawler.platforms.base import PlatformScraper
from crawler.platforms.card_parser import CardSpec

LINKEDIN_AD_LIBRARY_SEARCH_URL = "https://www.linkedin.com/ad-library/search?companyName={query}"

LINKEDIN_CARD_SPEC = CardSpec(
    card_selectors=(
        "li.search-result-item",
        "div.ad-preview",
        ".org-updates-section-container .feed-shared-update-v2",
    ),
    content_selectors=(
        ".commentary__content",
        ".sponsored-content-headline",
        "[data-test-id='ad-preview-commentary']",
        ".feed-shared-text",
        "p",
    ),
    landing_selectors=(
        "a[data-tracking-control-name*='ad_library_ad_preview_headline_content']",
        "a.sponsored-content-headline",
    ),
    date_selectors=(".ad-library-ad-run-dates", "[data-test-id='ad-run-dates']"),
)


class LinkedInScraper(PlatformScraper):
    platform = PLATFORM_LINKEDIN
    card_spec = LINKEDIN_CARD_SPEC

    def search_url(self, competitor_name: str) -> str:
        return LINKEDIN_AD_LIBRARY_SEARCH_URL.format(query=self.quote(competitor_name))
