"""Facebook 광고 스크래퍼 -- Meta 광고 라이브러리 (publisher_platforms=facebook)."""

from __future__ import annotations

from crawler.models import PLATFORM_FACEBOOK
from crawler.platforms.base import PlatformScraper
from crawler.platforms.card_parser import CardSpec

META_AD_LIBRARY_SEARCH_URL = (
    "https://www.facebook.com/ads/library/"
    "?active_status=all&ad_type=all&country=ALL"
    "&media_type=all&search_type=keyword_unordered"
    "&publisher_platforms[0]={publisher}&q={query}"
)

# 라이브러리 DOM은 자주 바뀌므로 구 클래스명 → data-testid → role 순으로 시도
META_CARD_SPEC = CardSpec(
    card_selectors=(
        ".adLibraryCard",
        "div[data-testid='ad-library-card']",
        "div[role='article']",
    ),
    content_selectors=(
        ".adLibraryTextContent",
        "[data-testid*='ad-content-body']",
        "div[style*='white-space: pre-wrap']",
        "div._4ik4",
    ),
    landing_selectors=(
        "a[data-testid='ad_library_card_cta_button']",
        "a[href*='l.facebook.com/l.php']",
    ),
    date_selectors=(".adLibraryStartDate",),
)


class FacebookScraper(PlatformScraper):
    platform = PLATFORM_FACEBOOK
    publisher = "facebook"
    card_spec = META_CARD_SPEC

    def search_url(self, competitor_name: str) -> str:
        return META_AD_LIBRARY_SEARCH_URL.format(publisher=self.publisher, query=self.quote(competitor_name))
