"""Instagram 광고 스크래퍼 -- 같은 Meta 광고 라이브러리, 게재 지면만 instagram."""

from __future__ import annotations

from crawler.models import PLATFORM_INSTAGRAM
from crawler.platforms.facebook import FacebookScraper


class InstagramScraper(FacebookScraper):
    platform = PLATFORM_INSTAGRAM
    publisher = "instagram"
