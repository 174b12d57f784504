"""크롤러 전역 설정."""

from pydantic_settings import BaseSettings


class CrawlerSettings(BaseSettings):
    # 타임아웃
    page_timeout_ms: int = 30_000
    navigation_timeout_ms: int = 30_000
    selector_timeout_ms: int = 10_000
    cookie_banner_timeout_ms: int = 2_000

    # 브라우저
    headless: bool = True
    slow_mo_ms: int = 0
    stealth_enabled: bool = True

    # 플랫폼 스크래퍼
    platform_concurrency: int = 4
    platform_scroll_count: int = 5
    platform_scroll_pause_ms: int = 1_500
    platform_settle_ms: int = 3_000
    max_cards_per_platform: int = 50

    # 검색엔진 fallback
    search_fallback_url: str = "https://html.duckduckgo.com/html/?q={query}"
    search_fallback_max_results: int = 10

    # 사이트 크롤러
    site_crawl_default_pages: int = 10
    site_crawl_max_pages: int = 50
    site_page_settle_ms: int = 2_000
    site_inter_page_delay_ms: int = 1_000

    # 추출
    max_candidate_length: int = 1_000

    model_config = {"env_prefix": "CRAWLER_"}


crawler_settings = CrawlerSettings()
