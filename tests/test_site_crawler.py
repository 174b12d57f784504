"""사이트 크롤러 -- 시드 보정, 동일 호스트 BFS, 순환 종료."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from crawler.config import CrawlerSettings
from crawler.site_crawler import (
    SiteCrawler,
    adopt_redirect_host,
    normalize_seed_url,
    resolve_crawl_link,
)

SETTINGS = CrawlerSettings(site_page_settle_ms=0, site_inter_page_delay_ms=0)

PROMO = '<div class="promo-banner">Spring sale: 30% discount for new teams</div>'


def _html(body: str) -> str:
    return f"<html><body>{body}</body></html>"


# ── URL 처리 ──

@pytest.mark.parametrize("raw,expected", [
    ("acme.com", "https://acme.com/"),
    ("https://Acme.com", "https://acme.com/"),
    ("http://acme.com/about#team", "http://acme.com/about"),
    ("  www.acme.com/shop ", "https://www.acme.com/shop"),
])
def test_normalize_seed_url(raw, expected):
    assert normalize_seed_url(raw) == expected


def test_normalize_seed_url_guesses_domain_from_garbage():
    assert normalize_seed_url("Acme Inc (acme.io)") == "https://acme.io/"


def test_normalize_seed_url_rejects_empty():
    with pytest.raises(ValueError):
        normalize_seed_url("   ")


def test_resolve_crawl_link_filters():
    base = "https://acme.com/blog/"
    assert resolve_crawl_link("post-1", base, "acme.com") == "https://acme.com/blog/post-1"
    assert resolve_crawl_link("/pricing#plans", base, "acme.com") == "https://acme.com/pricing"
    assert resolve_crawl_link("https://other.com/", base, "acme.com") is None
    assert resolve_crawl_link("/login", base, "acme.com") is None
    assert resolve_crawl_link("/privacy-policy", base, "acme.com") is None
    assert resolve_crawl_link("/brochure.pdf", base, "acme.com") is None
    assert resolve_crawl_link("mailto:hi@acme.com", base, "acme.com") is None
    assert resolve_crawl_link("javascript:void(0)", base, "acme.com") is None


def test_adopt_redirect_host_only_for_www_variant():
    assert adopt_redirect_host("acme.com", "https://www.acme.com/") == "www.acme.com"
    assert adopt_redirect_host("acme.com", "https://evil.com/") == "acme.com"
    assert adopt_redirect_host("acme.com", "https://acme.com/home") == "acme.com"


# ── 크롤 ──

@pytest.mark.asyncio
async def test_crawl_follows_same_host_links_and_collects(make_pool, no_cookie_banner):
    site = {
        "https://acme.com/": _html('<a href="/pricing">Pricing</a><a href="https://other.com/">Out</a>'),
        "https://acme.com/pricing": _html(PROMO + '<a href="/">Home</a>'),
    }
    pool, page = make_pool(site)

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=10)

    assert result.visited == ["https://acme.com/", "https://acme.com/pricing"]
    assert result.failed == []
    assert [c.content for c in result.candidates] == ["Spring sale: 30% discount for new teams"]
    assert "https://other.com/" not in page.requested


@pytest.mark.asyncio
async def test_crawl_terminates_on_link_cycles(make_pool, no_cookie_banner):
    site = {
        "https://acme.com/": _html('<a href="/a">a</a>'),
        "https://acme.com/a": _html('<a href="/b">b</a>'),
        "https://acme.com/b": _html('<a href="/">home</a><a href="/a">a</a>'),
    }
    pool, page = make_pool(site)

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "https://acme.com", max_pages=10)

    assert len(result.visited) == 3
    assert len(page.requested) == 3


@pytest.mark.asyncio
async def test_self_link_visits_single_page(make_pool, no_cookie_banner):
    site = {"https://acme.com/": _html('<a href="/">home</a><a href="#top">top</a>')}
    pool, _page = make_pool(site)

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=3)

    assert result.visited == ["https://acme.com/"]


@pytest.mark.asyncio
async def test_max_pages_bounds_the_crawl(make_pool, no_cookie_banner):
    links = "".join(f'<a href="/p{i}">p{i}</a>' for i in range(20))
    site = {"https://acme.com/": _html(links)}
    site.update({f"https://acme.com/p{i}": _html("") for i in range(20)})
    pool, _page = make_pool(site)

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=4)

    assert len(result.visited) == 4


@pytest.mark.asyncio
async def test_unreachable_seed_is_recorded_as_failed(make_pool, no_cookie_banner):
    pool, _page = make_pool({})

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=5)

    assert result.visited == ["https://acme.com/"]
    assert result.failed == ["https://acme.com/"]
    assert result.candidates == []


@pytest.mark.asyncio
async def test_seed_redirect_to_www_keeps_crawling(make_pool, no_cookie_banner):
    site = {
        "https://www.acme.com/": _html('<a href="/deals">deals</a>'),
        "https://www.acme.com/deals": _html(PROMO),
    }
    pool, _page = make_pool(site, redirects={"https://acme.com/": "https://www.acme.com/"})

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=5)

    assert result.visited == ["https://acme.com/", "https://www.acme.com/deals"]
    assert len(result.candidates) == 1


@pytest.mark.asyncio
async def test_page_redirected_off_site_is_not_extracted(make_pool, no_cookie_banner):
    site = {
        "https://acme.com/": _html('<a href="/partner">Partner</a>'),
        "https://othercorp.com/landing": _html(
            '<div class="promo-banner">Other Corp special offer: buy now and save big</div>'
            '<a href="/more">more</a>'
        ),
    }
    pool, page = make_pool(site, redirects={"https://acme.com/partner": "https://othercorp.com/landing"})

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=5)

    assert result.visited == ["https://acme.com/", "https://acme.com/partner"]
    assert result.candidates == []
    assert not any("othercorp.com/more" in url for url in page.requested)


@pytest.mark.asyncio
async def test_seed_redirected_to_foreign_domain_yields_nothing(make_pool, no_cookie_banner):
    site = {"https://parked.example/": _html(PROMO + '<a href="/x">x</a>')}
    pool, _page = make_pool(site, redirects={"https://acme.com/": "https://parked.example/"})

    result = await SiteCrawler(pool, SETTINGS).crawl("Acme", "acme.com", max_pages=5)

    assert result.visited == ["https://acme.com/"]
    assert result.candidates == []


def test_candidate_length_limit_comes_from_settings(make_pool):
    pool, _page = make_pool({})

    crawler = SiteCrawler(pool, CrawlerSettings(max_candidate_length=240))

    assert crawler.rules.max_element_text == 240
