"""공용 테스트 fake -- 브라우저 없이 크롤러/파이프라인 검증."""

import sys
from contextlib import asynccontextmanager
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest


class FakePage:
    """url → HTML 맵을 서빙하는 Playwright Page 대역."""

    def __init__(self, site: dict[str, str], redirects: dict[str, str] | None = None):
        self.site = site
        self.redirects = redirects or {}
        self.url = "about:blank"
        self.requested: list[str] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.requested.append(url)
        target = self.redirects.get(url, url)
        if target not in self.site:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = target
        return None

    async def content(self):
        return self.site.get(self.url, "")

    async def wait_for_timeout(self, ms):
        return None

    async def evaluate(self, script, arg=None):
        return None


class FakePool:
    def __init__(self, page: FakePage):
        self.page = page
        self.sessions = 0

    @asynccontextmanager
    async def session(self):
        self.sessions += 1
        yield self.page


@pytest.fixture
def no_cookie_banner(monkeypatch):
    from crawler import page_utils

    async def _none(page, selectors=None):
        return None

    monkeypatch.setattr(page_utils, "dismiss_cookie_banner", _none)


@pytest.fixture
def make_pool():
    """(site, redirects) → (FakePool, FakePage)."""

    def _make(site: dict[str, str], redirects: dict[str, str] | None = None):
        page = FakePage(site, redirects)
        return FakePool(page), page

    return _make
