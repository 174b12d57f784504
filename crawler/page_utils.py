"""페이지 조작 헬퍼 -- 예외를 올리지 않는 네비게이션/셀렉터/evaluate 래퍼."""

from __future__ import annotations

from typing import Any, TypeVar

from loguru import logger
from playwright.async_api import Page

from crawler.config import crawler_settings

T = TypeVar("T")

COOKIE_BANNER_SELECTORS = [
    'button[id*="cookie"][id*="accept"]',
    'button[class*="cookie"][class*="accept"]',
    'button[id*="consent"][id*="accept"]',
    'button[class*="consent"][class*="accept"]',
    'button[data-testid="cookie-policy-manage-dialog-accept-button"]',
    'button[action-type="ACCEPT"]',
    '#onetrust-accept-btn-handler',
    'button:has-text("Accept All")',
    'button:has-text("Allow all cookies")',
    'button:has-text("I Accept")',
    'button:has-text("Accept")',
    'button:has-text("OK")',
]


async def goto(page: Page, url: str, timeout_ms: int | None = None) -> bool:
    """DOMContentLoaded 기준 이동. 실패 시 False."""
    timeout = timeout_ms or crawler_settings.navigation_timeout_ms
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        return True
    except Exception as e:
        logger.warning("[page] navigation failed {}: {}", url, str(e)[:120])
        return False


async def safe_evaluate(page: Page, script: str, default: T, arg: Any = None) -> T:
    """page.evaluate 실패 시 default 반환."""
    try:
        if arg is None:
            result = await page.evaluate(script)
        else:
            result = await page.evaluate(script, arg)
        return default if result is None else result
    except Exception as e:
        logger.debug("[page] evaluate failed: {}", str(e)[:120])
        return default


async def wait_for_selector_safe(page: Page, selector: str, timeout_ms: int | None = None) -> bool:
    try:
        await page.wait_for_selector(
            selector, timeout=timeout_ms or crawler_settings.selector_timeout_ms,
        )
        return True
    except Exception:
        return False


async def wait_ms(page: Page, ms: int):
    try:
        await page.wait_for_timeout(ms)
    except Exception:
        pass


async def dismiss_cookie_banner(page: Page, selectors: list[str] | None = None) -> str | None:
    """쿠키 동의 버튼 클릭 -- 첫 매칭 셀렉터만, 실패는 무시.

    Returns:
        클릭한 셀렉터 또는 None
    """
    timeout = crawler_settings.cookie_banner_timeout_ms
    for selector in selectors or COOKIE_BANNER_SELECTORS:
        try:
            loc = page.locator(selector).first
            if await loc.count() == 0 or not await loc.is_visible():
                continue
            await loc.click(timeout=timeout)
            logger.debug("[page] cookie banner dismissed via {}", selector)
            return selector
        except Exception:
            continue
    return None


async def scroll_page(page: Page, times: int, pause_ms: int | None = None):
    """lazy-load 유도용 고정 횟수 스크롤."""
    pause = pause_ms if pause_ms is not None else crawler_settings.platform_scroll_pause_ms
    for _ in range(times):
        await safe_evaluate(page, "window.scrollBy(0, document.body.scrollHeight)", None)
        await wait_ms(page, pause)


async def page_html(page: Page) -> str:
    """렌더링된 HTML. 실패 시 빈 문자열."""
    try:
        return await page.content()
    except Exception as e:
        logger.debug("[page] content() failed: {}", str(e)[:120])
        return ""


async def page_text(page: Page) -> str:
    return await safe_evaluate(page, "() => document.body ? document.body.innerText : ''", "")
