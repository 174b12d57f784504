"""광고 투명성 페이지 카드 파서 -- 렌더링된 HTML을 한 번 파싱해서 카드 단위로 추출.

플랫폼별 차이는 CardSpec(셀렉터 목록)으로만 표현한다.
각 필드는 셀렉터를 순서대로 시도하고 첫 번째 비어있지 않은 값을 쓴다.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import parse_qs, urlparse

from bs4 import Tag
from dateutil import parser as date_parser
from loguru import logger

from crawler.models import RawAdCandidate, utcnow
from processor.ad_extractor import (
    first_attr,
    first_text,
    infer_media_kind,
    landing_url_for,
    media_url_for,
    parse_html,
    resolve_url,
)
from processor.ad_rules import DEFAULT_RULES


@dataclass(frozen=True)
class CardSpec:
    """플랫폼 하나의 카드 구조."""

    card_selectors: tuple[str, ...]
    content_selectors: tuple[str, ...]
    landing_selectors: tuple[str, ...] = ()
    date_selectors: tuple[str, ...] = ()
    max_content_length: int = DEFAULT_RULES.max_element_text


# "Started running on Mar 3, 2024" / "First shown: 3 Mar 2024" 류
_DATE_PATTERNS = (
    re.compile(r"started running on\s+(.+?)(?:\s*[·|•]|$)", re.I),
    re.compile(r"first shown:?\s+(.+?)(?:\s*[·|•]|$)", re.I),
    re.compile(r"(?:shown|ran) from\s+(.+?)(?:\s+(?:to|-)\s+|$)", re.I),
)

# 광고 클릭 추적 리다이렉트 → 실제 랜딩 파라미터
_REDIRECT_PARAMS = {
    "l.facebook.com": "u",
    "lm.facebook.com": "u",
    "duckduckgo.com": "uddg",
    "www.google.com": "adurl",
    "www.googleadservices.com": "adurl",
}


def parse_first_seen(text: str | None, now: datetime | None = None, require_marker: bool = False) -> datetime:
    """자유 텍스트에서 최초 노출일 추출. 실패 시 now.

    require_marker=True면 "Started running on" 같은 문구가 있을 때만 파싱한다
    (카드 전체 텍스트에서 임의의 숫자를 날짜로 오인하지 않도록).
    """
    fallback = now or utcnow()
    if not text:
        return fallback

    raw = " ".join(text.split())
    for pattern in _DATE_PATTERNS:
        match = pattern.search(raw)
        if match:
            raw = match.group(1)
            break
    else:
        if require_marker:
            return fallback

    try:
        parsed = date_parser.parse(raw, fuzzy=True, default=fallback.replace(hour=0, minute=0, second=0, microsecond=0))
    except (ValueError, OverflowError) as e:
        logger.debug("[card-parser] unparseable date {!r}: {}", raw[:60], e)
        return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    # 미래 날짜는 파싱 오류로 간주
    if parsed > fallback:
        return fallback
    return parsed


def unwrap_redirect(url: str | None) -> str | None:
    """추적 리다이렉트 URL이면 목적지 URL로 풀어준다."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    host = (parsed.hostname or "").lower()
    param = _REDIRECT_PARAMS.get(host)
    if param is None:
        return url
    values = parse_qs(parsed.query).get(param)
    return values[0] if values else url


def find_cards(node: Tag, selectors: tuple[str, ...]) -> list[Tag]:
    """카드 셀렉터 중 결과가 있는 첫 번째 것."""
    for sel in selectors:
        cards = node.select(sel)
        if cards:
            return cards
    return []


def parse_card(card: Tag, spec: CardSpec, base_url: str | None, now: datetime | None = None) -> RawAdCandidate | None:
    content = first_text(card, list(spec.content_selectors))
    if not content or len(content) > spec.max_content_length:
        return None

    kind = infer_media_kind(card)

    landing = None
    if spec.landing_selectors:
        landing = resolve_url(first_attr(card, list(spec.landing_selectors), "href"), base_url)
    landing = unwrap_redirect(landing or landing_url_for(card, base_url))

    date_text = first_text(card, list(spec.date_selectors)) if spec.date_selectors else None
    if date_text:
        first_seen = parse_first_seen(date_text, now)
    else:
        first_seen = parse_first_seen(card.get_text(" ", strip=True), now, require_marker=True)

    return RawAdCandidate(
        kind=kind,
        content=content,
        media_url=media_url_for(card, kind, base_url),
        landing_page_url=landing,
        observed_at=first_seen,
    )


def parse_cards(
    html: str, spec: CardSpec, base_url: str | None = None, limit: int | None = None,
) -> list[RawAdCandidate]:
    """HTML → 카드별 후보. 내용 중복은 첫 번째만."""
    soup = parse_html(html)
    now = utcnow()
    results: list[RawAdCandidate] = []
    seen: set[str] = set()
    for card in find_cards(soup, spec.card_selectors):
        candidate = parse_card(card, spec, base_url, now)
        if candidate is None or candidate.content in seen:
            continue
        seen.add(candidate.content)
        results.append(candidate)
        if limit and len(results) >= limit:
            break
    return results
