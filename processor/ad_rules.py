"""광고 판별 규칙 세트 -- DOM/브라우저 없이 단위 테스트 가능한 선언형 규칙.

규칙 구성:
1. 광고 키워드 (단어 경계 매칭)
2. class/id 셀렉터 마커 (부분 문자열)
3. iframe src 마커 (URL 토큰)
4. 텍스트 길이/키워드 동시출현 임계값
5. 아바타/로고 이미지 제외 마커
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urlparse


# ──────────────────────────────────────────────
# 1. 광고 키워드
# ──────────────────────────────────────────────

AD_KEYWORDS: tuple[str, ...] = (
    "advertisement",
    "sponsored",
    "promotion",
    "ad",
    "campaign",
    "offer",
    "discount",
    "limited time",
    "special offer",
    "deal",
    "promo",
    "sale",
    "buy now",
    "shop now",
    "learn more",
    "click here",
    "banner",
)

# 플랫폼 스크래퍼에서 "광고 관련 언급" 판정에 쓰는 용어 (검색 fallback)
AD_CONTEXT_TERMS: tuple[str, ...] = (
    "ad",
    "ads",
    "advert",
    "advertising",
    "advertisement",
    "sponsored",
    "campaign",
    "promotion",
    "ad library",
    "ads transparency",
)


def _compile(terms: tuple[str, ...]) -> dict[str, re.Pattern]:
    return {t: re.compile(r"(?<![a-z0-9])" + re.escape(t) + r"(?![a-z0-9])", re.I) for t in terms}


_KEYWORD_PATTERNS = _compile(AD_KEYWORDS)
_CONTEXT_PATTERNS = _compile(AD_CONTEXT_TERMS)


def matched_keywords(text: str | None, patterns: dict[str, re.Pattern] | None = None) -> list[str]:
    """텍스트에 등장한 서로 다른 키워드 목록."""
    if not text:
        return []
    pats = patterns or _KEYWORD_PATTERNS
    return [term for term, pat in pats.items() if pat.search(text)]


def mentions_ad_context(text: str | None) -> bool:
    return bool(matched_keywords(text, _CONTEXT_PATTERNS))


# ──────────────────────────────────────────────
# 2~5. 구조 규칙
# ──────────────────────────────────────────────

# class/id 부분 문자열
SELECTOR_MARKERS: tuple[str, ...] = (
    "ad-", "ads-", "advert", "promo", "banner", "offer", "campaign",
)

# iframe src 토큰
IFRAME_MARKERS: tuple[str, ...] = ("ad", "ads", "banner", "promo", "campaign")
IFRAME_HOST_MARKERS: tuple[str, ...] = (
    "doubleclick.net", "googlesyndication.com", "adservice.google.com",
    "googleads", "adnxs.com", "criteo", "taboola", "outbrain",
)

AVATAR_MARKERS: tuple[str, ...] = ("avatar", "profile-pic", "profile_pic", "headerimage", "logo", "icon")


@dataclass(frozen=True)
class AdRuleSet:
    """탐지 임계값 묶음."""

    min_element_text: int = 10
    max_element_text: int = 1_000
    min_paragraph_text: int = 20
    min_paragraph_keywords: int = 2
    min_element_keywords: int = 1
    selector_markers: tuple[str, ...] = SELECTOR_MARKERS
    iframe_markers: tuple[str, ...] = IFRAME_MARKERS
    iframe_host_markers: tuple[str, ...] = IFRAME_HOST_MARKERS
    avatar_markers: tuple[str, ...] = AVATAR_MARKERS
    avoid_tags: frozenset[str] = field(
        default_factory=lambda: frozenset({"script", "style", "noscript", "template", "head"})
    )


DEFAULT_RULES = AdRuleSet()


def attr_has_marker(value: str | list[str] | None, markers: tuple[str, ...]) -> bool:
    """class(list) 또는 id(str) 속성에 마커 부분 문자열 포함 여부."""
    if not value:
        return False
    if isinstance(value, (list, tuple)):
        value = " ".join(value)
    lowered = value.lower()
    return any(m in lowered for m in markers)


def is_ad_element_text(text: str, rules: AdRuleSet = DEFAULT_RULES) -> bool:
    """(a) 셀렉터 매칭 요소의 텍스트 조건: 길이 범위 + 키워드 1개 이상."""
    if len(text) < rules.min_element_text or len(text) > rules.max_element_text:
        return False
    return len(matched_keywords(text)) >= rules.min_element_keywords


def is_ad_paragraph(text: str, rules: AdRuleSet = DEFAULT_RULES) -> bool:
    """(c) 본문 문단: 길이 20자 이상 + 서로 다른 키워드 2개 이상 동시출현."""
    if len(text) < rules.min_paragraph_text:
        return False
    return len(matched_keywords(text)) >= rules.min_paragraph_keywords


def is_ad_iframe_src(src: str | None, rules: AdRuleSet = DEFAULT_RULES) -> bool:
    """(b) iframe src가 광고성인지 -- 호스트 마커 또는 경로/호스트 토큰."""
    if not src:
        return False
    lowered = src.lower()
    if any(h in lowered for h in rules.iframe_host_markers):
        return True
    parsed = urlparse(lowered)
    tokens = set(re.split(r"[^a-z0-9]+", f"{parsed.netloc} {parsed.path} {parsed.query}"))
    return any(m in tokens for m in rules.iframe_markers)


def is_avatar_image(attrs: dict, rules: AdRuleSet = DEFAULT_RULES) -> bool:
    haystack = " ".join(
        str(v if not isinstance(v, list) else " ".join(v))
        for k, v in attrs.items()
        if k in ("class", "id", "alt", "src")
    ).lower()
    return any(m in haystack for m in rules.avatar_markers)
