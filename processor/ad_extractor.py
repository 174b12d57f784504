"""렌더링된 HTML에서 광고 후보 추출 (사이트 크롤러 + 플랫폼 스크래퍼 공용).

HTML은 한 번만 파싱한다 (live page 재조회로 인한 stale handle 방지).

탐지 순서:
  (a) class/id 마커 요소 -- 텍스트 10자 이상 + 광고 키워드 1개 이상
  (b) 광고성 iframe -- src 기준
  (c) 본문 문단 -- 서로 다른 광고 키워드 2개 이상 동시출현
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from crawler.models import RawAdCandidate, normalize_content
from processor.ad_rules import (
    DEFAULT_RULES,
    AdRuleSet,
    attr_has_marker,
    is_ad_element_text,
    is_ad_iframe_src,
    is_ad_paragraph,
    is_avatar_image,
)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


# ── maybe-추출 헬퍼: 값 또는 None ──

def first_text(node: Tag, selectors: list[str]) -> str | None:
    """셀렉터 목록을 순서대로 시도, 첫 번째 비어있지 않은 텍스트."""
    for sel in selectors:
        found = node.select_one(sel)
        if found is None:
            continue
        text = normalize_content(found.get_text(" ", strip=True))
        if text:
            return text
    return None


def first_attr(node: Tag, selectors: list[str], attr: str) -> str | None:
    for sel in selectors:
        found = node.select_one(sel)
        if found is None:
            continue
        value = found.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_url(href: str | None, base_url: str | None) -> str | None:
    if not href:
        return None
    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "tel:", "data:", "#")):
        return None
    if not base_url:
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        return None


def content_images(node: Tag, rules: AdRuleSet = DEFAULT_RULES) -> list[Tag]:
    """아바타/로고가 아닌 이미지."""
    return [img for img in node.find_all("img") if not is_avatar_image(img.attrs, rules)]


def infer_media_kind(node: Tag, rules: AdRuleSet = DEFAULT_RULES) -> str:
    """<video> → video, 비아바타 <img> → image, 그 외 text."""
    if node.find("video") is not None:
        return "video"
    if content_images(node, rules):
        return "image"
    return "text"


def media_url_for(node: Tag, kind: str, base_url: str | None, rules: AdRuleSet = DEFAULT_RULES) -> str | None:
    if kind == "video":
        video = node.find("video")
        src = video.get("src")
        if not src:
            source = video.find("source")
            src = source.get("src") if source is not None else None
        return resolve_url(src, base_url)
    if kind == "image":
        imgs = content_images(node, rules)
        if imgs:
            return resolve_url(imgs[0].get("src") or imgs[0].get("data-src"), base_url)
    return None


def landing_url_for(node: Tag, base_url: str | None) -> str | None:
    link = node if node.name == "a" and node.get("href") else node.find("a", href=True)
    if link is None:
        return None
    return resolve_url(link.get("href"), base_url)


# ── (a) 셀렉터 기반 ──

def _is_marked(el: Tag, rules: AdRuleSet) -> bool:
    return attr_has_marker(el.get("class"), rules.selector_markers) or attr_has_marker(
        el.get("id"), rules.selector_markers
    )


def extract_marked_elements(
    soup: BeautifulSoup, page_url: str | None, rules: AdRuleSet = DEFAULT_RULES,
) -> list[RawAdCandidate]:
    candidates: list[RawAdCandidate] = []
    captured: set[int] = set()

    for el in soup.find_all(True):
        if el.name in rules.avoid_tags or not _is_marked(el, rules):
            continue
        # 이미 잡힌 요소의 하위는 건너뜀 (바깥 요소 우선)
        if any(id(parent) in captured for parent in el.parents):
            continue
        text = normalize_content(el.get_text(" ", strip=True))
        if not is_ad_element_text(text, rules):
            continue

        kind = infer_media_kind(el, rules)
        candidates.append(RawAdCandidate(
            kind=kind,
            content=text,
            media_url=media_url_for(el, kind, page_url, rules),
            landing_page_url=landing_url_for(el, page_url),
        ))
        captured.add(id(el))
    return candidates


# ── (b) iframe ──

def extract_ad_iframes(
    soup: BeautifulSoup, page_url: str | None, competitor_name: str, rules: AdRuleSet = DEFAULT_RULES,
) -> list[RawAdCandidate]:
    candidates: list[RawAdCandidate] = []
    for frame in soup.find_all("iframe"):
        src = frame.get("src") or ""
        if not is_ad_iframe_src(src, rules):
            continue
        resolved = resolve_url(src, page_url) or src
        candidates.append(RawAdCandidate(
            kind="text",
            content=f"Iframe ad from {competitor_name} - Source: {resolved}",
            landing_page_url=resolved,
        ))
    return candidates


# ── (c) 본문 텍스트 ──

BLOCK_TAGS = [
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt", "figcaption",
    "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li",
    "main", "nav", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
]


def body_paragraphs(soup: BeautifulSoup, rules: AdRuleSet = DEFAULT_RULES) -> list[str]:
    """innerText 근사 -- 블록 경계/<br>에서 줄바꿈, 인라인은 이어붙임. soup을 변형한다."""
    body = soup.body or soup
    for tag in body.find_all(list(rules.avoid_tags)):
        tag.decompose()
    for br in body.find_all("br"):
        br.replace_with("\n")
    for block in body.find_all(BLOCK_TAGS):
        block.insert_before("\n")
        block.insert_after("\n")
    lines = body.get_text().split("\n")
    return [normalize_content(line) for line in lines if len(line.strip()) >= rules.min_paragraph_text]


def extract_text_paragraphs(
    soup: BeautifulSoup, page_url: str | None, rules: AdRuleSet = DEFAULT_RULES,
) -> list[RawAdCandidate]:
    return [
        RawAdCandidate(kind="text", content=p, landing_page_url=page_url)
        for p in body_paragraphs(soup, rules)
        if is_ad_paragraph(p, rules)
    ]


# ── 통합 ──

def dedupe_by_content(candidates: list[RawAdCandidate]) -> list[RawAdCandidate]:
    seen: set[str] = set()
    unique: list[RawAdCandidate] = []
    for c in candidates:
        if not c.content or c.content in seen:
            continue
        seen.add(c.content)
        unique.append(c)
    return unique


@dataclass
class PageScan:
    candidates: list[RawAdCandidate] = field(default_factory=list)
    links: list[str] = field(default_factory=list)


def scan_page(
    html: str,
    page_url: str | None,
    competitor_name: str,
    rules: AdRuleSet = DEFAULT_RULES,
) -> PageScan:
    """HTML을 한 번 파싱해서 광고 후보 + 링크(href 원문)를 함께 뽑는다."""
    soup = parse_html(html)
    links = extract_links(soup)
    found: list[RawAdCandidate] = []
    found.extend(extract_marked_elements(soup, page_url, rules))
    found.extend(extract_ad_iframes(soup, page_url, competitor_name, rules))
    # 문단 스캔은 script/style을 제거하므로 마지막에
    found.extend(extract_text_paragraphs(soup, page_url, rules))
    return PageScan(candidates=dedupe_by_content(found), links=links)


def extract_candidates(
    html: str,
    page_url: str | None,
    competitor_name: str,
    rules: AdRuleSet = DEFAULT_RULES,
) -> list[RawAdCandidate]:
    """페이지 HTML 하나에서 광고 후보 전체 추출."""
    return scan_page(html, page_url, competitor_name, rules).candidates


def extract_links(html: str | BeautifulSoup) -> list[str]:
    """<a href> 목록 (원문 그대로, 해석 전)."""
    soup = html if isinstance(html, BeautifulSoup) else parse_html(html)
    return [a.get("href") for a in soup.find_all("a", href=True) if a.get("href")]
