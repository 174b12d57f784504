"""수집 결과 ↔ 저장된 광고 대조 (diff & persist).

한 사이클의 플랫폼별 후보 묶음을 받아:
  - 처음 보는 내용 → 분석 후 저장 + new_campaign 이벤트
  - 이미 있는 내용 → last_seen 갱신, 활성 상태가 다르면 뒤집기 (updated)
  - 이전에 활성이던 광고가 이번 사이클 전체에서 안 보이면 → 비활성 + ad_change 이벤트

광고 동일성 키는 ad_key() 하나에만 정의한다.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Mapping, Protocol

from loguru import logger

from crawler.models import RawAdCandidate, normalize_content, utcnow
from processor.ad_analyzer import ANALYSIS_FAILED

INSERT_CHUNK_SIZE = 50
ANALYSIS_CONCURRENCY = 5
DESCRIPTION_LIMIT = 100

EVENT_NEW_CAMPAIGN = "new_campaign"
EVENT_AD_CHANGE = "ad_change"

Analyze = Callable[[str, str], Awaitable[dict]]
RecordFinding = Callable[["ChangeEvent"], Awaitable[None]]


def ad_key(content: str) -> str:
    """광고 동일성 키 -- (경쟁사 단위) 정규화된 본문의 sha256.

    플랫폼은 키에 포함하지 않는다: 같은 문구가 여러 플랫폼에 나오면 한 건으로 본다.
    """
    return hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()


def truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


@dataclass
class StoredAd:
    """저장소에서 읽어온 광고의 대조용 뷰."""

    id: int
    platform: str
    content: str
    is_active: bool
    content_hash: str | None = None

    @property
    def key(self) -> str:
        return self.content_hash or ad_key(self.content)


@dataclass
class NewAd:
    competitor_id: int
    platform: str
    kind: str
    content: str
    content_hash: str
    media_url: str | None
    landing_page: str | None
    first_seen: datetime
    last_seen: datetime
    is_active: bool
    analysis: dict


@dataclass
class AdUpdate:
    ad_id: int
    is_active: bool
    last_seen: datetime


@dataclass
class ChangeEvent:
    competitor_id: int
    kind: str  # new_campaign / ad_change
    title: str
    description: str
    platform: str | None = None


@dataclass
class ReconcileResult:
    added: int = 0
    updated: int = 0
    errors: int = 0
    removed: int = 0
    events: list[ChangeEvent] = field(default_factory=list)

    def summary(self) -> dict:
        return {"added": self.added, "updated": self.updated, "errors": self.errors, "removed": self.removed}


class AdStoreProtocol(Protocol):
    async def list_ads(self, competitor_id: int) -> list[StoredAd]: ...

    async def insert_ads(self, rows: list[NewAd]) -> int: ...

    async def update_ads(self, updates: list[AdUpdate]) -> int: ...

    async def mark_inactive(self, ad_ids: list[int], at: datetime) -> int: ...


def new_campaign_event(competitor_id: int, platform: str, candidate: RawAdCandidate) -> ChangeEvent:
    return ChangeEvent(
        competitor_id=competitor_id,
        kind=EVENT_NEW_CAMPAIGN,
        title=f"New {candidate.kind} ad on {platform}",
        description=truncate(candidate.content),
        platform=platform,
    )


def removed_event(competitor_id: int, ad: StoredAd) -> ChangeEvent:
    return ChangeEvent(
        competitor_id=competitor_id,
        kind=EVENT_AD_CHANGE,
        title=f"Ad removed from {ad.platform}",
        description=truncate(ad.content),
        platform=ad.platform,
    )


def chunked(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


async def _analyze_safely(
    analyze: Analyze, candidate: RawAdCandidate, limit: asyncio.Semaphore,
) -> tuple[dict, bool]:
    """(분석 결과, 실패 여부). 분석 실패는 저장을 막지 않는다."""
    try:
        async with limit:
            analysis = await analyze(candidate.content, candidate.kind)
    except Exception as exc:
        logger.warning("[reconcile] analysis failed for {!r}: {}", candidate.content[:40], exc)
        return dict(ANALYSIS_FAILED), True
    if not isinstance(analysis, dict):
        return {"raw_analysis": str(analysis)}, False
    # 분석기가 스스로 삼킨 실패도 오류로 센다
    return analysis, analysis == ANALYSIS_FAILED


async def reconcile(
    competitor_id: int,
    buckets: Mapping[str, list[RawAdCandidate]],
    *,
    store: AdStoreProtocol,
    analyze: Analyze,
    record_finding: RecordFinding,
    inactivation_scope: Iterable[str] | None = None,
    now: datetime | None = None,
) -> ReconcileResult:
    """한 사이클의 후보를 저장 상태와 대조.

    Args:
        buckets: 플랫폼 → 후보 목록. 같은 내용이 여러 번 나오면 먼저 나온 것만 처리.
        inactivation_scope: 비활성 판정 대상 플랫폼. None이면 전체.
            일부 플랫폼만 수집한 사이클(사이트 크롤 단독, 플랫폼 실패)에서
            다른 플랫폼 광고를 잘못 내리지 않도록 호출자가 좁힌다.

    저장 오류는 그대로 올린다 (작업 큐가 재시도). 분석 오류는 삼킨다.
    """
    now = now or utcnow()
    result = ReconcileResult()

    existing = await store.list_ads(competitor_id)
    index: dict[str, StoredAd] = {ad.key: ad for ad in existing}

    seen_keys: set[str] = set()
    updates: list[AdUpdate] = []
    fresh: list[tuple[str, str, RawAdCandidate]] = []

    for platform, candidates in buckets.items():
        for candidate in candidates:
            if not candidate.content:
                continue
            key = ad_key(candidate.content)
            if key in seen_keys:
                continue
            seen_keys.add(key)

            stored = index.get(key)
            if stored is None:
                fresh.append((platform, key, candidate))
                continue
            if stored.is_active != candidate.is_active:
                result.updated += 1
            # 상태가 같아도 last_seen은 갱신
            updates.append(AdUpdate(ad_id=stored.id, is_active=candidate.is_active, last_seen=now))

    # ── 신규 광고 분석 ──
    limit = asyncio.Semaphore(ANALYSIS_CONCURRENCY)
    analyses = await asyncio.gather(*(_analyze_safely(analyze, c, limit) for _, _, c in fresh))
    rows: list[NewAd] = []
    new_events: list[ChangeEvent] = []
    for (platform, key, candidate), (analysis, failed) in zip(fresh, analyses):
        if failed:
            result.errors += 1
        rows.append(NewAd(
            competitor_id=competitor_id,
            platform=platform,
            kind=candidate.kind,
            content=candidate.content,
            content_hash=key,
            media_url=candidate.media_url,
            landing_page=candidate.landing_page_url,
            first_seen=min(candidate.observed_at, now),
            last_seen=now,
            is_active=candidate.is_active,
            analysis=analysis,
        ))
        new_events.append(new_campaign_event(competitor_id, platform, candidate))

    # ── 저장: 삽입 청크 / 갱신 / 알림은 서로 독립 ──
    writes: list[Awaitable] = [store.insert_ads(chunk) for chunk in chunked(rows, INSERT_CHUNK_SIZE)]
    if updates:
        writes.append(store.update_ads(updates))
    writes.extend(record_finding(event) for event in new_events)
    await asyncio.gather(*writes)
    result.added = len(rows)
    result.events.extend(new_events)

    # ── 비활성 판정: 삽입/갱신 결정이 모두 끝난 뒤 ──
    scope = set(inactivation_scope) if inactivation_scope is not None else None
    gone = [
        ad for ad in existing
        if ad.is_active
        and ad.key not in seen_keys
        and (scope is None or ad.platform in scope)
    ]
    if gone:
        await store.mark_inactive([ad.id for ad in gone], now)
        removed_events = [removed_event(competitor_id, ad) for ad in gone]
        await asyncio.gather(*(record_finding(event) for event in removed_events))
        result.removed = len(gone)
        result.events.extend(removed_events)

    logger.info(
        "[reconcile] competitor {}: added={} updated={} removed={} errors={}",
        competitor_id, result.added, result.updated, result.removed, result.errors,
    )
    return result
