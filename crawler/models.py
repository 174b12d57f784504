"""크롤러 산출물 타입 -- 플랫폼/광고유형 상수 + 저장 전 광고 후보."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

# 추적 대상 4개 네트워크 + 사이트 크롤러용 "other"
PLATFORM_FACEBOOK = "facebook"
PLATFORM_GOOGLE = "google"
PLATFORM_INSTAGRAM = "instagram"
PLATFORM_LINKEDIN = "linkedin"
PLATFORM_OTHER = "other"

TRACKED_PLATFORMS = (PLATFORM_FACEBOOK, PLATFORM_GOOGLE, PLATFORM_INSTAGRAM, PLATFORM_LINKEDIN)
ALL_PLATFORMS = TRACKED_PLATFORMS + (PLATFORM_OTHER,)

AD_KINDS = ("image", "video", "text", "carousel", "other")


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def normalize_content(text: str | None) -> str:
    """공백 정규화 -- 동일 광고 판별 키의 전제."""
    if not text:
        return ""
    return " ".join(text.split())


@dataclass
class RawAdCandidate:
    """스크래퍼/크롤러가 뽑아낸 미저장 광고 후보."""

    kind: str
    content: str
    media_url: str | None = None
    landing_page_url: str | None = None
    observed_at: datetime = field(default_factory=utcnow)
    is_active: bool = True

    def __post_init__(self):
        self.content = normalize_content(self.content)
        if self.kind not in AD_KINDS:
            self.kind = "other"
        self.media_url = self.media_url or None
        self.landing_page_url = self.landing_page_url or None
