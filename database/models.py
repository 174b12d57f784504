"""AdWatch DB 모델 -- 경쟁사 / 광고 / 알림 / 수집 작업. (SQLite/PostgreSQL 호환)"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────
# 1. 경쟁사
# ─────────────────────────────────────────────
class Competitor(Base):
    __tablename__ = "competitors"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    website = Column(String(500))
    industry = Column(String(100))
    description = Column(Text)
    track_facebook = Column(Boolean, default=True, nullable=False)
    track_google = Column(Boolean, default=True, nullable=False)
    track_instagram = Column(Boolean, default=True, nullable=False)
    track_linkedin = Column(Boolean, default=False, nullable=False)
    last_scraped = Column(DateTime)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    ads = relationship("Ad", back_populates="competitor", cascade="all, delete-orphan")
    alerts = relationship("Alert", back_populates="competitor", cascade="all, delete-orphan")

    def tracked_platforms(self) -> list[str]:
        flags = (
            ("facebook", self.track_facebook),
            ("google", self.track_google),
            ("instagram", self.track_instagram),
            ("linkedin", self.track_linkedin),
        )
        return [platform for platform, enabled in flags if enabled]


# ─────────────────────────────────────────────
# 2. 수집 광고
# ─────────────────────────────────────────────
class Ad(Base):
    __tablename__ = "ads"

    id = Column(Integer, primary_key=True)
    competitor_id = Column(Integer, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(20), nullable=False)  # facebook/google/instagram/linkedin/other
    type = Column(String(20), nullable=False, default="text")  # image/video/text/carousel/other
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False)  # sha256(content)
    media_url = Column(Text)
    landing_page = Column(Text)
    first_seen = Column(DateTime, default=_utcnow)
    last_seen = Column(DateTime, default=_utcnow)
    is_active = Column(Boolean, default=True, nullable=False)
    analysis = Column(JSON)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    competitor = relationship("Competitor", back_populates="ads")

    __table_args__ = (
        UniqueConstraint("competitor_id", "content_hash", name="uq_ads_competitor_content"),
        Index("ix_ads_competitor_active", "competitor_id", "is_active"),
        Index("ix_ads_platform", "platform"),
    )


# ─────────────────────────────────────────────
# 3. 변경 알림
# ─────────────────────────────────────────────
class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True)
    competitor_id = Column(Integer, ForeignKey("competitors.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(30), nullable=False)  # new_campaign/ad_change
    title = Column(String(300), nullable=False)
    description = Column(Text)
    is_read = Column(Boolean, default=False, nullable=False)
    is_important = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    competitor = relationship("Competitor", back_populates="alerts")

    __table_args__ = (
        Index("ix_alerts_competitor_created", "competitor_id", "created_at"),
    )


# ─────────────────────────────────────────────
# 4. 수집 작업 큐
# ─────────────────────────────────────────────
class ScrapeJob(Base):
    __tablename__ = "scrape_jobs"

    id = Column(String(36), primary_key=True)
    competitor_id = Column(Integer, nullable=False)
    state = Column(String(20), nullable=False, default="waiting")  # waiting/active/retrying/completed/dead
    attempts = Column(Integer, default=0, nullable=False)
    stall_count = Column(Integer, default=0, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    next_attempt_at = Column(DateTime)
    heartbeat_at = Column(DateTime)
    last_error = Column(Text)
    result = Column(JSON)

    __table_args__ = (
        Index("ix_scrape_jobs_competitor_state", "competitor_id", "state"),
        Index("ix_scrape_jobs_state_created", "state", "created_at"),
    )
