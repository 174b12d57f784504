"""Pydantic 스키마 -- API 요청/응답 직렬화."""

from datetime import datetime

from pydantic import BaseModel, Field


# ── Scrape ──
class ScrapeEnqueueOut(BaseModel):
    job_id: str
    status: str = Field(description="queued | already_queued")
    state: str


class ScrapeStatusOut(BaseModel):
    status: str = Field(description="in_progress | completed | failed | idle")
    state: str | None = None
    progress: int | None = None
    attempts: int | None = None
    error: str | None = None
    last_scraped: datetime | None = None


class CrawlRequest(BaseModel):
    max_pages: int = Field(default=10, ge=1, le=50)


class CrawlOut(BaseModel):
    ads_found: int
    added: int
    updated: int
    errors: int
    pages_visited: int


class CronOut(BaseModel):
    enqueued: int
    skipped: int
