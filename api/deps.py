"""FastAPI dependencies -- app.state에 올라간 수집 서비스 접근 + cron 인증."""

import hmac
import os

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from processor.ad_store import AdStore
from processor.pipeline import ScrapePipeline
from scheduler.config import queue_settings
from scheduler.job_queue import JobQueue

load_dotenv()

_bearer = HTTPBearer(auto_error=False)


def get_queue(request: Request) -> JobQueue:
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scrape queue not running")
    return queue


def get_pipeline(request: Request) -> ScrapePipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scrape pipeline not running")
    return pipeline


def get_store(request: Request) -> AdStore:
    store = getattr(request.app.state, "store", None)
    return store if store is not None else AdStore()


def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Authorization: Bearer <QUEUE_CRON_SECRET>. 시크릿 미설정이면 cron 엔드포인트 비활성."""
    secret = queue_settings.cron_secret or os.getenv("CRON_SECRET", "")
    if not secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron secret not configured")
    if credentials is None or not hmac.compare_digest(credentials.credentials, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
