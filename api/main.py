"""FastAPI app entrypoint."""

import logging
import os
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.logging_config import setup_logging
from api.routers import events, scrape
from crawler.browser_pool import BrowserPool
from database import init_db
from processor.ad_analyzer import close_analyzer
from processor.ad_store import AdStore
from processor.errors import CompetitorNotFound
from processor.pipeline import ScrapePipeline
from scheduler.job_queue import JobQueue
from scheduler.job_store import JobStore
from scheduler.scheduler import ScrapeScheduler

logger = logging.getLogger("adwatch.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """DB 초기화 → 브라우저 풀 → 작업 큐 → 주기 스케줄. 종료는 역순."""
    setup_logging()
    logger.info("AdWatch API starting up")
    await init_db()

    pool = BrowserPool()
    await pool.start()
    store = AdStore()
    pipeline = ScrapePipeline(pool, store=store)
    queue = JobQueue(pipeline.scrape_competitor, store=JobStore())
    await queue.start()

    scheduler = ScrapeScheduler(queue, store)
    scheduler.setup_schedules()
    scheduler.start()

    app.state.pool = pool
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.queue = queue
    try:
        yield
    finally:
        logger.info("AdWatch API shutting down")
        scheduler.stop()
        await queue.stop()
        await pool.stop()
        await close_analyzer()
        from database import engine
        await engine.dispose()
        logger.info("Database engine disposed")


app = FastAPI(
    title="AdWatch API",
    description="Competitor ad crawling and change tracking",
    version="0.1.0",
    lifespan=lifespan,
)

_cors_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
CORS_ORIGINS = [o.strip() for o in _cors_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CompetitorNotFound)
async def competitor_not_found_handler(request: Request, exc: CompetitorNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None) or {},
        )
    logger.error(
        "Unhandled exception on %s %s: %s (type=%s)",
        request.method,
        request.url.path,
        str(exc),
        type(exc).__name__,
    )
    logger.debug(traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(scrape.router)
app.include_router(events.router)


@app.get("/health")
async def health(request: Request):
    from database import engine

    health_status = {"status": "ok", "service": "adwatch-api", "version": app.version}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["database"] = f"error: {e}"

    queue = getattr(request.app.state, "queue", None)
    if queue is not None:
        health_status["queue"] = queue.counts()
    pool = getattr(request.app.state, "pool", None)
    if pool is not None:
        health_status["browser_contexts"] = pool.open_contexts
    return health_status
