"""AdWatch headless worker -- scrape queue + periodic enqueue without the API.

Usage:
    python scripts/run_worker.py

API 프로세스(api.main)도 같은 큐 워커를 띄운다. 둘을 동시에 돌리지 말 것
(큐 장부는 프로세스 메모리 기준이라 워커가 둘이면 같은 작업을 중복 실행할 수 있다).

Ctrl+C or SIGTERM for graceful shutdown.
"""

import asyncio
import os
import signal
import sys
from pathlib import Path

_root = str(Path(__file__).resolve().parent.parent)
sys.path.insert(0, _root)
os.chdir(_root)

from dotenv import load_dotenv  # noqa: E402
load_dotenv(Path(_root) / ".env")

from loguru import logger  # noqa: E402
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level:<7} | {message}")

_logs_dir = Path(_root) / "logs"
_logs_dir.mkdir(exist_ok=True)
logger.add(
    str(_logs_dir / "worker_{time:YYYY-MM-DD}.log"),
    rotation="1 day",
    retention="7 days",
    level="DEBUG",
    encoding="utf-8",
)

from crawler.browser_pool import BrowserPool  # noqa: E402
from processor.ad_analyzer import close_analyzer  # noqa: E402
from database import engine, init_db  # noqa: E402
from processor.ad_store import AdStore  # noqa: E402
from processor.pipeline import ScrapePipeline  # noqa: E402
from scheduler.job_queue import JobQueue  # noqa: E402
from scheduler.job_store import JobStore  # noqa: E402
from scheduler.scheduler import ScrapeScheduler  # noqa: E402

_shutdown_event: asyncio.Event | None = None


def _handle_signal(sig, _frame):
    """Graceful shutdown on SIGINT / SIGTERM."""
    logger.info("Received {}, shutting down...", signal.Signals(sig).name)
    if _shutdown_event is not None:
        _shutdown_event.set()


async def main():
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    await init_db()
    logger.info("DB initialized")

    store = AdStore()
    pool = BrowserPool()
    await pool.start()
    pipeline = ScrapePipeline(pool, store=store)
    queue = JobQueue(pipeline.scrape_competitor, store=JobStore())
    await queue.start()

    scheduler = ScrapeScheduler(queue, store)
    scheduler.setup_schedules()
    scheduler.start()

    logger.info("Worker running. Ctrl+C to stop. queue={}", queue.counts())
    await _shutdown_event.wait()

    scheduler.stop()
    await queue.stop()
    await pool.stop()
    await close_analyzer()
    await engine.dispose()
    logger.info("Worker stopped.")


if __name__ == "__main__":
    asyncio.run(main())
