"""
Overdue sweep entry point for external schedulers (cron, k8s CronJob).

Marks PENDING installments due before today (UTC) as OVERDUE for every
organization. Idempotent; exit code 0 on success, 1 on a database failure.

Cache invalidation only reaches the API when both processes share Redis
(CACHE_BACKEND=redis). With the default memory backend a warning is logged
and the API caches expire on their own TTL.

Usage:
    python scripts/run_overdue_sweep.py
"""

import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings read the environment at import
load_dotenv("backend/.env")

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.config import settings
from backend.app.core.observability import configure_logging
from backend.app.db.session import AsyncSessionLocal, engine
from backend.app.domain.accounts.overdue_sweeper import sweep_overdue, warn_if_cache_is_process_local
from backend.app.services.cache import get_cache_service

logger = logging.getLogger("ledger.sweep")


async def run() -> int:
    warn_if_cache_is_process_local(settings.cache_backend)
    try:
        async with AsyncSessionLocal() as db:
            result = await sweep_overdue(db, cache=get_cache_service())
    except SQLAlchemyError:
        logger.exception("Overdue sweep failed")
        return 1
    finally:
        await engine.dispose()

    logger.info(
        "Overdue sweep done: %s matched (payables=%s, receivables=%s)",
        result["matched_count"], result["payables"], result["receivables"]
    )
    return 0


if __name__ == "__main__":
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run()))
