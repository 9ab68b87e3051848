"""ARQ async worker for webhook-triggered re-syncs.

WHAT:
    Runs `process_sync_job`, which delegates to the same SyncJob the
    `POST /sync/{platform}` endpoint uses.

WHY:
    Webhook receivers request a re-sync fire-and-forget; the worker picks it
    up outside the webhook request.

USAGE:
    arq metrionix.workers.arq_worker.WorkerSettings

REFERENCES:
    - https://arq-docs.helpmanual.io/
    - metrionix/services/sync_service.py
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Optional

from ..config import get_settings
from ..database import get_sync_session
from ..errors import MetrionixError
from ..services.sync_service import run_sync
from ..utils.env import load_env_file
from .arq_enqueue import QUEUE_NAME, get_redis_settings

logger = logging.getLogger(__name__)


async def process_sync_job(
    ctx: Dict,
    platform: str,
    agency_id: str,
    account_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict:
    """Sync one integration. Failures are reported in the result, never retried.

    Returns:
        Dict with success, insights_synced or error/error_type.
    """
    logger.info("[ARQ] Starting %s sync job for account %s", platform, account_id)
    with get_sync_session() as db:
        try:
            result = await run_sync(
                db,
                get_settings(),
                platform,
                agency_id,
                account_id,
                start_date=date.fromisoformat(start_date) if start_date else None,
                end_date=date.fromisoformat(end_date) if end_date else None,
            )
        except MetrionixError as exc:
            logger.warning("[ARQ] %s sync job for %s failed: %s", platform, account_id, exc.message)
            return {"success": False, **exc.to_dict()}
    return {"success": True, "insights_synced": result.rows_synced}


async def startup(ctx: Dict) -> None:
    load_env_file()
    logging.basicConfig(level=logging.INFO)
    logger.info("[ARQ] Worker started")


async def shutdown(ctx: Dict) -> None:
    logger.info("[ARQ] Worker shutting down")


class WorkerSettings:
    """ARQ worker configuration.

    retry_jobs is off: a failed sync needs an explicit new request.
    """

    functions = [process_sync_job]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = get_redis_settings()

    max_jobs = 10
    job_timeout = 600
    keep_result = 3600
    retry_jobs = False
    max_tries = 1
    health_check_interval = 30

    queue_name = QUEUE_NAME
