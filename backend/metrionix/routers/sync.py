"""Per-platform sync endpoint.

WHAT:
    POST /sync/{platform} runs one SyncJob for (agency, platform, account)
    and reports `{success, insights_synced?, error?, error_type?, timestamp}`.

WHY:
    Routers handle auth + request parsing only; the job is shared with the
    ARQ worker. Failures answer 500 with the same body shape so the dashboard
    can render `error_type` without parsing a second schema.

REFERENCES:
    - metrionix/services/sync_service.py
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..deps import Principal, get_current_principal, get_settings, require_agency
from ..errors import MetrionixError
from ..models import PlatformEnum, utcnow
from ..schemas import SyncRequest, SyncResponse
from ..services.sync_service import run_sync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/{platform}", response_model=SyncResponse, responses={500: {"model": SyncResponse}})
async def sync_platform(
    platform: PlatformEnum,
    request: SyncRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Sync a date range of metrics (trailing 30 days when omitted)."""
    require_agency(principal, request.agency_id)
    logger.info(
        "[SYNC] HTTP sync requested: platform=%s agency=%s account=%s",
        platform.value, request.agency_id, request.account_id,
    )
    try:
        result = await run_sync(
            db,
            settings,
            platform,
            request.agency_id,
            request.account_id,
            start_date=request.start_date,
            end_date=request.end_date,
        )
    except MetrionixError as exc:
        body = SyncResponse(
            success=False,
            error=exc.message,
            error_type=exc.error_type,
            timestamp=utcnow(),
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json", exclude_none=True))

    return SyncResponse(success=True, insights_synced=result.rows_synced, timestamp=result.completed_at)
