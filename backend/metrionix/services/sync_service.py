"""Generic per-platform sync job.

WHAT:
    Loads an integration's credentials, fetches a date range of metrics
    through the platform adapter, derives ratios, upserts the rows in bounded
    batches and stamps `last_sync`, all in one transaction.

WHY:
    Every platform repeats the same shape. Writing the batching, idempotent
    upsert, in-progress flag and `last_sync` rules once means they are tested
    once.

FAILURE RULES:
    - Nothing is retried automatically.
    - Any failure outside the error taxonomy is reported as ExternalApiError
      and still releases the in-progress flag.
    - `last_sync` only moves on success; a failed sync leaves it untouched.
    - A failed sync keeps the integration `connected` unless the platform
      rejected the credentials (401/403/invalid_grant) -> `error`.
    - An in-flight sync holds `sync_status=syncing`; a second run for the
      same integration fails with SyncAlreadyRunning until the first ends or
      the flag is older than SYNC_LOCK_TTL_SECONDS.

REFERENCES:
    - metrionix/services/adapters/ (platform adapters)
    - metrionix/routers/sync.py (HTTP entry point)
    - metrionix/workers/arq_worker.py (webhook-triggered re-sync)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

import httpx
from sqlalchemy import or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import (
    ExternalApiError,
    IntegrationNotFound,
    InvalidSyncRequest,
    MetrionixError,
    StorageError,
    SyncAlreadyRunning,
)
from ..models import Integration, IntegrationStatusEnum, PlatformEnum, SyncStatusEnum, utcnow
from ..telemetry import capture_exception
from .adapters import AccountCredential, DateRange, PlatformAdapter, build_adapters
from .token_service import ensure_fresh_credentials, load_credentials

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    platform: PlatformEnum
    agency_id: uuid.UUID
    account_id: str
    rows_synced: int
    start_date: date
    end_date: date
    completed_at: datetime


def resolve_date_range(
    start_date: Optional[date],
    end_date: Optional[date],
    default_days: int,
    today: Optional[date] = None,
) -> DateRange:
    """Requested window, defaulting to the trailing `default_days` days."""
    end = end_date or today or utcnow().date()
    start = start_date or end - timedelta(days=default_days)
    if start > end:
        raise InvalidSyncRequest(f"start_date {start} is after end_date {end}")
    return DateRange(start=start, end=end)


def _chunks(rows: List[dict], size: int) -> Iterable[List[dict]]:
    for index in range(0, len(rows), size):
        yield rows[index:index + size]


def upsert_metric_rows(db: Session, model, rows: List[dict]) -> None:
    """INSERT ... ON CONFLICT (agency, account, entity, date) DO UPDATE.

    Dispatches on the bound dialect: PostgreSQL in production, SQLite in tests.
    """
    if not rows:
        return

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(rows)
    else:
        raise StorageError(f"Upsert not supported on {dialect}")

    keys = set(model.upsert_keys) | {"id"}
    stmt = stmt.on_conflict_do_update(
        index_elements=list(model.upsert_keys),
        set_={column: stmt.excluded[column] for column in rows[0] if column not in keys},
    )
    db.execute(stmt)


def _dedupe(rows: List[dict], keys: Iterable[str]) -> List[dict]:
    """Last row wins per upsert key; one statement may not touch a row twice."""
    keys = tuple(keys)
    unique: Dict[tuple, dict] = {}
    for row in rows:
        unique[tuple(row[k] for k in keys)] = row
    return list(unique.values())


class SyncJob:
    """Runs one sync for one (agency, platform, account)."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        adapters: Dict[PlatformEnum, PlatformAdapter],
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.settings = settings
        self.adapters = adapters
        self.http = http

    async def run(
        self,
        platform,
        agency_id,
        account_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> SyncResult:
        """Sync a date range (trailing SYNC_DEFAULT_DAYS days by default).

        Raises:
            InvalidSyncRequest: start after end.
            IntegrationNotFound: no active integration or unusable credentials.
            SyncAlreadyRunning: another sync holds the in-progress flag.
            ExternalApiError / TokenExchangeFailed: platform call failed.
            StorageError: the batch write failed (rolled back).
        """
        platform = PlatformEnum(platform)
        agency_id = uuid.UUID(str(agency_id))
        date_range = resolve_date_range(start_date, end_date, self.settings.SYNC_DEFAULT_DAYS)

        adapter = self.adapters.get(platform)
        if adapter is None:
            raise InvalidSyncRequest(f"No sync adapter for {platform.value}")

        integration = self._load_integration(platform, agency_id, account_id)
        credentials = load_credentials(integration)

        self._claim(integration)
        logger.info(
            "[SYNC] Started %s sync for %s (agency=%s, %s..%s)",
            platform.value, account_id, agency_id, date_range.start, date_range.end,
        )
        try:
            if self.http is not None:
                credentials = await ensure_fresh_credentials(self.db, integration, credentials, self.settings, self.http)
            rows = await adapter.fetch_metrics(AccountCredential(account_id, credentials), date_range)
            records = _dedupe([adapter.to_record(row) for row in rows], ("entity_id", "date"))
            completed_at = self._write(adapter, integration, records)
        except MetrionixError as exc:
            self._record_failure(integration, exc)
            raise
        except SQLAlchemyError as exc:
            logger.exception("[SYNC] Storage failure during %s sync for %s", platform.value, account_id)
            error = StorageError(f"Could not store {platform.value} metrics")
            self._record_failure(integration, error)
            raise error from exc
        except Exception as exc:
            logger.exception("[SYNC] Unexpected failure during %s sync for %s", platform.value, account_id)
            error = ExternalApiError(
                f"{platform.value} sync failed: {type(exc).__name__}: {exc}",
                provider=platform.value,
            )
            self._record_failure(integration, error)
            raise error from exc

        logger.info("[SYNC] Completed %s sync for %s: %d rows", platform.value, account_id, len(records))
        return SyncResult(
            platform=platform,
            agency_id=agency_id,
            account_id=account_id,
            rows_synced=len(records),
            start_date=date_range.start,
            end_date=date_range.end,
            completed_at=completed_at,
        )

    # ------------------------------------------------------------------

    def _load_integration(self, platform: PlatformEnum, agency_id: uuid.UUID, account_id: str) -> Integration:
        integration = (
            self.db.query(Integration)
            .filter(
                Integration.agency_id == agency_id,
                Integration.platform == platform,
                Integration.account_id == account_id,
                Integration.is_active.is_(True),
            )
            .first()
        )
        if integration is None:
            raise IntegrationNotFound(
                f"No active {platform.value} integration for account {account_id}",
                provider=platform.value,
            )
        return integration

    def _claim(self, integration: Integration) -> None:
        """Set the in-progress flag with a conditional UPDATE (compare-and-set)."""
        now = utcnow()
        stale_before = now - timedelta(seconds=self.settings.SYNC_LOCK_TTL_SECONDS)
        result = self.db.execute(
            update(Integration)
            .where(
                Integration.id == integration.id,
                or_(
                    Integration.sync_status == SyncStatusEnum.idle,
                    Integration.sync_started_at.is_(None),
                    Integration.sync_started_at < stale_before,
                ),
            )
            .values(sync_status=SyncStatusEnum.syncing, sync_started_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            raise SyncAlreadyRunning(
                f"A {integration.platform.value} sync for {integration.account_id} is already running",
                provider=integration.platform.value,
            )
        self.db.refresh(integration)

    def _write(self, adapter: PlatformAdapter, integration: Integration, records: List[dict]) -> datetime:
        now = utcnow()
        rows = [
            {
                "id": uuid.uuid4(),
                **record,
                "agency_id": integration.agency_id,
                "account_id": integration.account_id,
                "synced_at": now,
            }
            for record in records
        ]
        for batch in _chunks(rows, self.settings.SYNC_BATCH_SIZE):
            upsert_metric_rows(self.db, adapter.model, batch)

        integration.last_sync = now
        integration.last_sync_error = None
        integration.status = IntegrationStatusEnum.connected
        integration.sync_status = SyncStatusEnum.idle
        integration.sync_started_at = None
        self.db.commit()
        return now

    def _record_failure(self, integration: Integration, exc: MetrionixError) -> None:
        """Roll back the batch, release the flag, keep last_sync untouched."""
        self.db.rollback()
        auth_failure = getattr(exc, "auth_failure", False) or getattr(exc, "revoked", False)
        try:
            integration.sync_status = SyncStatusEnum.idle
            integration.sync_started_at = None
            integration.last_sync_error = exc.message[:2000]
            if auth_failure:
                integration.status = IntegrationStatusEnum.error
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("[SYNC] Could not record failure for %s; flag expires after TTL", integration)

        logger.warning(
            "[SYNC] %s sync failed for %s (%s): %s",
            integration.platform.value, integration.account_id, exc.error_type, exc.message,
        )
        capture_exception(exc, extra={"platform": integration.platform.value, "account_id": integration.account_id})


async def run_sync(
    db: Session,
    settings: Settings,
    platform,
    agency_id,
    account_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    adapters: Optional[Dict[PlatformEnum, PlatformAdapter]] = None,
) -> SyncResult:
    """Run a sync with live adapters and a request-scoped HTTP client."""
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as http:
        job = SyncJob(db, settings, adapters or build_adapters(settings, http), http=http)
        return await job.run(platform, agency_id, account_id, start_date, end_date)
