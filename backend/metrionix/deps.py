"""Dependency providers for the HTTP layer."""

from dataclasses import dataclass
from typing import AsyncIterator, Optional
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status

from . import state
from .config import Settings, get_settings
from .oauth.transit import RedisTransitStateStore, TransitStateStore
from .security import JWTError, decode_token
from .telemetry import set_agency_context


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from the bearer JWT."""

    subject: str
    agency_id: UUID


def get_current_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    """Resolve the caller from `Authorization: Bearer <jwt>`.

    The agency claim is read from the top level or from `app_metadata`,
    where the auth provider puts custom claims.
    """
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove "Bearer " prefix
    if authorization.startswith("Bearer "):
        token = authorization[len("Bearer ") :]
    else:
        token = authorization

    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    agency_id = payload.get("agency_id") or (payload.get("app_metadata") or {}).get("agency_id")
    if not subject or not agency_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    try:
        principal = Principal(subject=subject, agency_id=UUID(str(agency_id)))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    set_agency_context(str(principal.agency_id), user_id=subject)
    return principal


def require_agency(principal: Principal, agency_id) -> None:
    """403 unless the caller belongs to `agency_id`."""
    if principal.agency_id != UUID(str(agency_id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this agency")


def get_transit_store() -> TransitStateStore:
    """OAuth transit state lives in the shared Redis client."""
    if state.redis_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OAuth is unavailable: Redis is not connected",
        )
    return RedisTransitStateStore(state.redis_client)


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    """Request-scoped HTTP client for provider calls."""
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


__all__ = [
    "Principal",
    "get_settings",
    "get_current_principal",
    "require_agency",
    "get_transit_store",
    "get_http_client",
]
