"""Provider token endpoint calls (httpx).

Every call here uses the server-held client secret. Provider rejections are
raised as `TokenExchangeFailed` carrying the provider's own description, so
the UI can show it verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import httpx

from ..config import Settings
from ..errors import TokenExchangeFailed
from ..models import utcnow
from .providers import GOOGLE_TOKEN_URL, META_UNKNOWN_ACCOUNT, meta_graph_url

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)


def _expires_at(expires_in) -> Optional[datetime]:
    if not expires_in:
        return None
    return utcnow() + timedelta(seconds=int(expires_in))


def _provider_error(response: httpx.Response) -> tuple:
    """Extract (error_code, description) from a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"

    error = body.get("error")
    if isinstance(error, dict):
        # Graph API: {"error": {"message": ..., "type": ..., "code": ...}}
        return error.get("type"), error.get("message") or str(error)
    return error, body.get("error_description") or error or f"HTTP {response.status_code}"


async def _post_token(http: httpx.AsyncClient, provider: str, url: str, *, data=None, params=None) -> dict:
    try:
        if data is not None:
            response = await http.post(url, data=data)
        else:
            response = await http.get(url, params=params)
    except httpx.HTTPError as exc:
        logger.exception("[OAUTH] %s token endpoint unreachable", provider)
        raise TokenExchangeFailed(f"{provider} token endpoint unreachable: {exc}", provider=provider) from exc

    if response.status_code >= 400:
        error_code, description = _provider_error(response)
        logger.error("[OAUTH] %s token exchange rejected (%s): %s", provider, response.status_code, description)
        raise TokenExchangeFailed(
            description,
            provider=provider,
            revoked=error_code == "invalid_grant",
        )
    return response.json()


async def exchange_google_code(http: httpx.AsyncClient, settings: Settings, code: str) -> TokenSet:
    data = await _post_token(
        http,
        "google",
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": settings.OAUTH_REDIRECT_URI,
            "grant_type": "authorization_code",
        },
    )
    if not data.get("access_token"):
        raise TokenExchangeFailed("Google returned no access token", provider="google")
    return TokenSet(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=_expires_at(data.get("expires_in")),
        scope=data.get("scope"),
        raw=data,
    )


async def refresh_google_token(http: httpx.AsyncClient, settings: Settings, refresh_token: str) -> TokenSet:
    """Exchange a refresh token for a new access token.

    Raises:
        TokenExchangeFailed: with ``revoked=True`` on ``invalid_grant``.
    """
    data = await _post_token(
        http,
        "google",
        GOOGLE_TOKEN_URL,
        data={
            "refresh_token": refresh_token,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "grant_type": "refresh_token",
        },
    )
    return TokenSet(
        access_token=data["access_token"],
        # Google only rotates the refresh token occasionally
        refresh_token=data.get("refresh_token") or refresh_token,
        expires_at=_expires_at(data.get("expires_in")),
        scope=data.get("scope"),
        raw=data,
    )


async def exchange_meta_code(http: httpx.AsyncClient, settings: Settings, code: str) -> TokenSet:
    data = await _post_token(
        http,
        "meta",
        meta_graph_url(settings, "oauth/access_token"),
        params={
            "client_id": settings.META_APP_ID,
            "client_secret": settings.META_APP_SECRET,
            "redirect_uri": settings.OAUTH_REDIRECT_URI,
            "code": code,
        },
    )
    if not data.get("access_token"):
        raise TokenExchangeFailed("Meta returned no access token", provider="meta")
    return TokenSet(
        access_token=data["access_token"],
        expires_at=_expires_at(data.get("expires_in")),
        raw=data,
    )


async def exchange_meta_long_lived(http: httpx.AsyncClient, settings: Settings, tokens: TokenSet) -> TokenSet:
    """Swap a short-lived user token for a ~60 day token.

    Failure keeps the short-lived token; the connection still works until it expires.
    """
    try:
        data = await _post_token(
            http,
            "meta",
            meta_graph_url(settings, "oauth/access_token"),
            params={
                "grant_type": "fb_exchange_token",
                "client_id": settings.META_APP_ID,
                "client_secret": settings.META_APP_SECRET,
                "fb_exchange_token": tokens.access_token,
            },
        )
    except TokenExchangeFailed as exc:
        logger.warning("[OAUTH] Meta long-lived exchange failed, keeping short-lived token: %s", exc.message)
        return tokens

    logger.info("[OAUTH] Exchanged Meta token for long-lived token")
    return TokenSet(
        access_token=data.get("access_token") or tokens.access_token,
        expires_at=_expires_at(data.get("expires_in")) or tokens.expires_at,
        raw=data,
    )


async def fetch_meta_account_id(http: httpx.AsyncClient, settings: Settings, access_token: str) -> str:
    """First ad account of the user, or the placeholder when none is visible."""
    try:
        response = await http.get(
            meta_graph_url(settings, "me/adaccounts"),
            params={"access_token": access_token, "fields": "id,name", "limit": 1},
        )
    except httpx.HTTPError as exc:
        raise TokenExchangeFailed(f"Could not list Meta ad accounts: {exc}", provider="meta") from exc

    if response.status_code >= 400:
        _, description = _provider_error(response)
        raise TokenExchangeFailed(description, provider="meta")

    accounts = response.json().get("data") or []
    if not accounts:
        return META_UNKNOWN_ACCOUNT
    return accounts[0].get("id") or META_UNKNOWN_ACCOUNT
