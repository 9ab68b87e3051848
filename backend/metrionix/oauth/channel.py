"""Async result channel for OAuth popup callbacks.

The popup relays `{type: "oauth_callback", code, state, error}` back to the
window that opened it. `OAuthResultChannel` is the single listener for those
messages: it discards foreign origins and other message types, resolves once,
and lets the waiter notice an abandoned popup within one poll interval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from ..errors import OAuthCancelled

logger = logging.getLogger(__name__)

CALLBACK_MESSAGE_TYPE = "oauth_callback"


@dataclass(frozen=True)
class OAuthCallbackMessage:
    code: Optional[str]
    state: Optional[str]
    error: Optional[str] = None
    provider: Optional[str] = None


class PopupWindow(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class OAuthResultChannel:
    """Resolved by the first well-formed callback message from an allowed origin."""

    def __init__(self, allowed_origins: Iterable[str], message_type: str = CALLBACK_MESSAGE_TYPE):
        self.allowed_origins = frozenset(allowed_origins)
        self.message_type = message_type
        self._event = asyncio.Event()
        self._message: Optional[OAuthCallbackMessage] = None

    @property
    def resolved(self) -> bool:
        return self._message is not None

    def deliver(self, origin: str, data: Any) -> bool:
        """Message listener. Returns True when the message resolved the channel."""
        if origin not in self.allowed_origins:
            logger.warning("[OAUTH] Ignored callback message from foreign origin %s", origin)
            return False
        if not isinstance(data, dict) or data.get("type") != self.message_type:
            return False
        if self._message is not None:
            return False

        self._message = OAuthCallbackMessage(
            code=data.get("code"),
            state=data.get("state"),
            error=data.get("error"),
            provider=data.get("provider"),
        )
        self._event.set()
        return True

    async def wait(
        self,
        popup: PopupWindow,
        *,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> OAuthCallbackMessage:
        """Wait for the callback, polling the popup for closure.

        Raises:
            OAuthCancelled: popup closed without a callback, or timeout elapsed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._message is not None:
                return self._message
            if popup.closed:
                raise OAuthCancelled("Authorization window was closed before completing")
            if deadline is not None and time.monotonic() >= deadline:
                raise OAuthCancelled("Authorization timed out")
            try:
                await asyncio.wait_for(self._event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue
