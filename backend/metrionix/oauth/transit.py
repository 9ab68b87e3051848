"""OAuth transit state: the CSRF token held between initiation and callback.

WHAT:
    A narrowly-scoped keyed store with TTL. `put` records the state token with
    the provider, platform and agency chosen at initiation; `consume` returns
    and deletes it in one atomic step.

WHY:
    Check-then-clear must be atomic so a duplicated callback cannot pass the
    CSRF check twice. Redis does it with GETDEL; the in-process store with a
    lock. Both are passed explicitly to the initiator and the callback handler.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis import Redis

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "oauth_state:"


def generate_state() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(32)


@dataclass
class TransitState:
    state: str
    provider: str
    platform: str
    agency_id: str
    account_hint: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw) -> "TransitState":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return cls(**json.loads(raw))


class TransitStateStore(Protocol):
    def put(self, record: TransitState, ttl_seconds: int) -> None: ...

    def consume(self, state: str) -> Optional[TransitState]: ...


class RedisTransitStateStore:
    """Server-side store shared by every API process."""

    def __init__(self, client: Redis, prefix: str = STATE_KEY_PREFIX):
        self.client = client
        self.prefix = prefix

    def put(self, record: TransitState, ttl_seconds: int) -> None:
        self.client.setex(f"{self.prefix}{record.state}", ttl_seconds, record.to_json())
        logger.info("[OAUTH] Stored transit state for %s (ttl=%ss)", record.provider, ttl_seconds)

    def consume(self, state: str) -> Optional[TransitState]:
        if not state:
            return None
        raw = self.client.getdel(f"{self.prefix}{state}")
        if raw is None:
            return None
        return TransitState.from_json(raw)


class InMemoryTransitStateStore:
    """Single-process store for the client-side flow and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[TransitState, float]] = {}

    def put(self, record: TransitState, ttl_seconds: int) -> None:
        with self._lock:
            self._purge_expired()
            self._entries[record.state] = (record, self._clock() + ttl_seconds)

    def consume(self, state: str) -> Optional[TransitState]:
        with self._lock:
            entry = self._entries.pop(state, None)
        if entry is None:
            return None
        record, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return record

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._entries.items() if now >= exp]:
            del self._entries[key]
