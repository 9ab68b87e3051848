"""Security utilities for bearer JWTs and credential encryption.

WHAT:
    - Fernet encryption of stored platform credentials.
    - Verification of the auth provider's HS256 bearer JWTs.

WHY:
    - Credential blobs (access/refresh tokens, WooCommerce API keys) must
      never land in the database or logs in plaintext.
    - Sessions are issued by the external auth provider; this service only
      verifies them and reads the agency claim.

REFERENCES:
    - metrionix/services/token_service.py (credential blob storage)
    - metrionix/deps.py::get_current_principal
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from .config import get_settings

ALGORITHM = "HS256"

logger = logging.getLogger(__name__)


@lru_cache()
def _get_cipher() -> Fernet:
    key = get_settings().TOKEN_ENCRYPTION_KEY
    if not key:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY is not set. Generate a 32-byte Fernet key and export it "
            "or add it to backend/.env (see backend/generate_keys.py)."
        )
    try:
        return Fernet(key)
    except (ValueError, TypeError) as exc:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte string. "
            "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        ) from exc


def encrypt_secret(plaintext: str, *, context: str) -> str:
    """Encrypt a secret before persisting.

    Args:
        plaintext: Raw secret to encrypt (e.g., a serialized credential blob).
        context:   Friendly label for logs (platform/account).

    Returns:
        URL-safe base64 ciphertext suitable for DB storage.
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty secret.")

    ciphertext = _get_cipher().encrypt(plaintext.encode("utf-8")).decode("utf-8")
    logger.debug("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
    return ciphertext


def decrypt_secret(ciphertext: str, *, context: str) -> str:
    """Decrypt a secret produced by `encrypt_secret`.

    Raises:
        ValueError: If the stored value cannot be decrypted.
    """
    if not ciphertext:
        raise ValueError("Cannot decrypt empty secret.")

    try:
        plaintext = _get_cipher().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        logger.debug("[TOKEN_DECRYPT] Secret decrypted for %s (length=%d)", context, len(plaintext))
        return plaintext
    except InvalidToken as exc:
        logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
        raise ValueError("Unable to decrypt stored token.") from exc


def create_access_token(
    subject: str,
    agency_id: str,
    expires_minutes: int = 60,
    secret: Optional[str] = None,
) -> str:
    """Create a signed JWT shaped like the auth provider's session tokens.

    Used by scripts and tests; production tokens come from the auth provider.
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {
        "sub": subject,
        "agency_id": agency_id,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(to_encode, secret or get_settings().AUTH_JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    settings = get_settings()
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    return jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[ALGORITHM],
        audience=settings.AUTH_JWT_AUDIENCE,
        options=options,
    )


__all__ = ["encrypt_secret", "decrypt_secret", "create_access_token", "decode_token", "JWTError"]
