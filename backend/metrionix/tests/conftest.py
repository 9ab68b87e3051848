"""Pytest configuration for metrionix tests

WHAT: Shared fixtures for service-level and HTTP endpoint tests
WHY: Consistent settings, an isolated in-memory database and authenticated clients
REFERENCES:
    - metrionix/main.py: FastAPI application
    - metrionix/database.py: Database configuration
    - metrionix/deps.py: Dependency injection
"""

import os
import sys
import uuid
from pathlib import Path
from typing import Generator

import pytest

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment (before any metrionix module reads settings)
os.environ.setdefault("DATABASE_URL", "sqlite://")
# Must be URL-safe base64-encoded 32-byte string
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")
os.environ.setdefault("OAUTH_REDIRECT_URI", "http://localhost:3000/oauth/callback")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from metrionix.config import Settings
from metrionix.models import Base, Integration, IntegrationStatusEnum, PlatformEnum, SyncStatusEnum
from metrionix.security import create_access_token
from metrionix.services.token_service import Credentials, store_credentials

WEBHOOK_SECRET = "whsec-test"


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Fully configured settings (real-looking OAuth and webhook secrets)."""
    return Settings(
        DATABASE_URL="sqlite://",
        TOKEN_ENCRYPTION_KEY=os.environ["TOKEN_ENCRYPTION_KEY"],
        AUTH_JWT_SECRET="test-jwt-secret",
        FRONTEND_URL="http://localhost:3000",
        OAUTH_REDIRECT_URI="http://localhost:3000/oauth/callback",
        GOOGLE_CLIENT_ID="google-client-id.apps.googleusercontent.com",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        GOOGLE_DEVELOPER_TOKEN="dev-token",
        META_APP_ID="1234567890",
        META_APP_SECRET="meta-app-secret",
        WOOCOMMERCE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        META_WEBHOOK_SECRET=WEBHOOK_SECRET,
        GOOGLE_ADS_WEBHOOK_SECRET=WEBHOOK_SECRET,
        SYNC_BATCH_SIZE=100,
    )


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared across threads (TestClient runs sync endpoints in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def agency_id() -> uuid.UUID:
    return uuid.UUID("3f6c1a52-4d0b-4c8e-9a4e-1f2b3c4d5e6f")


@pytest.fixture
def make_integration(test_db_session, agency_id):
    """Factory for stored integrations with encrypted credentials."""

    def _make(
        platform=PlatformEnum.google_ads,
        account_id="1234567890",
        access_token="access-token",
        refresh_token="refresh-token",
        expires_at=None,
        extra=None,
        **fields,
    ) -> Integration:
        integration = Integration(
            agency_id=fields.pop("agency_id", agency_id),
            platform=platform,
            account_id=account_id,
            is_active=fields.pop("is_active", True),
            status=fields.pop("status", IntegrationStatusEnum.connected),
            sync_status=fields.pop("sync_status", SyncStatusEnum.idle),
            **fields,
        )
        if access_token is not None:
            store_credentials(
                integration,
                Credentials(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                    extra=extra or {},
                ),
            )
        test_db_session.add(integration)
        test_db_session.commit()
        test_db_session.refresh(integration)
        return integration

    return _make


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, settings):
    """FastAPI app with the test database and settings."""
    from metrionix.database import get_db
    from metrionix.deps import get_settings
    from metrionix.main import create_app

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_settings] = lambda: settings
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """TestClient without lifespan events (no Redis, no Sentry)."""
    return TestClient(app)


@pytest.fixture
def auth_headers(agency_id):
    token = create_access_token("user-123", str(agency_id))
    return {"Authorization": f"Bearer {token}"}
