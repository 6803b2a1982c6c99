"""
Shared test fixtures and configuration for the Kaizen Gate tests.

Both services run in-process: the auth app over an in-memory SQLite store, and
the edge wired to the auth app through an ASGI transport.
"""
import os
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["AUTH_PEPPER"] = "test-pepper"
os.environ["EDGE_HMAC_SECRET"] = "test-edge-hmac-secret"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only-min-32-chars"
os.environ["JWT_COOKIE_SECURE"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from tests.utils.licenses import (  # noqa: E402
    ACME_ALL_LICENSE,
    ACME_LICENSE,
    EXPIRED_LICENSE,
    GLOBX_LICENSE,
    HMAC_SECRET,
    JWT_SECRET,
    PEPPER,
    REVOKED_LICENSE,
)


@pytest.fixture
def test_settings():
    """Settings for the in-process services (plain http cookies, small lockout window)."""
    from kaizen_gate.core.config import Settings

    return Settings(
        ENVIRONMENT="development",
        AUTH_PEPPER=PEPPER,
        EDGE_HMAC_SECRET=HMAC_SECRET,
        JWT_SECRET=JWT_SECRET,
        JWT_COOKIE_SECURE=False,
        DATABASE_URL="sqlite+aiosqlite://",
        LOGIN_MAX_ATTEMPTS=5,
        LOGIN_ATTEMPT_WINDOW_MINUTES=15,
        AUTH_SERVICE_URL="http://auth",
    )


@pytest_asyncio.fixture
async def database():
    """In-memory credential store with the full schema."""
    from kaizen_gate.db.session import Database

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database(engine, query_timeout=5.0)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(database):
    """
    Clients, licenses and reports used across the tests.

    ACME     granted SALES (default) and OPS; FIN exists but is not granted,
             ARCH is granted but inactive
    ACME_ALL newer allow-all license of the same client
    GLOBX    allow-all, no default report (ALPHA, ZETA active; OLD inactive)
    EXPD     active row whose expiry has passed
    RVKD     revoked
    """
    from kaizen_gate.models.license import License, STATUS_REVOKED
    from kaizen_gate.models.report import Report, ReportGrant
    from kaizen_gate.services.license_issuance import issue_license

    now = datetime.utcnow()
    async with database.session() as db:
        acme = await issue_license(
            db, "ACME", PEPPER, now + timedelta(days=30),
            client_name="Acme Corp", license_string=ACME_LICENSE,
        )
        globx = await issue_license(
            db, "GLOBX", PEPPER, None,
            allow_all_reports=True, client_name="Globex", license_string=GLOBX_LICENSE,
        )
        expired = await issue_license(
            db, "EXPD", PEPPER, now - timedelta(days=1), license_string=EXPIRED_LICENSE,
        )
        revoked = await issue_license(
            db, "RVKD", PEPPER, now + timedelta(days=30), license_string=REVOKED_LICENSE,
        )
        await db.execute(
            update(License).where(License.id == revoked.license_id).values(status=STATUS_REVOKED)
        )

        reports = {
            "SALES": Report(client_prefix="ACME", code="SALES", name="Sales Overview",
                            embed_url="https://bi.example.com/acme/sales", is_default=True),
            "OPS": Report(client_prefix="ACME", code="OPS", name="Operations",
                          embed_url="https://bi.example.com/acme/ops"),
            "FIN": Report(client_prefix="ACME", code="FIN", name="Finance",
                          embed_url="https://bi.example.com/acme/fin"),
            "ARCH": Report(client_prefix="ACME", code="ARCH", name="Archive",
                           embed_url="https://bi.example.com/acme/arch", is_active=False),
            "ZETA": Report(client_prefix="GLOBX", code="ZETA", name="Zeta Board",
                           embed_url="https://bi.example.com/globx/zeta"),
            "ALPHA": Report(client_prefix="GLOBX", code="ALPHA", name="Alpha Board",
                            embed_url="https://bi.example.com/globx/alpha"),
            "OLD": Report(client_prefix="GLOBX", code="OLD", name="Aardvark Legacy",
                          embed_url="https://bi.example.com/globx/old", is_active=False),
            "EXPD_HOME": Report(client_prefix="EXPD", code="HOMEPAGE", name="Home",
                                embed_url="https://bi.example.com/expd/home", is_default=True),
        }
        db.add_all(reports.values())
        await db.flush()
        for code in ("SALES", "OPS", "ARCH"):
            db.add(ReportGrant(license_id=acme.license_id, report_id=reports[code].id))
        await db.commit()

        acme_all = await issue_license(
            db, "ACME", PEPPER, now + timedelta(days=30),
            allow_all_reports=True, license_string=ACME_ALL_LICENSE,
        )

    return SimpleNamespace(
        acme=acme,
        acme_all=acme_all,
        globx=globx,
        expired=expired,
        revoked=revoked,
        report_ids={code: report.id for code, report in reports.items()},
    )


@pytest.fixture
def auth_app(test_settings, database):
    from kaizen_gate.main import create_app

    return create_app(config=test_settings, database=database)


@pytest_asyncio.fixture
async def auth_client(auth_app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the auth service."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def edge_client(test_settings, auth_app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the edge, whose auth-service calls reach auth_app in-process."""
    from kaizen_gate.edge_main import create_edge_app
    from kaizen_gate.services.auth_client import AuthServiceClient

    upstream = AuthServiceClient(
        base_url="http://auth",
        hmac_secret=HMAC_SECRET,
        timeout=5.0,
        transport=ASGITransport(app=auth_app),
    )
    edge_app = create_edge_app(config=test_settings, auth_client=upstream)
    async with AsyncClient(transport=ASGITransport(app=edge_app), base_url="http://testserver") as client:
        yield client
    await upstream.close()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Each test starts with an empty edge request limiter at its default settings."""
    from kaizen_gate.core.config import settings
    from kaizen_gate.core.rate_limiter import configure_limiter, limiter

    limiter.reset()
    yield
    configure_limiter(settings)
    limiter.reset()
