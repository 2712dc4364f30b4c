"""
tests/conftest.py — Shared Test Fixtures
=========================================

Two in-memory SQLite stores (central + one tenant) seeded with a small
cast of accounts, and a notification fanout that delivers inline to a
``MagicMock`` dispatcher so tests can assert on what was sent.
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of agora.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from agora.config import AgoraConfig, set_config  # noqa: E402
from agora.database.engine import init_central_db, init_tenant_db  # noqa: E402
from agora.database.models import Member, Role, StaffAccount, Tenant  # noqa: E402
from agora.database.tenants import TenantContext  # noqa: E402
from agora.engine.events import Actor  # noqa: E402
from agora.engine.pagination import PageRequest  # noqa: E402
from agora.services import notification_service  # noqa: E402

TENANT_KEY = "acme"

ALICE_ID = "00000000-0000-4000-8000-00000000a11c"
BOB_ID = "00000000-0000-4000-8000-000000000b0b"
CAROL_ID = "00000000-0000-4000-8000-0000000ca201"
INSTRUCTOR_ID = "00000000-0000-4000-8000-00000000150c"
ADMIN_ID = "00000000-0000-4000-8000-00000000ad01"
SUPER_ADMIN_ID = "00000000-0000-4000-8000-00000000005a"
OTHER_ADMIN_ID = "00000000-0000-4000-8000-00000000ad02"


def _memory_engine() -> Engine:
    """In-memory SQLite shared by every thread (TestClient runs sync
    endpoints in a worker thread)."""
    return create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(autouse=True)
def forum_config():
    """Fresh default configuration for every test."""
    cfg = AgoraConfig()
    set_config(cfg)
    return cfg


@pytest.fixture(autouse=True)
def dispatcher():
    """Inline fanout delivering to a mock; ``dispatcher.send.call_args_list``
    lists every notification of the test."""
    mock = MagicMock()
    notification_service.configure(mock, inline=True)
    yield mock
    notification_service.shutdown()


@pytest.fixture
def central_engine() -> Engine:
    engine = _memory_engine()
    init_central_db(engine)
    with Session(engine) as session:
        session.add_all([
            Tenant(key=TENANT_KEY, name="Acme Academy", db_name="forum_acme"),
            Tenant(key="globex", name="Globex", db_name="forum_globex"),
            Tenant(key="closed", name="Closed Co", db_name="forum_closed", status="inactive"),
            StaffAccount(
                id=INSTRUCTOR_ID, tenant_key=TENANT_KEY, first_name="Ivan",
                last_name="Teach", email="ivan.teach@acme.test", role=Role.INSTRUCTOR.value,
            ),
            StaffAccount(
                id=ADMIN_ID, tenant_key=TENANT_KEY, first_name="Ada",
                last_name="Min", email="ada.min@acme.test", role=Role.ADMIN.value,
            ),
            StaffAccount(
                id=SUPER_ADMIN_ID, tenant_key=None, first_name="Sue",
                last_name="Per", email="sue.per@agora.test", role=Role.SUPER_ADMIN.value,
            ),
            StaffAccount(
                id=OTHER_ADMIN_ID, tenant_key="globex", first_name="Gus",
                last_name="Lobex", email="gus@globex.test", role=Role.ADMIN.value,
            ),
        ])
        session.commit()
    return engine


@pytest.fixture
def tenant_engine() -> Engine:
    engine = _memory_engine()
    init_tenant_db(engine)
    with Session(engine) as session:
        session.add_all([
            Member(id=ALICE_ID, first_name="Alice", last_name="Archer", email="alice@acme.test"),
            Member(id=BOB_ID, first_name="Bob", last_name="Baker", email="bob@acme.test"),
            Member(id=CAROL_ID, first_name="Carol", last_name="Cole", email="carol@acme.test"),
        ])
        session.commit()
    return engine


@pytest.fixture
def ctx(central_engine: Engine, tenant_engine: Engine) -> TenantContext:
    return TenantContext(key=TENANT_KEY, central=central_engine, store=tenant_engine)


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture
def alice() -> Actor:
    return Actor(ALICE_ID, Role.MEMBER, TENANT_KEY)


@pytest.fixture
def bob() -> Actor:
    return Actor(BOB_ID, Role.MEMBER, TENANT_KEY)


@pytest.fixture
def carol() -> Actor:
    return Actor(CAROL_ID, Role.MEMBER, TENANT_KEY)


@pytest.fixture
def instructor() -> Actor:
    return Actor(INSTRUCTOR_ID, Role.INSTRUCTOR, TENANT_KEY)


@pytest.fixture
def admin() -> Actor:
    return Actor(ADMIN_ID, Role.ADMIN, TENANT_KEY)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(SUPER_ADMIN_ID, Role.SUPER_ADMIN, TENANT_KEY)


@pytest.fixture
def page() -> PageRequest:
    return PageRequest(page=1, limit=50)


# ---------------------------------------------------------------------------
# HTTP layer
# ---------------------------------------------------------------------------
@pytest.fixture
def auth():
    """Factory: ``auth(actor)`` returns headers carrying a JWT for *actor*."""
    import jwt

    from agora.api.deps import JWT_ALGORITHM, JWT_SECRET

    def _headers(actor: Actor, **extra) -> dict:
        claims = {"sub": actor.id, "role": actor.role.value}
        if actor.tenant_key is not None:
            claims["tenant"] = actor.tenant_key
        claims.update(extra)
        token = jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(central_engine: Engine, tenant_engine: Engine):
    """TestClient routed to the in-memory stores.

    Every tenant key resolves to the same tenant engine; the central store
    still decides which keys exist.
    """
    from fastapi.testclient import TestClient

    from agora.api.deps import get_router
    from agora.api.main import app
    from agora.database.tenants import TenantRouter

    router = TenantRouter(central_engine, engine_factory=lambda db_name: tenant_engine)
    app.dependency_overrides[get_router] = lambda: router
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
