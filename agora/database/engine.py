"""
agora.database.engine — Database Connections & Session Helpers
================================================================

**Why this file exists:**
Agora talks to two kinds of database: one central store and one store per
tenant.  Both are plain synchronous SQLAlchemy engines; every service call
is a short-lived unit of work that opens a session, does its reads and
writes, and commits (or rolls back) before returning.

Usage::

    from agora.database.engine import create_db_engine, get_session

    central = create_db_engine(os.environ["CENTRAL_DATABASE_URL"])
    init_central_db(central)

    with get_session(central) as session:
        session.add(Tenant(key="acme", name="Acme", db_name="forum_acme"))
        # commit happens automatically on block exit
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from agora.database.models import CentralBase, TenantBase

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str) -> Engine:
    """Build a SQLAlchemy :class:`Engine` for *url*.

    The pool is sized per database; a deployment with many tenants holds one
    small pool per tenant rather than one large shared pool:

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    SQLite URLs skip the pool arguments (the SQLite dialect rejects them).

    Raises
    ------
    RuntimeError
        If *url* is empty.
    """
    if not url:
        raise RuntimeError(
            "Database URL is not set.  "
            "Copy .env.example → .env and set CENTRAL_DATABASE_URL / "
            "TENANT_DATABASE_URL_TEMPLATE."
        )

    if url.startswith("sqlite"):
        engine = create_engine(url, echo=False)
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_central_db(engine: Engine) -> None:
    """Create the central tables (tenants, staff accounts) if missing.

    .. note::

        In production the schema is managed by Alembic (``alembic -x
        store=central upgrade head``).  ``create_all`` is retained for
        dev/test environments where Alembic may not have run.
    """
    CentralBase.metadata.create_all(engine)
    logger.info("Central tables verified / created.")


def init_tenant_db(engine: Engine) -> None:
    """Create the forum tables of one tenant store if missing."""
    TenantBase.metadata.create_all(engine)
    logger.info("Tenant tables verified / created (%s).", engine.url.database)


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Objects stay readable after the block (``expire_on_commit=False``) so
    services can hand them to the view assembler.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_transaction(
    engine: Engine,
    work: Callable[[Session], T],
    *,
    attempts: int = 3,
    label: str = "transaction",
) -> T:
    """Run *work* in its own transaction, retrying the **whole** unit on
    transient :class:`OperationalError` (deadlock, serialization failure,
    dropped connection).

    *work* must be safe to re-run from scratch: it receives a fresh session
    each attempt and must recompute everything it writes.
    """
    for attempt in range(1, attempts + 1):
        try:
            with get_session(engine) as session:
                return work(session)
        except OperationalError:
            if attempt >= attempts:
                raise
            delay = min(0.05 * (2 ** attempt), 1.0) * (0.5 + random.random())
            logger.warning(
                "%s failed on attempt %d/%d; retrying in %.2fs",
                label, attempt, attempts, delay,
            )
            time.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
