"""
agora.database.tenants — Tenant Key → Store Routing
=====================================================

Every forum operation is scoped to exactly one tenant store.  The router
looks the tenant up in the central store, then hands out a cached engine
for that tenant's database.  Services receive a :class:`TenantContext`
and never build engines themselves.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from agora.database.engine import create_db_engine
from agora.database.models import Tenant, TenantStatus
from agora.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TenantContext:
    """The pair of stores one request is allowed to touch."""

    key: str
    central: Engine
    store: Engine


class TenantRouter:
    """Thread-safe tenant key → :class:`TenantContext` lookup.

    ``engine_factory`` receives the tenant's ``db_name`` and returns an
    engine.  The default factory formats ``TENANT_DATABASE_URL_TEMPLATE``
    (e.g. ``postgresql+psycopg2://forum@db/{db_name}``).
    """

    def __init__(
        self,
        central: Engine,
        engine_factory: Callable[[str], Engine] | None = None,
    ) -> None:
        self.central = central
        self._engine_factory = engine_factory or _engine_from_template
        self._engines: dict[str, Engine] = {}
        self._lock = threading.Lock()

    def get_tenant_context(self, tenant_key: str) -> TenantContext:
        """Resolve *tenant_key* to its stores.

        Raises
        ------
        NotFoundError
            If the tenant is unknown or inactive.
        """
        with Session(self.central) as session:
            tenant = session.scalar(select(Tenant).where(Tenant.key == tenant_key))
            if tenant is None or tenant.status != TenantStatus.ACTIVE:
                raise NotFoundError("Tenant not found")
            db_name = tenant.db_name

        return TenantContext(key=tenant_key, central=self.central, store=self._engine_for(db_name))

    def _engine_for(self, db_name: str) -> Engine:
        engine = self._engines.get(db_name)
        if engine is not None:
            return engine
        with self._lock:
            engine = self._engines.get(db_name)
            if engine is None:
                engine = self._engine_factory(db_name)
                self._engines[db_name] = engine
                logger.info("Tenant engine opened for %s", db_name)
        return engine

    def dispose(self) -> None:
        """Close every cached tenant pool."""
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()


def _engine_from_template(db_name: str) -> Engine:
    template = os.getenv("TENANT_DATABASE_URL_TEMPLATE", "")
    if not template:
        raise RuntimeError(
            "TENANT_DATABASE_URL_TEMPLATE is not set.  "
            "Example: postgresql+psycopg2://forum:secret@db:5432/{db_name}"
        )
    return create_db_engine(template.format(db_name=db_name))
