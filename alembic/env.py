"""Alembic environment — wired to Agora models.

Two independent migration branches share this directory:

    alembic -x store=central upgrade central@head
    alembic -x store=tenant -x url=postgresql+psycopg2://.../tenant_db upgrade tenant@head

``store`` picks the metadata; the URL comes from ``-x url=`` or, failing
that, ``CENTRAL_DATABASE_URL`` for the central store.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

# Load .env so CENTRAL_DATABASE_URL is available
load_dotenv()

# Alembic Config object
config = context.config

x_args = context.get_x_argument(as_dictionary=True)
store = x_args.get("store", "central")
if store not in ("central", "tenant"):
    raise RuntimeError(f"Unknown store {store!r}; use -x store=central or -x store=tenant")

database_url = x_args.get("url")
if not database_url and store == "central":
    database_url = os.getenv("CENTRAL_DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)

# Python logging from alembic.ini
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Import all models so Alembic sees them for autogenerate
from agora.database.models import CentralBase, TenantBase  # noqa: E402

target_metadata = CentralBase.metadata if store == "central" else TenantBase.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
