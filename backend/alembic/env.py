from __future__ import annotations

import asyncio
import logging
from logging.config import fileConfig
from typing import TYPE_CHECKING, Literal

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from leave_ledger.config import get_settings
from leave_ledger.models import SQLModel

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
else:
    logging.basicConfig(level=get_settings().log_level.upper())

logger = logging.getLogger("leave_ledger.migrations")

target_metadata = SQLModel.metadata


def render_item(type_: str, obj: object, autogen_context: object) -> str | Literal[False]:
    """Render SQLModel string columns as plain SQLAlchemy strings."""
    if type_ == "type":
        from sqlmodel.sql.sqltypes import AutoString

        if isinstance(obj, AutoString):
            return f"sa.String(length={obj.length})" if obj.length else "sa.String()"
    return False


def _database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_settings().database_url


def _configure_kwargs(url: str) -> dict[str, object]:
    # SQLite cannot ALTER constraints in place; the ledger's unique sequence
    # constraint needs batch mode there.
    return {
        "target_metadata": target_metadata,
        "render_item": render_item,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit migration SQL without a live connection."""
    url = _database_url()
    logger.info("Generating offline migration script")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),  # type: ignore[arg-type]
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **_configure_kwargs(str(connection.engine.url)))  # type: ignore[arg-type]
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations against the ledger database through the async driver."""
    url = _database_url()
    connectable = create_async_engine(url, poolclass=pool.NullPool)
    logger.info("Running migrations against %s", connectable.url.render_as_string(hide_password=True))
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
