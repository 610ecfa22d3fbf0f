from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from services.ledger_service.app import models  # noqa: F401  registers tables on Base.metadata
from services.ledger_service.app.db.base import Base
from services.ledger_service.app.settings import ledger_settings

VERSION_TABLE = "ledger_alembic_version"

config = context.config

if config.config_file_name is not None and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name)


def _database_url() -> str:
    # alembic.ini carries a placeholder; the runtime DSN comes from run_alembic_migrations or settings
    url = config.get_main_option("sqlalchemy.url")
    if url and not url.startswith("sqlite:///:memory:"):
        return url
    return ledger_settings().sync_db_url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        version_table=VERSION_TABLE,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=_database_url(), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
