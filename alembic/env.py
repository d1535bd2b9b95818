from __future__ import annotations

import os
import pathlib
import sys
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import prs_api.models  # noqa: E402,F401
from prs_api.models.base import Base  # noqa: E402

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = os.getenv("DATABASE_URL", config.get_main_option("sqlalchemy.url"))
config.set_main_option("sqlalchemy.url", DATABASE_URL)

VERSION_TABLE = "prs_dashboard_alembic_version"


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Procurement tables belong to the upstream service; only our indexes are managed."""
    return type_ == "index"


def _context_options() -> dict:
    return {
        "target_metadata": Base.metadata,
        "include_object": include_object,
        "version_table": VERSION_TABLE,
    }


def run_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        # CREATE INDEX CONCURRENTLY runs inside autocommit_block in the revisions.
        context.configure(connection=connection, **_context_options())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
