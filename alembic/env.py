"""Alembic environment for the dispatch_units and scheduler_locks tables."""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from fleet_engine.infrastructure.postgres.config import get_database_settings
from fleet_engine.infrastructure.postgres.database import Base
from fleet_engine.infrastructure.postgres.models import DispatchUnitORM, SchedulerLockORM  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# `alembic -x url=...` wins over FLEET_DB_* settings
x_args = context.get_x_argument(as_dictionary=True)
config.set_main_option("sqlalchemy.url", x_args.get("url") or get_database_settings().database_url)

COMPARE_OPTIONS = {
    "target_metadata": Base.metadata,
    "compare_type": True,
    "compare_server_default": True,
}


def run_migrations_offline() -> None:
    """Emit SQL without a live connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate over a single unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **COMPARE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
