#fleet_engine\infrastructure\postgres\database.py

"""Engine and session factory for the control plane database."""

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from fleet_engine.infrastructure.postgres.config import get_database_settings


Base = declarative_base()


# ============================================
# Engine
# ============================================
def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Build a pooled engine from ``DatabaseSettings``.

    Args:
        database_url: Overrides the configured URL (tests, alembic -x url=...).
    """
    settings = get_database_settings()
    engine = create_engine(
        database_url or settings.database_url,
        echo=settings.echo_sql,
        pool_pre_ping=True,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
    )

    @event.listens_for(engine, "connect")
    def _pin_search_path(dbapi_conn, _record):
        with dbapi_conn.cursor() as cursor:
            cursor.execute("SET search_path TO public")

    return engine


@lru_cache
def get_engine() -> Engine:
    return create_db_engine()


def get_session_factory(engine_instance: Optional[Engine] = None) -> sessionmaker:
    """Session factory for the repositories.

    Sessions keep their objects loaded after commit because repositories
    map rows to domain models outside the transaction.
    """
    return sessionmaker(
        bind=engine_instance or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


# ============================================
# Schema helpers (tests; production uses alembic)
# ============================================
def init_db(engine_instance: Optional[Engine] = None) -> None:
    Base.metadata.create_all(bind=engine_instance or get_engine())


def drop_db(engine_instance: Optional[Engine] = None) -> None:
    Base.metadata.drop_all(bind=engine_instance or get_engine())
