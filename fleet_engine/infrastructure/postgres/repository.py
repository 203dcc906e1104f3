#fleet_engine\infrastructure\postgres\repository.py

"""PostgreSQL repository implementations using SQLAlchemy."""

import logging
import time
from datetime import timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fleet_engine.core.repository import LockRepository, UnitRepository
from fleet_engine.core.models import DispatchUnit, UnitState, utcnow
from fleet_engine.core.errors import (
    UnitAlreadyExists,
    UnitNotFound,
    UnitPersistenceError,
)
from fleet_engine.infrastructure.postgres.database import get_session_factory
from fleet_engine.infrastructure.postgres.models import DispatchUnitORM, SchedulerLockORM

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: DispatchUnitORM) -> DispatchUnit:
    """Convert ORM model to domain model."""
    return DispatchUnit(
        unit_id=orm.unit_id,
        duty=orm.duty,
        target_id=orm.target_id,
        server_id=orm.server_id,
        lock_key=orm.lock_key,
        lock_owner=orm.lock_owner,
        payload=orm.payload,
        event_kind=orm.event_kind,
        state=orm.state,
        created_at=orm.created_at,
        queued_at=orm.queued_at,
        claimed_at=orm.claimed_at,
        started_at=orm.started_at,
        finished_at=orm.finished_at,
        lease_owner=orm.lease_owner,
        lease_expires_at=orm.lease_expires_at,
        output=orm.output,
        error_message=orm.error_message,
        version=orm.version,
    )


def domain_to_orm(unit: DispatchUnit) -> DispatchUnitORM:
    """Convert domain model to ORM model."""
    return DispatchUnitORM(
        unit_id=unit.unit_id,
        duty=unit.duty,
        target_id=unit.target_id,
        server_id=unit.server_id,
        lock_key=unit.lock_key,
        lock_owner=unit.lock_owner,
        payload=unit.payload,
        event_kind=unit.event_kind,
        state=unit.state,
        created_at=unit.created_at,
        queued_at=unit.queued_at,
        claimed_at=unit.claimed_at,
        started_at=unit.started_at,
        finished_at=unit.finished_at,
        lease_owner=unit.lease_owner,
        lease_expires_at=unit.lease_expires_at,
        output=unit.output,
        error_message=unit.error_message,
        version=unit.version,
    )


# ============================================
# Unit Repository
# ============================================

class PostgresUnitRepository(UnitRepository):
    """PostgreSQL work queue with row-locked claims."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Args:
            session_factory: SQLAlchemy session factory. If None, uses the default production factory.
        """
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        return self._session_factory()

    # -------------------------
    # CREATE
    # -------------------------

    def create(self, unit: DispatchUnit) -> None:
        session = self._get_session()
        try:
            session.add(domain_to_orm(unit))
            session.commit()
            logger.debug(f"[postgres] create {unit.unit_id} -> done")
        except IntegrityError as e:
            session.rollback()
            raise UnitAlreadyExists(f"Unit {unit.unit_id} already exists") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Failed to create unit: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, unit_id: UUID) -> Optional[DispatchUnit]:
        session = self._get_session()
        try:
            orm = session.get(DispatchUnitORM, unit_id)
            return orm_to_domain(orm) if orm is not None else None
        finally:
            session.close()

    def list_by_state(self, state: UnitState, limit: int = 100) -> Iterable[DispatchUnit]:
        session = self._get_session()
        try:
            results = (
                session.query(DispatchUnitORM)
                .filter(DispatchUnitORM.state == state)
                .order_by(DispatchUnitORM.created_at.asc())
                .limit(limit)
                .all()
            )
            logger.debug(f"[postgres] list_by_state state={state.value} -> {len(results)} rows")
            return [orm_to_domain(orm) for orm in results]
        finally:
            session.close()

    # -------------------------
    # UPDATE
    # -------------------------

    def update(self, unit: DispatchUnit) -> None:
        """Update with optimistic locking: the stored version must be one behind."""
        session = self._get_session()
        try:
            current = session.query(DispatchUnitORM).filter(
                and_(
                    DispatchUnitORM.unit_id == unit.unit_id,
                    DispatchUnitORM.version == unit.version - 1
                )
            ).with_for_update().first()

            if not current:
                if session.get(DispatchUnitORM, unit.unit_id) is None:
                    raise UnitNotFound(f"Unit {unit.unit_id} not found")
                raise UnitPersistenceError(
                    f"Update failed for {unit.unit_id} - concurrent modification"
                )

            current.state = unit.state
            current.queued_at = unit.queued_at
            current.claimed_at = unit.claimed_at
            current.started_at = unit.started_at
            current.finished_at = unit.finished_at
            current.lease_owner = unit.lease_owner
            current.lease_expires_at = unit.lease_expires_at
            current.output = unit.output
            current.error_message = unit.error_message
            current.version = unit.version

            session.commit()
            logger.debug(f"[postgres] update {unit.unit_id} -> {unit.state.value}")

        except UnitPersistenceError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Update failed: {e}") from e
        finally:
            session.close()

    # -------------------------
    # CLAIM
    # -------------------------

    def try_claim(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        session = self._get_session()
        try:
            now = utcnow()

            unit_orm = session.query(DispatchUnitORM).filter(
                DispatchUnitORM.unit_id == unit_id
            ).with_for_update().first()

            if not unit_orm or unit_orm.state != UnitState.QUEUED:
                return False

            unit_orm.state = UnitState.CLAIMED
            unit_orm.lease_owner = worker_id
            unit_orm.lease_expires_at = now + timedelta(seconds=lease_seconds)
            unit_orm.claimed_at = now
            unit_orm.version += 1

            session.commit()
            logger.debug(f"[postgres] try_claim {unit_id} by {worker_id} -> True")
            return True

        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"[postgres] try_claim {unit_id} by {worker_id} -> False (error: {e})")
            return False
        finally:
            session.close()

    # -------------------------
    # RENEW LEASE
    # -------------------------

    def renew_lease(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        session = self._get_session()
        try:
            now = utcnow()

            unit_orm = session.query(DispatchUnitORM).filter(
                DispatchUnitORM.unit_id == unit_id
            ).with_for_update().first()

            if not unit_orm or unit_orm.lease_owner != worker_id:
                return False
            if not unit_orm.lease_expires_at or unit_orm.lease_expires_at <= now:
                return False

            unit_orm.lease_expires_at = now + timedelta(seconds=lease_seconds)
            unit_orm.version += 1

            session.commit()
            return True

        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Failed to renew lease: {e}") from e
        finally:
            session.close()


# ============================================
# Lock Repository
# ============================================

class PostgresLockRepository(LockRepository):
    """
    Lock rows keyed by lock key.

    A free or expired row is taken over under a row lock; a concurrent first
    insert of the same key loses on the primary key.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock

    def _get_session(self) -> Session:
        return self._session_factory()

    def acquire(self, key: str, owner: str, ttl_seconds: int) -> bool:
        session = self._get_session()
        try:
            now = self._clock()

            row = session.query(SchedulerLockORM).filter(
                SchedulerLockORM.lock_key == key
            ).with_for_update().first()

            if row is None:
                session.add(SchedulerLockORM(lock_key=key, owner=owner, expires_at=now + ttl_seconds))
            elif row.expires_at > now:
                session.rollback()
                return False
            else:
                row.owner = owner
                row.expires_at = now + ttl_seconds

            session.commit()
            logger.debug(f"[postgres] lock {key} -> {owner}")
            return True

        except IntegrityError:
            session.rollback()
            return False
        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Failed to acquire lock {key}: {e}") from e
        finally:
            session.close()

    def release(self, key: str, owner: str) -> bool:
        session = self._get_session()
        try:
            deleted = session.query(SchedulerLockORM).filter(
                and_(
                    SchedulerLockORM.lock_key == key,
                    SchedulerLockORM.owner == owner,
                )
            ).delete(synchronize_session=False)
            session.commit()
            return deleted > 0
        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Failed to release lock {key}: {e}") from e
        finally:
            session.close()

    def renew(self, key: str, owner: str, ttl_seconds: int) -> bool:
        session = self._get_session()
        try:
            renewed = session.query(SchedulerLockORM).filter(
                and_(
                    SchedulerLockORM.lock_key == key,
                    SchedulerLockORM.owner == owner,
                )
            ).update(
                {SchedulerLockORM.expires_at: self._clock() + ttl_seconds},
                synchronize_session=False,
            )
            session.commit()
            return renewed > 0
        except SQLAlchemyError as e:
            session.rollback()
            raise UnitPersistenceError(f"Failed to renew lock {key}: {e}") from e
        finally:
            session.close()

    def holder(self, key: str) -> Optional[str]:
        session = self._get_session()
        try:
            row = session.get(SchedulerLockORM, key)
            if row is not None and row.expires_at > self._clock():
                return row.owner
            return None
        finally:
            session.close()
