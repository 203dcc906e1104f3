#fleet_engine\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, DateTime, JSON, Enum as SQLEnum, Index, Text, Float
)
from sqlalchemy.dialects.postgresql import UUID

from fleet_engine.core.models import DutyKind, UnitState, utcnow
from fleet_engine.infrastructure.postgres.database import Base


class DispatchUnitORM(Base):
    """
    Dispatch units - the work queue between schedulers and executors.

    Indexes:
    - Primary key on unit_id
    - Partial index on (state, created_at) for finding queued work
    - Index on lock_key for tracing a lock back to its unit
    """

    __tablename__ = "dispatch_units"

    # Primary key
    unit_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False
    )

    # Identity
    duty = Column(SQLEnum(DutyKind, name="duty_kind"), nullable=False, index=True)
    target_id = Column(String(255), nullable=False, index=True)
    server_id = Column(Integer, nullable=False)

    # Single-execution lock
    lock_key = Column(String(512), nullable=True, index=True)
    lock_owner = Column(String(255), nullable=True)

    # Work
    payload = Column(JSON, nullable=False)
    event_kind = Column(String(100), nullable=False)

    # State
    state = Column(
        SQLEnum(UnitState, name="unit_state"),
        nullable=False,
        default=UnitState.CREATED,
        index=True
    )

    # Lifecycle timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    queued_at = Column(DateTime(timezone=True), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Lease management
    lease_owner = Column(String(255), nullable=True, index=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Results
    output = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index(
            'ix_dispatch_units_queued_lookup',
            'state',
            'created_at',
            postgresql_where=(state == UnitState.QUEUED.value)
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DispatchUnitORM(unit_id={self.unit_id}, "
            f"duty={self.duty.value}, "
            f"state={self.state.value})>"
        )


class SchedulerLockORM(Base):
    """
    Single-execution locks shared by every controller.

    Expiry is an epoch timestamp so that comparisons behave the same on
    every SQL backend.
    """

    __tablename__ = "scheduler_locks"

    lock_key = Column(String(512), primary_key=True)
    owner = Column(String(255), nullable=False)
    expires_at = Column(Float, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<SchedulerLockORM(lock_key={self.lock_key}, owner={self.owner})>"
