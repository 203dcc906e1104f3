"""Dispatch unit model - one (duty, target) piece of work."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4


class DutyKind(Enum):
    """Category of work dispatched to the executors."""

    SERVER_STATUS = "server_status"
    CONTAINER_STATUS = "container_status"
    LOG_DRAIN_CHECK = "log_drain_check"
    PRE_PULL = "pre_pull"
    BACKUP = "backup"
    TASK = "task"
    AUTO_UPDATE = "auto_update"
    DEPLOY = "deploy"


class UnitState(Enum):
    """Unit state machine."""

    CREATED = "CREATED"
    QUEUED = "QUEUED"
    CLAIMED = "CLAIMED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = {UnitState.COMPLETED, UnitState.FAILED, UnitState.CANCELLED}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DispatchUnit:
    """Dispatch unit with state transitions. ``unit_id`` is the correlation id."""

    # Identity
    unit_id: UUID
    duty: DutyKind
    target_id: str
    server_id: int

    # Single-execution lock held while the unit is in flight
    lock_key: Optional[str] = None
    lock_owner: Optional[str] = None

    # Work
    payload: Dict[str, Any] = field(default_factory=dict)
    event_kind: str = "StatusChanged"

    # State
    state: UnitState = UnitState.CREATED

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=utcnow)
    queued_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Lease management
    lease_owner: Optional[str] = None
    lease_expires_at: Optional[datetime] = None

    # Results
    output: Optional[str] = None
    error_message: Optional[str] = None

    # Optimistic concurrency
    version: int = 0

    @classmethod
    def new(
        cls,
        *,
        duty: DutyKind,
        target_id: str,
        server_id: int,
        payload: Dict[str, Any],
        event_kind: str = "StatusChanged",
        lock_key: Optional[str] = None,
        lock_owner: Optional[str] = None,
    ) -> "DispatchUnit":
        return cls(
            unit_id=uuid4(),
            duty=duty,
            target_id=target_id,
            server_id=server_id,
            payload=payload,
            event_kind=event_kind,
            lock_key=lock_key,
            lock_owner=lock_owner,
        )

    # -------------------------
    # STATE TRANSITIONS
    # -------------------------

    def queue(self) -> None:
        """Transition from CREATED to QUEUED."""
        if self.state != UnitState.CREATED:
            raise ValueError(f"Cannot queue from {self.state.value} state")

        self.state = UnitState.QUEUED
        self.queued_at = utcnow()
        self.version += 1

    def claim(self, worker_id: str, lease_seconds: int) -> None:
        """Claim unit (QUEUED -> CLAIMED)."""
        if self.state != UnitState.QUEUED:
            raise ValueError(f"Cannot claim from {self.state.value} state")

        now = utcnow()
        self.state = UnitState.CLAIMED
        self.lease_owner = worker_id
        self.lease_expires_at = now + timedelta(seconds=lease_seconds)
        self.claimed_at = now
        self.version += 1

    def start(self) -> None:
        """Transition from CLAIMED to STARTED."""
        if self.state != UnitState.CLAIMED:
            raise ValueError(f"Cannot start from {self.state.value} state")

        self.state = UnitState.STARTED
        self.started_at = utcnow()
        self.version += 1

    def complete(self, output: Optional[str] = None) -> None:
        """Transition from STARTED to COMPLETED."""
        if self.state != UnitState.STARTED:
            raise ValueError(f"Cannot complete from {self.state.value} state")

        self.state = UnitState.COMPLETED
        self._finish()
        self.output = output

    def fail(self, error_message: str, output: Optional[str] = None) -> None:
        """Transition to FAILED state."""
        if self.state not in (UnitState.QUEUED, UnitState.CLAIMED, UnitState.STARTED):
            raise ValueError(f"Cannot fail from {self.state.value} state")

        self.state = UnitState.FAILED
        self._finish()
        self.error_message = error_message
        self.output = output

    def cancel(self) -> None:
        """Transition to CANCELLED state."""
        if self.state in TERMINAL_STATES:
            raise ValueError(f"Cannot cancel from {self.state.value} state")

        self.state = UnitState.CANCELLED
        self._finish()

    def renew_lease(self, worker_id: str, lease_seconds: int) -> None:
        """Renew lease expiration."""
        if self.lease_owner != worker_id:
            raise ValueError(f"Unit leased by {self.lease_owner}, not {worker_id}")

        if not self.lease_expires_at or self.lease_expires_at <= utcnow():
            raise ValueError("Lease already expired")

        self.lease_expires_at = utcnow() + timedelta(seconds=lease_seconds)
        self.version += 1

    def is_lease_valid(self, worker_id: str) -> bool:
        """Check if lease is valid for given worker."""
        if self.lease_owner != worker_id:
            return False

        if not self.lease_expires_at:
            return False

        return self.lease_expires_at > utcnow()

    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _finish(self) -> None:
        self.finished_at = utcnow()
        self.lease_owner = None
        self.lease_expires_at = None
        self.version += 1
