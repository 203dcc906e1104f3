"""Event models for the fleet engine."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID


@dataclass
class UnitEvent:
    """Unit lifecycle event (registered, queued, claimed, started)."""

    event_type: str
    unit_id: UUID
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def unit_registered(unit):
        return UnitEvent(
            event_type="unit.registered",
            unit_id=unit.unit_id,
            timestamp=datetime.now(timezone.utc),
            metadata={
                "duty": unit.duty.value,
                "target_id": unit.target_id,
                "server_id": unit.server_id,
            }
        )

    @staticmethod
    def unit_queued(unit):
        return UnitEvent(
            event_type="unit.queued",
            unit_id=unit.unit_id,
            timestamp=datetime.now(timezone.utc),
            metadata={
                "state": unit.state.value,
            }
        )

    @staticmethod
    def unit_claimed(unit):
        return UnitEvent(
            event_type="unit.claimed",
            unit_id=unit.unit_id,
            timestamp=datetime.now(timezone.utc),
            metadata={
                "lease_owner": unit.lease_owner,
                "lease_expires_at": unit.lease_expires_at.isoformat() if unit.lease_expires_at else None,
            }
        )

    @staticmethod
    def unit_started(unit):
        return UnitEvent(
            event_type="unit.started",
            unit_id=unit.unit_id,
            timestamp=datetime.now(timezone.utc),
            metadata={
                "lease_owner": unit.lease_owner,
                "started_at": unit.started_at.isoformat() if unit.started_at else None,
            }
        )


@dataclass
class StatusChangedEvent:
    """
    Completion message for a dispatched unit.

    ``event_kind`` names the channel the dashboard listens on
    (e.g. ``DatabaseStatusChanged``); ``correlation_id`` is the unit id.
    """

    event_kind: str
    correlation_id: UUID
    target_id: str
    state: str  # "completed" | "failed" | "cancelled"
    output: str
    occurred_at: datetime
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == "completed"

    @staticmethod
    def from_unit(unit) -> "StatusChangedEvent":
        return StatusChangedEvent(
            event_kind=unit.event_kind,
            correlation_id=unit.unit_id,
            target_id=unit.target_id,
            state=unit.state.value.lower(),
            output=unit.output or "",
            occurred_at=unit.finished_at or datetime.now(timezone.utc),
            error_message=unit.error_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["correlation_id"] = str(self.correlation_id)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data
