"""Unit service - lifecycle of dispatch units."""

from typing import List, Optional
from uuid import UUID

from fleet_engine.core.errors import (
    UnitInvalidStateError,
    UnitLeaseError,
    UnitNotFound,
)
from fleet_engine.core.events_model import StatusChangedEvent, UnitEvent
from fleet_engine.core.models import DispatchUnit, UnitState, utcnow


class UnitService:
    """Unit service with lease management."""

    def __init__(self, repository, event_emitters):
        self._repo = repository
        self._emitters = event_emitters

    # -------------------------
    # REGISTER + QUEUE
    # -------------------------

    def register_unit(self, unit: DispatchUnit) -> None:
        """Register a new unit."""
        self._repo.create(unit)
        self._emit([UnitEvent.unit_registered(unit)])

    def queue_unit(self, unit_id: UUID) -> None:
        """Transition unit from CREATED to QUEUED."""
        unit = self.require_unit(unit_id)

        if unit.state != UnitState.CREATED:
            raise UnitInvalidStateError(
                f"Cannot queue unit in {unit.state.value} state"
            )

        unit.queue()
        self._repo.update(unit)
        self._emit([UnitEvent.unit_queued(unit)])

    def submit(self, unit: DispatchUnit) -> DispatchUnit:
        """Register and queue in one step."""
        self.register_unit(unit)
        self.queue_unit(unit.unit_id)
        return unit

    # -------------------------
    # CLAIM (atomic at repository level)
    # -------------------------

    def claim_unit(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        """
        Atomically claim a queued unit.

        Returns True if claimed, False if someone else got it first.
        """
        claimed = self._repo.try_claim(
            unit_id=unit_id,
            worker_id=worker_id,
            lease_seconds=lease_seconds,
        )

        if claimed:
            unit = self.require_unit(unit_id)
            self._emit([UnitEvent.unit_claimed(unit)])

        return claimed

    # -------------------------
    # START
    # -------------------------

    def start_unit(self, unit_id: UUID, worker_id: str) -> DispatchUnit:
        unit = self.require_unit(unit_id)
        self._assert_valid_lease(unit, worker_id)

        if unit.state != UnitState.CLAIMED:
            raise UnitInvalidStateError(
                f"Unit not in CLAIMED state (current: {unit.state.value})"
            )

        unit.start()
        self._repo.update(unit)
        self._emit([UnitEvent.unit_started(unit)])
        return unit

    # -------------------------
    # COMPLETE / FAIL
    # -------------------------

    def complete_unit(self, unit_id: UUID, worker_id: str, output: Optional[str] = None) -> DispatchUnit:
        unit = self.require_unit(unit_id)
        self._assert_valid_lease(unit, worker_id)

        if unit.state != UnitState.STARTED:
            raise UnitInvalidStateError(
                f"Unit not in STARTED state (current: {unit.state.value})"
            )

        unit.complete(output=output)
        self._repo.update(unit)
        self._emit([StatusChangedEvent.from_unit(unit)])
        return unit

    def fail_unit(
        self,
        unit_id: UUID,
        worker_id: str,
        reason: str,
        output: Optional[str] = None,
    ) -> DispatchUnit:
        unit = self.require_unit(unit_id)
        self._assert_valid_lease(unit, worker_id)

        try:
            unit.fail(reason, output=output)
        except ValueError as e:
            raise UnitInvalidStateError(str(e)) from e

        self._repo.update(unit)
        self._emit([StatusChangedEvent.from_unit(unit)])
        return unit

    def cancel_unit(self, unit_id: UUID, worker_id: str, reason: str) -> DispatchUnit:
        """Cancel a claimed unit that must not run (its lock went to a newer unit)."""
        unit = self.require_unit(unit_id)
        self._assert_valid_lease(unit, worker_id)

        try:
            unit.cancel()
        except ValueError as e:
            raise UnitInvalidStateError(str(e)) from e

        unit.error_message = reason
        self._repo.update(unit)
        self._emit([StatusChangedEvent.from_unit(unit)])
        return unit

    def expire_unit(self, unit_id: UUID, reason: str) -> DispatchUnit:
        """
        Fail a CLAIMED or STARTED unit whose worker stopped renewing its lease.

        Raises:
            UnitInvalidStateError: If the unit is not in flight
            UnitLeaseError: If the lease is still live
        """
        unit = self.require_unit(unit_id)

        if unit.state not in (UnitState.CLAIMED, UnitState.STARTED):
            raise UnitInvalidStateError(
                f"Unit not in flight (current: {unit.state.value})"
            )
        if unit.lease_expires_at and unit.lease_expires_at > utcnow():
            raise UnitLeaseError(
                f"Unit lease held by {unit.lease_owner} until {unit.lease_expires_at}"
            )

        unit.fail(reason)
        self._repo.update(unit)
        self._emit([StatusChangedEvent.from_unit(unit)])
        return unit

    # -------------------------
    # RENEW LEASE
    # -------------------------

    def renew_unit_lease(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> None:
        """Renew unit lease (heartbeat)."""
        unit = self.require_unit(unit_id)
        self._assert_valid_lease(unit, worker_id)

        if not self._repo.renew_lease(
            unit_id=unit_id,
            worker_id=worker_id,
            lease_seconds=lease_seconds,
        ):
            raise UnitLeaseError(f"Could not renew lease of {unit_id}")

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def list_units(self, state: UnitState, limit: int = 100) -> List[DispatchUnit]:
        return list(self._repo.list_by_state(state=state, limit=limit))

    def get_unit(self, unit_id: UUID) -> Optional[DispatchUnit]:
        return self._repo.get(unit_id)

    def require_unit(self, unit_id: UUID) -> DispatchUnit:
        unit = self._repo.get(unit_id)
        if not unit:
            raise UnitNotFound(f"Unit {unit_id} not found")
        return unit

    def _assert_valid_lease(self, unit: DispatchUnit, worker_id: str) -> None:
        if unit.lease_owner != worker_id:
            raise UnitLeaseError(
                f"Unit leased by {unit.lease_owner}, not {worker_id}"
            )

        if not unit.is_lease_valid(worker_id):
            raise UnitLeaseError(
                f"Unit lease expired at {unit.lease_expires_at}"
            )

    def _emit(self, events) -> None:
        self._emitters.emit(events)
