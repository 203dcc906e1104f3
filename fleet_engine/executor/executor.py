# fleet_engine/executor/executor.py
"""Executor - claims dispatch units and runs them on their hosts."""

import threading
import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fleet_engine.executor.config import ExecutorConfig
from fleet_engine.executor.remote_executor import RemoteExecutor
from fleet_engine.executor.slots import SlotManager
from fleet_engine.core.errors import (
    ConfigurationError,
    RemoteExecutionError,
    UnitInvalidStateError,
    UnitLeaseError,
    UnitPersistenceError,
)
from fleet_engine.core.models import DispatchUnit, UnitState, utcnow
from fleet_engine.core.repository import FleetRecords, LockRepository, UnitRepository
from fleet_engine.core.service import UnitService
from fleet_engine.pipeline.sequence import CommandSequence

logger = logging.getLogger(__name__)

REAP_SCAN_LIMIT = 100


class Executor:
    """
    Executor - claims queued units and runs them via the Remote Executor.

    Every unit ends COMPLETED or FAILED with a status-changed event, and its
    single-execution lock is renewed while it runs and released whatever the
    outcome. A unit whose lock was taken over before it started is CANCELLED;
    a unit whose worker vanished is failed by the next poll of any executor.
    """

    def __init__(
        self,
        *,
        config: ExecutorConfig,
        service: UnitService,
        repository: UnitRepository,
        records: FleetRecords,
        lock_repository: LockRepository,
        remote_executor: Optional[RemoteExecutor] = None,
    ):
        self.executor_id = config.worker_id
        self.config = config
        self.service = service
        self.repo = repository
        self.records = records
        self.locks = lock_repository

        self.slots = SlotManager(config.max_slots)
        self._stop_event = threading.Event()
        self._thread = None

        self.remote_executor = remote_executor or RemoteExecutor(timeout=config.agent_timeout_seconds)

        # Track running units: {unit_id: thread}
        self._running: Dict[UUID, threading.Thread] = {}
        # Locks confirmed for running units: {unit_id: (key, token)}
        self._held_locks: Dict[UUID, Tuple[str, str]] = {}

    def start(self):
        """Start executor main loop."""
        logger.info(f"[executor {self.executor_id}] 🚀 Starting executor")
        logger.info(f"[executor] Max slots: {self.slots.total_slots()}")
        logger.info(f"[executor] Poll interval: {self.config.poll_interval_seconds}s")
        logger.info(f"[executor] Lease duration: {self.config.lease_seconds}s")

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def stop(self):
        """Stop executor and wait for in-flight units."""
        logger.info(f"[executor {self.executor_id}] Stopping executor")
        self._stop_event.set()
        if self._thread:
            self._thread.join()
        self.wait_for_running()

    def _run_loop(self):
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"[executor] Error in main loop: {e}", exc_info=True)

            self._stop_event.wait(self.config.poll_interval_seconds)

    # -------------------------
    # POLL
    # -------------------------

    def poll_once(self) -> List[UUID]:
        """
        Reap abandoned units, renew leases and locks, then claim as many
        queued units as there are free slots.

        Returns:
            IDs of units started in this poll
        """
        self.reap_expired_units()
        self._renew_running_leases()

        free = self.slots.free_slots()
        if free == 0:
            return []

        started = []
        for unit in self.repo.list_by_state(state=UnitState.QUEUED, limit=free):
            if self._claim_and_start(unit):
                started.append(unit.unit_id)
        return started

    def wait_for_running(self, timeout: Optional[float] = None) -> None:
        for thread in list(self._running.values()):
            thread.join(timeout)

    def _renew_running_leases(self):
        for unit_id in list(self._running.keys()):
            try:
                self.service.renew_unit_lease(
                    unit_id=unit_id,
                    worker_id=self.executor_id,
                    lease_seconds=self.config.lease_seconds,
                )
            except UnitLeaseError:
                logger.warning(f"[executor] Lost lease for {unit_id}")
            except Exception as e:
                logger.error(f"[executor] Error renewing lease for {unit_id}: {e}")

            held = self._held_locks.get(unit_id)
            if held is None:
                continue
            try:
                if not self.locks.renew(held[0], held[1], self.config.lock_ttl_seconds):
                    logger.warning(f"[executor] [{unit_id}] Lock {held[0]} was taken over while running")
            except Exception as e:
                logger.error(f"[executor] Error renewing lock {held[0]}: {e}")

    # -------------------------
    # REAP
    # -------------------------

    def reap_expired_units(self) -> List[UUID]:
        """
        Fail CLAIMED/STARTED units whose lease ran out (their worker died or
        gave up) so that they still end with a status-changed event.

        Returns:
            IDs of units failed by this pass
        """
        reaped = []
        for state in (UnitState.CLAIMED, UnitState.STARTED):
            for unit in self.service.list_units(state, limit=REAP_SCAN_LIMIT):
                if unit.unit_id in self._running:
                    continue
                if unit.lease_expires_at and unit.lease_expires_at > utcnow():
                    continue
                try:
                    self.service.expire_unit(
                        unit.unit_id,
                        reason=f"Lease of {unit.lease_owner} expired while {unit.state.value}",
                    )
                except (UnitLeaseError, UnitInvalidStateError, UnitPersistenceError) as e:
                    # Renewed or finished concurrently
                    logger.debug(f"[executor] [{unit.unit_id}] Not reaped: {e}")
                    continue

                logger.warning(f"[executor] [{unit.unit_id}] Reaped {unit.duty.value} unit with expired lease")
                self._release_lock(unit)
                reaped.append(unit.unit_id)
        return reaped

    # -------------------------
    # CLAIM
    # -------------------------

    def _claim_and_start(self, unit: DispatchUnit) -> bool:
        slot = self.slots.bind_free_slot(unit.unit_id)
        if slot is None:
            return False

        claimed = self.service.claim_unit(
            unit_id=unit.unit_id,
            worker_id=self.executor_id,
            lease_seconds=self.config.lease_seconds,
        )
        if not claimed:
            logger.info(f"[executor] Failed to claim {unit.unit_id}")
            self.slots.release(unit.unit_id)
            return False

        if not self._confirm_lock(unit):
            self.slots.release(unit.unit_id)
            return False

        try:
            self.service.start_unit(unit.unit_id, worker_id=self.executor_id)
        except Exception as e:
            logger.error(f"[executor] Error starting {unit.unit_id}: {e}")
            self._fail(unit.unit_id, f"Could not start: {e}", None)
            self._release_lock(unit)
            self._cleanup(unit.unit_id)
            return False

        thread = threading.Thread(
            target=self.process_unit,
            args=(unit.unit_id,),
            daemon=True,
        )
        self._running[unit.unit_id] = thread
        thread.start()

        logger.info(f"[executor] ✅ Started {unit.duty.value} unit {unit.unit_id} in slot {slot.slot_id}")
        return True

    def _confirm_lock(self, unit: DispatchUnit) -> bool:
        """Renew the unit's lock; a unit whose lock went to a newer unit is cancelled."""
        if not unit.lock_key or not unit.lock_owner:
            return True

        try:
            if self.locks.renew(unit.lock_key, unit.lock_owner, self.config.lock_ttl_seconds):
                self._held_locks[unit.unit_id] = (unit.lock_key, unit.lock_owner)
                return True
            reason = f"Lock {unit.lock_key} now belongs to a newer unit"
        except Exception as e:
            logger.error(f"[executor] [{unit.unit_id}] Could not renew lock {unit.lock_key}: {e}")
            reason = f"Could not renew lock {unit.lock_key}: {e}"

        logger.warning(f"[executor] [{unit.unit_id}] Cancelled: {reason}")
        try:
            self.service.cancel_unit(unit.unit_id, worker_id=self.executor_id, reason=reason)
        except Exception as e:
            logger.error(f"[executor] [{unit.unit_id}] Failed to cancel: {e}")
        return False

    # -------------------------
    # RUN
    # -------------------------

    def process_unit(self, unit_id: UUID) -> None:
        """Run one STARTED unit to completion (slot thread body)."""
        unit = self.repo.get(unit_id)
        if unit is None:
            logger.error(f"[executor] [{unit_id}] Unit not found")
            self._cleanup(unit_id)
            return

        try:
            logger.info(f"[executor] [{unit_id}] Running {unit.duty.value} for {unit.target_id}")

            server = self.records.get_server(unit.server_id)
            if server is None:
                raise ConfigurationError(f"Server {unit.server_id} is not registered")

            sequence = CommandSequence.from_payload(unit.payload)
            message = self.remote_executor.execute(sequence, server, unit_id)

            self.service.complete_unit(
                unit_id=unit_id,
                worker_id=self.executor_id,
                output=message.output,
            )
            logger.info(f"[executor] [{unit_id}] ✅ Completed successfully")

        except RemoteExecutionError as e:
            logger.error(f"[executor] [{unit_id}] ❌ Failed: {e}")
            self._fail(unit_id, str(e), e.output)

        except Exception as e:
            logger.error(f"[executor] [{unit_id}] ❌ Failed: {e}", exc_info=True)
            self._fail(unit_id, str(e), None)

        finally:
            self._release_lock(unit)
            self._cleanup(unit_id)

    def _fail(self, unit_id: UUID, reason: str, output: Optional[str]) -> None:
        try:
            self.service.fail_unit(
                unit_id=unit_id,
                worker_id=self.executor_id,
                reason=reason,
                output=output,
            )
        except Exception as fail_error:
            logger.error(f"[executor] [{unit_id}] Failed to mark as failed: {fail_error}")

    def _release_lock(self, unit: DispatchUnit) -> None:
        if not unit.lock_key or not unit.lock_owner:
            return
        try:
            self.locks.release(unit.lock_key, unit.lock_owner)
        except Exception as e:
            logger.error(f"[executor] [{unit.unit_id}] Could not release lock {unit.lock_key}: {e}")

    def _cleanup(self, unit_id: UUID) -> None:
        self.slots.release(unit_id)
        self._running.pop(unit_id, None)
        self._held_locks.pop(unit_id, None)
