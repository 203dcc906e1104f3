# fleet_engine/scheduler/fleet_scheduler.py
"""
Fleet scheduler.

One tick enumerates every duty, heals orphaned job records, and
registers + queues one dispatch unit per due (duty, target) pair under
a fleet-wide single-execution lock. Units run later on the executors.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from fleet_engine.config import InstanceSnapshot
from fleet_engine.core.errors import OrphanedJobError, SchedulingConflictError
from fleet_engine.core.models import DispatchUnit, UnitState
from fleet_engine.core.repository import FleetRecords, LockRepository
from fleet_engine.core.service import UnitService
from fleet_engine.scheduler.cron import is_due
from fleet_engine.scheduler.duties import DEFAULT_DUTIES, DutyPlan, PlannedUnit
from fleet_engine.scheduler.locks import SingleExecutionLock, lock_key

logger = logging.getLogger(__name__)

PENDING_SCAN_LIMIT = 1000

Duty = Callable[[FleetRecords, InstanceSnapshot, datetime], DutyPlan]


@dataclass
class TickReport:
    """What one tick did."""
    tick_at: datetime
    dispatched: List[DispatchUnit] = field(default_factory=list)
    skipped_locked: List[str] = field(default_factory=list)
    orphans_deleted: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    not_due: int = 0
    locks_renewed: int = 0


class FleetScheduler:
    """
    Periodic control loop body.

    Several schedulers may tick concurrently against the same records and
    lock repository; the lock guarantees at most one in-flight unit per
    (duty, target).
    """

    def __init__(
        self,
        records: FleetRecords,
        unit_service: UnitService,
        lock_repository: LockRepository,
        owner: str,
        lock_ttl_seconds: int = 3600,
        duties: Optional[Sequence[Duty]] = None,
    ):
        self._records = records
        self._units = unit_service
        self._lock = SingleExecutionLock(lock_repository, owner, lock_ttl_seconds)
        self._duties = tuple(duties) if duties is not None else DEFAULT_DUTIES
        self.owner = owner

    def tick(self, now: datetime, snapshot: InstanceSnapshot) -> TickReport:
        """
        Run one scheduling tick.

        Args:
            now: Tick time; cron expressions are matched against its minute
            snapshot: Instance configuration captured for this tick

        Returns:
            TickReport
        """
        report = TickReport(tick_at=now)
        plans: List[DutyPlan] = []

        # 0. Units still waiting for an executor keep their identity locked.
        self._renew_pending_locks(report)

        # 1. Enumerate. A failing duty never stops the others.
        for duty in self._duties:
            try:
                plan = duty(self._records, snapshot, now)
            except Exception:
                name = getattr(duty, "__name__", repr(duty))
                logger.error(f"[scheduler] Duty {name} failed", exc_info=True)
                report.failures.append(name)
                continue
            report.failures.extend(plan.failures)
            plans.append(plan)

        # 2. Self-heal, only after every duty has read the records.
        for plan in plans:
            for orphan in plan.orphans:
                self._delete_orphan(orphan, report)

        # 3. Dispatch.
        for plan in plans:
            for planned in plan.units:
                self._dispatch(planned, now, report)

        logger.info(
            f"[scheduler] Tick {now.isoformat()}: {len(report.dispatched)} dispatched, "
            f"{len(report.skipped_locked)} locked, {len(report.orphans_deleted)} orphans removed, "
            f"{len(report.failures)} failures"
        )
        return report

    def _renew_pending_locks(self, report: TickReport) -> None:
        try:
            pending = self._units.list_units(UnitState.QUEUED, limit=PENDING_SCAN_LIMIT)
        except Exception:
            logger.error("[scheduler] Could not list queued units", exc_info=True)
            report.failures.append("queued-units")
            return

        for unit in pending:
            if unit.lock_key and unit.lock_owner and self._lock.renew(unit.lock_key, unit.lock_owner):
                report.locks_renewed += 1

    def _delete_orphan(self, orphan: OrphanedJobError, report: TickReport) -> None:
        try:
            if orphan.job_kind == "backup":
                deleted = self._records.delete_scheduled_backup(orphan.job_id)
            else:
                deleted = self._records.delete_scheduled_task(orphan.job_id)
        except Exception:
            logger.error(f"[scheduler] Could not delete orphaned {orphan.job_kind} {orphan.job_id}", exc_info=True)
            report.failures.append(orphan.job_id)
            return

        if deleted:
            logger.warning(f"[scheduler] Deleted orphaned {orphan.job_kind} {orphan.job_id}: {orphan}")
            report.orphans_deleted.append(orphan.job_id)

    def _dispatch(self, planned: PlannedUnit, now: datetime, report: TickReport) -> None:
        key = lock_key(planned.duty, planned.target_id)

        try:
            if not is_due(planned.frequency, now):
                report.not_due += 1
                return
        except Exception:
            logger.error(f"[scheduler] Bad frequency {planned.frequency!r} for {key}", exc_info=True)
            report.failures.append(key)
            return

        try:
            token = self._lock.acquire(key)
        except SchedulingConflictError as e:
            logger.info(f"[scheduler] Skipping {key}: {e}")
            report.skipped_locked.append(key)
            return

        payload = planned.sequence.to_payload()
        payload["frequency"] = planned.frequency

        unit = DispatchUnit.new(
            duty=planned.duty,
            target_id=planned.target_id,
            server_id=planned.server_id,
            payload=payload,
            event_kind=planned.event_kind,
            lock_key=key,
            lock_owner=token,
        )

        try:
            self._units.submit(unit)
        except Exception:
            self._lock.release(key, token)
            logger.error(f"[scheduler] Could not submit {key}", exc_info=True)
            report.failures.append(key)
            return

        logger.debug(f"[scheduler] Dispatched {key} as {unit.unit_id}")
        report.dispatched.append(unit)
