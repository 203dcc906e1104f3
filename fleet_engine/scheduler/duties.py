# fleet_engine/scheduler/duties.py
"""
Periodic duties.

Each duty enumerates its targets for one tick and returns a DutyPlan:
the units it would dispatch (with their resolved cron expression) and the
orphaned job records it found. Duties never mutate records; the scheduler
deletes orphans after every duty has enumerated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from fleet_engine.config import InstanceSnapshot
from fleet_engine.core.errors import ConfigurationError, OrphanedJobError
from fleet_engine.core.models import DutyKind
from fleet_engine.core.repository import FleetRecords
from fleet_engine.domain.models import ScheduledTask, Server
from fleet_engine.pipeline.sequence import CommandSequence
from fleet_engine.scheduler import maintenance
from fleet_engine.scheduler.cron import EVERY_MINUTE, EVERY_TEN_MINUTES, resolve_frequency

logger = logging.getLogger(__name__)


# The control plane's own host.
OPERATOR_SERVER_ID = 0


# ============================================
# PLAN TYPES
# ============================================

@dataclass
class PlannedUnit:
    """One (duty, target) pair ready to be checked against the tick time."""
    duty: DutyKind
    target_id: str
    server_id: int
    frequency: str
    sequence: CommandSequence
    event_kind: str


@dataclass
class DutyPlan:
    duty: str
    units: List[PlannedUnit] = field(default_factory=list)
    orphans: List[OrphanedJobError] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


# ============================================
# SERVER ELIGIBILITY
# ============================================

def is_server_eligible(server: Server, snapshot: InstanceSnapshot) -> bool:
    """
    Usable, reachable and not the placeholder address. On a multi-tenant
    deployment the owning team must also be billable, unless billing checks
    are skipped; the operator team's servers are always included.
    """
    if not (server.settings.is_usable and server.settings.is_reachable):
        return False
    if server.ip == snapshot.sentinel_ip:
        return False
    if not snapshot.is_cloud or snapshot.skip_billing_checks:
        return True

    team = server.team
    if team is None:
        return False
    if team.team_id == snapshot.operator_team_id:
        return True
    return team.subscription is not None and team.subscription.is_billable()


def eligible_servers(records: FleetRecords, snapshot: InstanceSnapshot) -> List[Server]:
    return [s for s in records.list_servers() if is_server_eligible(s, snapshot)]


# ============================================
# DUTIES
# ============================================

def server_status_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    """One host status unit per eligible server, whatever its role."""
    plan = DutyPlan(duty="server_status")

    for server in eligible_servers(records, snapshot):
        plan.units.append(PlannedUnit(
            duty=DutyKind.SERVER_STATUS,
            target_id=server.uuid,
            server_id=server.server_id,
            frequency=EVERY_MINUTE,
            sequence=maintenance.server_status_sequence(server),
            event_kind="ServerStatusChanged",
        ))

    return plan


def container_status_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    """
    Container status for eligible container servers, plus a log drain check
    where enabled. Swarm workers and build servers run no managed containers.
    """
    plan = DutyPlan(duty="container_status")

    for server in eligible_servers(records, snapshot):
        if not server.is_container_server():
            continue

        plan.units.append(PlannedUnit(
            duty=DutyKind.CONTAINER_STATUS,
            target_id=server.uuid,
            server_id=server.server_id,
            frequency=EVERY_MINUTE,
            sequence=maintenance.container_status_sequence(server),
            event_kind="ContainerStatusChanged",
        ))

        if server.is_log_drain_enabled():
            plan.units.append(PlannedUnit(
                duty=DutyKind.LOG_DRAIN_CHECK,
                target_id=server.uuid,
                server_id=server.server_id,
                frequency=EVERY_MINUTE,
                sequence=maintenance.log_drain_check_sequence(server),
                event_kind="LogDrainStatusChanged",
            ))

    return plan


def pre_pull_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    plan = DutyPlan(duty="pre_pull")

    for server in eligible_servers(records, snapshot):
        plan.units.append(PlannedUnit(
            duty=DutyKind.PRE_PULL,
            target_id=server.uuid,
            server_id=server.server_id,
            frequency=EVERY_TEN_MINUTES,
            sequence=maintenance.pre_pull_sequence(server, snapshot),
            event_kind="HelperImagePulled",
        ))

    return plan


def backup_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    """Disabled backups are skipped before their database is even looked up."""
    plan = DutyPlan(duty="backup")

    for backup in records.list_scheduled_backups():
        try:
            if not backup.enabled:
                logger.debug(f"[scheduler] Backup {backup.backup_id} disabled, skipping")
                continue

            database = records.get_database(backup.database_id)
            if database is None:
                plan.orphans.append(OrphanedJobError("backup", backup.backup_id))
                continue

            plan.units.append(PlannedUnit(
                duty=DutyKind.BACKUP,
                target_id=backup.backup_id,
                server_id=database.server.server_id,
                frequency=resolve_frequency(backup.frequency),
                sequence=maintenance.backup_sequence(database, snapshot, now),
                event_kind="DatabaseBackupStatusChanged",
            ))
        except Exception:
            logger.error(f"[scheduler] Could not plan backup {backup.backup_id}", exc_info=True)
            plan.failures.append(backup.backup_id)

    return plan


def task_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    """Orphaned tasks are found before the enabled flag is consulted."""
    plan = DutyPlan(duty="task")

    for task in records.list_scheduled_tasks():
        try:
            target = records.get_application(task.application_id) or records.get_service(task.service_id)
            if target is None:
                plan.orphans.append(OrphanedJobError("task", task.task_id))
                continue

            if not task.enabled:
                logger.debug(f"[scheduler] Task {task.task_id} disabled, skipping")
                continue

            plan.units.append(PlannedUnit(
                duty=DutyKind.TASK,
                target_id=task.task_id,
                server_id=target.server_id,
                frequency=resolve_frequency(task.frequency),
                sequence=maintenance.task_sequence(task, _task_container(task, target.uuid)),
                event_kind="ScheduledTaskDone",
            ))
        except Exception:
            logger.error(f"[scheduler] Could not plan task {task.task_id}", exc_info=True)
            plan.failures.append(task.task_id)

    return plan


def auto_update_duty(records: FleetRecords, snapshot: InstanceSnapshot, now: datetime) -> DutyPlan:
    """Single-tenant, non-development instances only."""
    plan = DutyPlan(duty="auto_update")

    if snapshot.is_cloud or snapshot.is_dev or not snapshot.is_auto_update_enabled:
        return plan

    server = records.get_server(OPERATOR_SERVER_ID)
    if server is None:
        raise ConfigurationError(f"operator server {OPERATOR_SERVER_ID} is not registered")

    plan.units.append(PlannedUnit(
        duty=DutyKind.AUTO_UPDATE,
        target_id="instance",
        server_id=server.server_id,
        frequency=EVERY_TEN_MINUTES,
        sequence=maintenance.auto_update_sequence(server, snapshot),
        event_kind="InstanceUpdateStatusChanged",
    ))
    return plan


DEFAULT_DUTIES = (
    server_status_duty,
    container_status_duty,
    pre_pull_duty,
    backup_duty,
    task_duty,
    auto_update_duty,
)


def _task_container(task: ScheduledTask, target_uuid: str) -> str:
    return task.container or target_uuid
