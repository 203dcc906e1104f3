# fleet_engine/infrastructure/memory/repository.py

import time
from datetime import timedelta
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from fleet_engine.core.errors import UnitAlreadyExists, UnitNotFound
from fleet_engine.core.models import DispatchUnit, UnitState, TERMINAL_STATES, utcnow
from fleet_engine.core.repository import FleetRecords, LockRepository, UnitRepository
from fleet_engine.domain.models import (
    EngineConfig,
    InstanceSettings,
    ScheduledBackup,
    ScheduledTask,
    Server,
    TaskTarget,
)


class InMemoryUnitRepository(UnitRepository):
    def __init__(self):
        self._store: Dict[UUID, DispatchUnit] = {}
        self._lock = Lock()

    def create(self, unit: DispatchUnit) -> None:
        with self._lock:
            if unit.unit_id in self._store:
                raise UnitAlreadyExists(f"Unit {unit.unit_id} already exists")
            self._store[unit.unit_id] = unit

    def get(self, unit_id: UUID) -> Optional[DispatchUnit]:
        return self._store.get(unit_id)

    def update(self, unit: DispatchUnit) -> None:
        with self._lock:
            if unit.unit_id not in self._store:
                raise UnitNotFound(f"Unit {unit.unit_id} not found")
            self._store[unit.unit_id] = unit

    def list_by_state(self, state: UnitState, limit: int = 100) -> Iterable[DispatchUnit]:
        results = []
        for unit in sorted(self._store.values(), key=lambda u: u.created_at):
            if unit.state == state:
                results.append(unit)
            if len(results) >= limit:
                break
        return results

    def try_claim(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        with self._lock:
            unit = self._store.get(unit_id)
            if not unit or unit.state != UnitState.QUEUED:
                return False
            unit.claim(worker_id, lease_seconds)
            return True

    def renew_lease(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        with self._lock:
            unit = self._store.get(unit_id)
            if not unit or unit.state in TERMINAL_STATES:
                return False
            if not unit.is_lease_valid(worker_id):
                return False
            unit.lease_expires_at = utcnow() + timedelta(seconds=lease_seconds)
            unit.version += 1
            return True


class InMemoryLockRepository(LockRepository):
    """Process-local locks; share one instance between schedulers to simulate a fleet."""

    def __init__(self, clock=time.time):
        self._locks: Dict[str, Tuple[str, float]] = {}
        self._lock = Lock()
        self._clock = clock

    def acquire(self, key: str, owner: str, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            current = self._locks.get(key)
            if current and current[1] > now:
                return False
            self._locks[key] = (owner, now + ttl_seconds)
            return True

    def release(self, key: str, owner: str) -> bool:
        with self._lock:
            current = self._locks.get(key)
            if not current or current[0] != owner:
                return False
            del self._locks[key]
            return True

    def renew(self, key: str, owner: str, ttl_seconds: int) -> bool:
        with self._lock:
            current = self._locks.get(key)
            if not current or current[0] != owner:
                return False
            self._locks[key] = (owner, self._clock() + ttl_seconds)
            return True

    def holder(self, key: str) -> Optional[str]:
        current = self._locks.get(key)
        if current and current[1] > self._clock():
            return current[0]
        return None


class InMemoryFleetRecords(FleetRecords):
    def __init__(
        self,
        servers: Iterable[Server] = (),
        databases: Iterable[EngineConfig] = (),
        backups: Iterable[ScheduledBackup] = (),
        tasks: Iterable[ScheduledTask] = (),
        applications: Iterable[TaskTarget] = (),
        services: Iterable[TaskTarget] = (),
        instance_settings: Optional[InstanceSettings] = None,
    ):
        self.servers: Dict[int, Server] = {s.server_id: s for s in servers}
        self.databases: Dict[str, EngineConfig] = {d.uuid: d for d in databases}
        self.backups: Dict[str, ScheduledBackup] = {b.backup_id: b for b in backups}
        self.tasks: Dict[str, ScheduledTask] = {t.task_id: t for t in tasks}
        self.applications: Dict[str, TaskTarget] = {a.uuid: a for a in applications}
        self.services: Dict[str, TaskTarget] = {s.uuid: s for s in services}
        self.instance_settings = instance_settings or InstanceSettings()
        self.deleted: List[str] = []
        self._lock = Lock()

    def list_servers(self) -> List[Server]:
        return list(self.servers.values())

    def get_server(self, server_id: int) -> Optional[Server]:
        return self.servers.get(server_id)

    def get_database(self, database_id: str) -> Optional[EngineConfig]:
        if database_id is None:
            return None
        return self.databases.get(database_id)

    def list_scheduled_backups(self) -> List[ScheduledBackup]:
        return list(self.backups.values())

    def list_scheduled_tasks(self) -> List[ScheduledTask]:
        return list(self.tasks.values())

    def get_application(self, application_id: str) -> Optional[TaskTarget]:
        if application_id is None:
            return None
        return self.applications.get(application_id)

    def get_service(self, service_id: str) -> Optional[TaskTarget]:
        if service_id is None:
            return None
        return self.services.get(service_id)

    def delete_scheduled_backup(self, backup_id: str) -> bool:
        with self._lock:
            if self.backups.pop(backup_id, None) is None:
                return False
            self.deleted.append(backup_id)
            return True

    def delete_scheduled_task(self, task_id: str) -> bool:
        with self._lock:
            if self.tasks.pop(task_id, None) is None:
                return False
            self.deleted.append(task_id)
            return True

    def get_instance_settings(self) -> InstanceSettings:
        return self.instance_settings
