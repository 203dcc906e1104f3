# fleet_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
from uuid import UUID

from fleet_engine.core.models import DispatchUnit, UnitState
from fleet_engine.domain.models import (
    EngineConfig,
    InstanceSettings,
    ScheduledBackup,
    ScheduledTask,
    Server,
    TaskTarget,
)


class UnitRepository(ABC):
    """
    Persistence contract for dispatch units (the work queue).
    """

    @abstractmethod
    def create(self, unit: DispatchUnit) -> None:
        """
        Persist a new unit.
        Must fail if unit_id already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, unit_id: UUID) -> Optional[DispatchUnit]:
        """
        Fetch unit by ID.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, unit: DispatchUnit) -> None:
        """
        Persist updated unit state.
        """
        raise NotImplementedError

    @abstractmethod
    def list_by_state(self, state: UnitState, limit: int) -> Iterable[DispatchUnit]:
        """
        List units in a given state, oldest first.
        """
        raise NotImplementedError

    @abstractmethod
    def try_claim(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        """
        Attempt to exclusively claim a QUEUED unit.
        Returns True if claim succeeded.
        """
        raise NotImplementedError

    @abstractmethod
    def renew_lease(self, unit_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        raise NotImplementedError


class LockRepository(ABC):
    """
    Fleet-wide single-execution locks.

    Shared by every coordinating controller. The owner is a token minted
    for one acquisition, so only the unit that took a key can renew or
    release it. An entry lives from submission until release, or until its
    TTL runs out without a renewal.
    """

    @abstractmethod
    def acquire(self, key: str, owner: str, ttl_seconds: int) -> bool:
        """
        Take the lock if it is free or expired.
        Returns False if another owner holds it.
        """
        raise NotImplementedError

    @abstractmethod
    def release(self, key: str, owner: str) -> bool:
        """
        Release the lock if ``owner`` holds it.
        Returns False if it was not held by ``owner``.
        """
        raise NotImplementedError

    @abstractmethod
    def renew(self, key: str, owner: str, ttl_seconds: int) -> bool:
        """
        Push the expiry of a lock held by ``owner`` to now + ttl.
        Returns False once another owner has taken the key.
        """
        raise NotImplementedError

    @abstractmethod
    def holder(self, key: str) -> Optional[str]:
        """Current unexpired owner, or None."""
        raise NotImplementedError


class FleetRecords(ABC):
    """
    Read-mostly view of servers, databases and scheduled jobs.

    Written by the dashboard; the scheduler only deletes orphaned jobs.
    """

    @abstractmethod
    def list_servers(self) -> List[Server]:
        raise NotImplementedError

    @abstractmethod
    def get_server(self, server_id: int) -> Optional[Server]:
        raise NotImplementedError

    @abstractmethod
    def get_database(self, database_id: str) -> Optional[EngineConfig]:
        raise NotImplementedError

    @abstractmethod
    def list_scheduled_backups(self) -> List[ScheduledBackup]:
        raise NotImplementedError

    @abstractmethod
    def list_scheduled_tasks(self) -> List[ScheduledTask]:
        raise NotImplementedError

    @abstractmethod
    def get_application(self, application_id: str) -> Optional[TaskTarget]:
        raise NotImplementedError

    @abstractmethod
    def get_service(self, service_id: str) -> Optional[TaskTarget]:
        raise NotImplementedError

    @abstractmethod
    def delete_scheduled_backup(self, backup_id: str) -> bool:
        """
        Delete a backup record.
        Deleting a missing record is a no-op returning False.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_scheduled_task(self, task_id: str) -> bool:
        """
        Delete a task record.
        Deleting a missing record is a no-op returning False.
        """
        raise NotImplementedError

    @abstractmethod
    def get_instance_settings(self) -> InstanceSettings:
        raise NotImplementedError
