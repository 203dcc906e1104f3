#fleet_engine\container.py

"""Dependency injection container - wires all services together."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fleet_engine.config import FleetSettings, InstanceSnapshot, get_settings
from fleet_engine.core.events import (
    LoggingEventEmitter,
    MultiEventEmitter,
    WebhookEventEmitter,
)
from fleet_engine.core.repository import FleetRecords, LockRepository, UnitRepository
from fleet_engine.core.service import UnitService
from fleet_engine.executor.config import ExecutorConfig
from fleet_engine.executor.executor import Executor
from fleet_engine.executor.remote_executor import RemoteExecutor
from fleet_engine.infrastructure.memory.inventory import load_inventory
from fleet_engine.infrastructure.memory.repository import (
    InMemoryFleetRecords,
    InMemoryLockRepository,
    InMemoryUnitRepository,
)
from fleet_engine.orchestrator.provisioner import DatabaseProvisioner
from fleet_engine.scheduler.fleet_scheduler import FleetScheduler
from fleet_engine.scheduler.locks import SingleExecutionLock

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: FleetSettings
    records: FleetRecords
    unit_repository: UnitRepository
    lock_repository: LockRepository
    emitters: MultiEventEmitter
    unit_service: UnitService
    scheduler: FleetScheduler
    provisioner: DatabaseProvisioner

    def snapshot(self) -> InstanceSnapshot:
        """Capture the per-tick configuration snapshot."""
        return InstanceSnapshot.capture(self.settings, self.records.get_instance_settings())

    def build_executor(self, remote_executor: Optional[RemoteExecutor] = None) -> Executor:
        return Executor(
            config=ExecutorConfig.from_settings(self.settings),
            service=self.unit_service,
            repository=self.unit_repository,
            records=self.records,
            lock_repository=self.lock_repository,
            remote_executor=remote_executor,
        )


# ============================================
# WIRING
# ============================================

def build_container(
    settings: FleetSettings,
    records: Optional[FleetRecords] = None,
    unit_repository: Optional[UnitRepository] = None,
    lock_repository: Optional[LockRepository] = None,
) -> Container:
    """
    Wire repositories, events and services.

    Anything passed in wins over what ``settings`` selects.
    """
    # Repositories
    if records is None:
        records = load_inventory(settings.inventory_path) if settings.inventory_path else InMemoryFleetRecords()

    if unit_repository is None or lock_repository is None:
        if settings.storage_backend == "postgres":
            from fleet_engine.infrastructure.postgres.repository import (
                PostgresLockRepository,
                PostgresUnitRepository,
            )
            unit_repository = unit_repository or PostgresUnitRepository()
            lock_repository = lock_repository or PostgresLockRepository()
        else:
            unit_repository = unit_repository or InMemoryUnitRepository()
            lock_repository = lock_repository or InMemoryLockRepository()

    # Events
    emitters = [LoggingEventEmitter()]
    if settings.event_webhook_url:
        emitters.append(WebhookEventEmitter(settings.event_webhook_url))
    event_emitters = MultiEventEmitter(emitters)

    # Services
    unit_service = UnitService(
        repository=unit_repository,
        event_emitters=event_emitters,
    )

    scheduler = FleetScheduler(
        records=records,
        unit_service=unit_service,
        lock_repository=lock_repository,
        owner=settings.controller_id,
        lock_ttl_seconds=settings.lock_ttl_seconds,
    )

    provisioner = DatabaseProvisioner(
        unit_service=unit_service,
        deployment_lock=SingleExecutionLock(lock_repository, settings.controller_id, settings.lock_ttl_seconds),
        settings=settings,
    )

    logger.info(f"[container] Wired {settings.storage_backend} storage for {settings.controller_id}")

    return Container(
        settings=settings,
        records=records,
        unit_repository=unit_repository,
        lock_repository=lock_repository,
        emitters=event_emitters,
        unit_service=unit_service,
        scheduler=scheduler,
        provisioner=provisioner,
    )


@lru_cache
def get_container() -> Container:
    """Process-wide container, built on first use."""
    return build_container(get_settings())
