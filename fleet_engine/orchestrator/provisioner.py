# fleet_engine/orchestrator/provisioner.py
"""Database provisioner - turns an engine config into a queued deploy unit."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fleet_engine.config import FleetSettings
from fleet_engine.core.models import DispatchUnit, DutyKind
from fleet_engine.core.service import UnitService
from fleet_engine.deployment.builder import build
from fleet_engine.deployment.files import plan_files
from fleet_engine.deployment.spec import DeploymentSpec
from fleet_engine.domain.models import EngineConfig
from fleet_engine.pipeline.compiler import compile_sequence
from fleet_engine.pipeline.readme import generate_readme_file
from fleet_engine.pipeline.sequence import CommandSequence, FileMaterialization
from fleet_engine.scheduler.locks import SingleExecutionLock, lock_key

logger = logging.getLogger(__name__)


@dataclass
class RenderedDeployment:
    """Everything a deployment would write and run, without dispatching it."""
    spec: DeploymentSpec
    files: List[FileMaterialization]
    sequence: CommandSequence


class DatabaseProvisioner:
    """
    Starts managed database instances.

    Flow:
    1. Take the per-instance deployment lock
    2. Build the deployment spec and plan its files
    3. Compile the command sequence
    4. Register + queue a deploy unit (the executor releases the lock)
    """

    def __init__(
        self,
        unit_service: UnitService,
        deployment_lock: SingleExecutionLock,
        settings: Optional[FleetSettings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._units = unit_service
        self._lock = deployment_lock
        self._settings = settings
        self._clock = clock

    def render(self, config: EngineConfig, summary: Optional[str] = None) -> RenderedDeployment:
        """
        Build and compile without dispatching.

        Raises:
            ConfigurationError: If the config is invalid
        """
        spec = build(config, self._settings)
        if summary is None:
            summary = generate_readme_file(config.name, self._clock())
        files = plan_files(config, spec, summary)
        sequence = compile_sequence(spec, files)
        return RenderedDeployment(spec=spec, files=files, sequence=sequence)

    def start(self, config: EngineConfig, summary: Optional[str] = None) -> DispatchUnit:
        """
        Queue a deployment of ``config``.

        Returns:
            The queued deploy unit

        Raises:
            DeploymentInProgressError: If a deployment of this instance is in flight
            ConfigurationError: If the config is invalid (the lock is released)
        """
        key = lock_key(DutyKind.DEPLOY, config.uuid)
        token = self._lock.acquire(key)

        try:
            rendered = self.render(config, summary)

            unit = DispatchUnit.new(
                duty=DutyKind.DEPLOY,
                target_id=config.uuid,
                server_id=config.server.server_id,
                payload=rendered.sequence.to_payload(),
                event_kind="DatabaseStatusChanged",
                lock_key=key,
                lock_owner=token,
            )
            self._units.submit(unit)
        except Exception:
            self._lock.release(key, token)
            raise

        logger.info(f"[provisioner] Queued deployment of {config.name} ({config.uuid}) as {unit.unit_id}")
        return unit
