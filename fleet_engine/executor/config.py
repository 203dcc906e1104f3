#fleet_engine\executor\config.py
from dataclasses import dataclass

from fleet_engine.config import FleetSettings


@dataclass(frozen=True)
class ExecutorConfig:
    worker_id: str

    poll_interval_seconds: float = 2.0
    max_slots: int = 4

    lease_seconds: int = 30
    lock_ttl_seconds: int = 3600
    agent_timeout_seconds: int = 600

    @classmethod
    def from_settings(cls, settings: FleetSettings) -> "ExecutorConfig":
        return cls(
            worker_id=settings.executor_id,
            poll_interval_seconds=settings.poll_interval_seconds,
            max_slots=settings.executor_slots,
            lease_seconds=settings.lease_seconds,
            lock_ttl_seconds=settings.lock_ttl_seconds,
            agent_timeout_seconds=settings.agent_timeout_seconds,
        )
