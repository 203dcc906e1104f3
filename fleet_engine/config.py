#fleet_engine\config.py
"""Process-wide settings and the per-tick instance snapshot."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from fleet_engine.domain.models import InstanceSettings


class FleetSettings(BaseSettings):
    """Fleet configuration from environment variables (FLEET_*)."""

    model_config = SettingsConfigDict(
        env_prefix="FLEET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # On-host layout
    configuration_root: str = "/data/fleet/databases"
    backup_root: str = "/data/fleet/backups"

    # Fleet-wide constants
    helper_image: str = "ghcr.io/fleet/helper:latest"
    log_drain_address: str = "tcp://127.0.0.1:24224"
    sentinel_ip: str = "1.2.3.4"
    operator_team_id: int = 0

    # Deployment mode
    is_cloud: bool = False
    is_dev: bool = False
    skip_billing_checks: bool = False

    # Scheduler
    tick_interval_seconds: int = 60
    lock_ttl_seconds: int = 3600
    auto_update_command: str = "curl -fsSL https://get.fleet.example/upgrade.sh | bash"

    # Executor
    executor_id: str = "worker-1"
    executor_slots: int = 4
    lease_seconds: int = 30
    poll_interval_seconds: float = 2.0
    agent_timeout_seconds: int = 600

    # Storage
    storage_backend: str = "postgres"  # "postgres" | "memory"
    inventory_path: Optional[str] = None
    controller_id: str = "controller-1"

    # Events
    event_webhook_url: Optional[str] = None


@lru_cache
def get_settings() -> FleetSettings:
    return FleetSettings()


@dataclass(frozen=True)
class InstanceSnapshot:
    """
    Configuration snapshot read once per scheduling tick.

    The scheduler reads nothing else, so a tick is a function of
    (tick time, snapshot, job records).
    """
    is_cloud: bool = False
    is_dev: bool = False
    is_auto_update_enabled: bool = False
    skip_billing_checks: bool = False
    operator_team_id: int = 0
    sentinel_ip: str = "1.2.3.4"
    helper_image: str = "ghcr.io/fleet/helper:latest"
    backup_root: str = "/data/fleet/backups"
    auto_update_command: str = "curl -fsSL https://get.fleet.example/upgrade.sh | bash"

    @classmethod
    def capture(
        cls,
        settings: FleetSettings,
        instance_settings: InstanceSettings,
    ) -> "InstanceSnapshot":
        return cls(
            is_cloud=settings.is_cloud,
            is_dev=settings.is_dev,
            is_auto_update_enabled=instance_settings.is_auto_update_enabled,
            skip_billing_checks=settings.skip_billing_checks,
            operator_team_id=settings.operator_team_id,
            sentinel_ip=settings.sentinel_ip,
            helper_image=settings.helper_image,
            backup_root=settings.backup_root,
            auto_update_command=settings.auto_update_command,
        )
