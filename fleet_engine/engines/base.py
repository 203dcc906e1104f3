# fleet_engine/engines/base.py
"""Capability interface shared by all engine variants."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from fleet_engine.deployment.spec import BindMount
from fleet_engine.domain.models import EngineConfig, EngineKind
from fleet_engine.pipeline.sequence import FileChannel, FileMaterialization


HEALTHCHECK_TIMING = {
    "interval": "5s",
    "timeout": "5s",
    "retries": 10,
    "start_period": "5s",
}

StartupCommand = Union[str, List[str], None]


@dataclass(frozen=True)
class ConfigMount:
    """Where an engine expects its custom configuration file."""
    filename: str
    target: str
    channel: FileChannel = FileChannel.ECHO


class EngineStrategy(Protocol):
    """
    One database engine.

    Variants implement this protocol directly; adding an engine means adding
    a module and registering it in ``fleet_engine.engines.ENGINES``.
    """

    kind: EngineKind
    config_mount: ConfigMount

    def mandatory_environment(self, config: EngineConfig) -> List[Tuple[str, str]]:
        ...

    def health_check(self, config: EngineConfig) -> List[str]:
        ...

    def startup_command(self, config: EngineConfig) -> StartupCommand:
        ...

    def bootstrap_files(self, config: EngineConfig, bootstrap_dir: str) -> List[FileMaterialization]:
        ...

    def bootstrap_mounts(self, config: EngineConfig, bootstrap_dir: str) -> List[BindMount]:
        ...

    def backup_commands(self, config: EngineConfig, backup_dir: str, stamp: str) -> List[str]:
        ...


def healthcheck_block(test: List[str]) -> Dict[str, Any]:
    return {"test": test, **HEALTHCHECK_TIMING}


def custom_config_mount(config_mount: ConfigMount, configuration_dir: str) -> BindMount:
    return BindMount(
        source=f"{configuration_dir}/{config_mount.filename}",
        target=config_mount.target,
        read_only=True,
    )


def custom_config_file(
    config: EngineConfig,
    config_mount: ConfigMount,
    configuration_dir: str,
) -> Optional[FileMaterialization]:
    if config.custom_conf is None:
        return None
    return FileMaterialization(
        path=f"{configuration_dir}/{config_mount.filename}",
        content=config.custom_conf,
        channel=config_mount.channel,
    )
