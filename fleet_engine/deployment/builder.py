# fleet_engine/deployment/builder.py
"""Deployment spec builder - turns an engine config into a deployment descriptor."""

import logging
from typing import Any, Dict, List, Optional

from fleet_engine.config import FleetSettings, get_settings
from fleet_engine.core.validation import coerce_cpus, validate_engine_config
from fleet_engine.deployment.spec import (
    BOOTSTRAP_DIRNAME,
    BOOTSTRAP_TARGET,
    BindMount,
    DeploymentSpec,
)
from fleet_engine.domain.models import EngineConfig
from fleet_engine.engines import get_strategy
from fleet_engine.engines.base import custom_config_mount, healthcheck_block

logger = logging.getLogger(__name__)


MANAGED_LABEL = "fleet.managed"
RESTART_MODE = "unless-stopped"


def configuration_dir_for(instance_id: str, settings: Optional[FleetSettings] = None) -> str:
    """Deterministic on-host configuration directory of an instance."""
    settings = settings or get_settings()
    return f"{settings.configuration_root.rstrip('/')}/{instance_id}"


def build(config: EngineConfig, settings: Optional[FleetSettings] = None) -> DeploymentSpec:
    """
    Build the deployment spec for one instance.

    Pure and deterministic: no I/O, identical input gives an identical spec.

    Raises:
        ConfigurationError: If the config is malformed
    """
    settings = settings or get_settings()
    validate_engine_config(config)

    strategy = get_strategy(config.engine)
    instance_id = config.uuid
    configuration_dir = configuration_dir_for(instance_id, settings)
    bootstrap_dir = f"{configuration_dir}/{BOOTSTRAP_DIRNAME}"
    network = config.destination.network

    # -------------------------
    # SKELETON
    # -------------------------
    service: Dict[str, Any] = {"image": config.image}

    command = strategy.startup_command(config)
    if command is not None:
        service["command"] = command

    service.update({
        "container_name": instance_id,
        "environment": generate_environment_variables(config, strategy),
        "restart": RESTART_MODE,
        "networks": [network],
        "labels": {MANAGED_LABEL: "true"},
        "healthcheck": healthcheck_block(strategy.health_check(config)),
    })

    # -------------------------
    # LIMITS
    # -------------------------
    limits = config.limits
    service.update({
        "mem_limit": limits.memory,
        "memswap_limit": limits.memory_swap,
        "mem_swappiness": limits.memory_swappiness,
        "mem_reservation": limits.memory_reservation,
        "cpus": coerce_cpus(limits.cpus),
        "cpu_shares": limits.cpu_shares,
    })
    if limits.cpuset is not None:
        service["cpuset"] = limits.cpuset

    # -------------------------
    # LOG DRAIN
    # -------------------------
    if config.log_drain_active():
        service["logging"] = {
            "driver": "fluentd",
            "options": {
                "fluentd-address": settings.log_drain_address,
                "fluentd-async": "true",
                "fluentd-sub-second-precision": "true",
            },
        }

    # -------------------------
    # PORTS
    # -------------------------
    if config.ports_mappings:
        service["ports"] = list(config.ports_mappings)

    # -------------------------
    # STORAGE
    # -------------------------
    volumes: List[Any] = generate_local_persistent_volumes(config)
    named_volumes = generate_local_persistent_volumes_only_volume_names(config)

    # -------------------------
    # ENGINE EXTENSIONS
    # -------------------------
    bind_mounts: List[BindMount] = []
    bind_mounts.extend(strategy.bootstrap_mounts(config, bootstrap_dir))
    if config.custom_conf is not None:
        bind_mounts.append(custom_config_mount(strategy.config_mount, configuration_dir))
    bind_mounts.append(BindMount(source=bootstrap_dir, target=BOOTSTRAP_TARGET, read_only=True))

    volumes.extend(mount.to_compose() for mount in bind_mounts)
    service["volumes"] = volumes

    logger.debug(
        f"[builder] {config.engine.value} {instance_id}: "
        f"{len(named_volumes)} volume(s), {len(bind_mounts)} bind mount(s)"
    )

    return DeploymentSpec(
        instance_id=instance_id,
        name=config.name,
        image=config.image,
        configuration_dir=configuration_dir,
        network=network,
        service=service,
        named_volumes=tuple(named_volumes),
        bind_mounts=tuple(bind_mounts),
    )


# ============================================
# HELPERS
# ============================================

def generate_environment_variables(config: EngineConfig, strategy) -> List[str]:
    """
    Caller variables first, then any mandatory variable the caller did not supply.

    A caller key containing the mandatory key suppresses injection; caller
    entries are never rewritten.
    """
    environment = [f"{var.key}={var.value}" for var in config.environment]
    keys = [var.key for var in config.environment]

    for key, value in strategy.mandatory_environment(config):
        if any(key in existing for existing in keys):
            continue
        environment.append(f"{key}={value}")
        keys.append(key)

    return environment


def generate_local_persistent_volumes(config: EngineConfig) -> List[str]:
    return [
        f"{storage.host_path or storage.name}:{storage.mount_path}"
        for storage in config.persistent_storages
    ]


def generate_local_persistent_volumes_only_volume_names(config: EngineConfig) -> List[str]:
    # Bind mounts are owned by the host and never registered as volumes.
    return [
        storage.name
        for storage in config.persistent_storages
        if not storage.is_bind_mount
    ]
