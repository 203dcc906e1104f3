# fleet_engine/scheduler/maintenance.py
"""Command sequences for the periodic fleet duties."""

import shlex
from datetime import datetime

from fleet_engine.config import InstanceSnapshot
from fleet_engine.domain.models import EngineConfig, ScheduledTask, Server
from fleet_engine.engines import get_strategy
from fleet_engine.pipeline.compiler import echo
from fleet_engine.pipeline.sequence import CommandSequence


LOG_DRAIN_CONTAINER = "fleet-log-drain"


def server_status_sequence(server: Server) -> CommandSequence:
    """Host liveness and resource usage."""
    return CommandSequence(
        instance_id=server.uuid,
        commands=(
            "uptime",
            "free -b",
            "df -P /",
        ),
    )


def container_status_sequence(server: Server) -> CommandSequence:
    """Report every container on the host with its state."""
    return CommandSequence(
        instance_id=server.uuid,
        commands=(
            "docker ps -a --format '{{json .}}'",
        ),
    )


def log_drain_check_sequence(server: Server) -> CommandSequence:
    """Restart the log drain forwarder if it is not running."""
    name = LOG_DRAIN_CONTAINER
    return CommandSequence(
        instance_id=server.uuid,
        commands=(
            f"docker inspect --format '{{{{.State.Status}}}}' {name} 2>/dev/null | grep -q running "
            f"|| docker restart {name}",
        ),
    )


def pre_pull_sequence(server: Server, snapshot: InstanceSnapshot) -> CommandSequence:
    return CommandSequence(
        instance_id=server.uuid,
        commands=(
            f"docker pull {snapshot.helper_image}",
        ),
    )


def backup_sequence(
    database: EngineConfig,
    snapshot: InstanceSnapshot,
    now: datetime,
) -> CommandSequence:
    """
    Dump one database into the host's backup directory.

    Args:
        database: Database to back up
        snapshot: Tick snapshot (backup root)
        now: Tick time, used to name the dump

    Returns:
        CommandSequence for the database's host
    """
    strategy = get_strategy(database.engine)
    backup_dir = f"{snapshot.backup_root}/{database.uuid}"
    stamp = now.strftime("%Y%m%d%H%M")

    commands = [
        echo(f"Backing up {database.name}."),
        f"mkdir -p {backup_dir}",
        *strategy.backup_commands(database, backup_dir, stamp),
        echo(f"Backup of {database.name} finished."),
    ]
    return CommandSequence(instance_id=database.uuid, commands=tuple(commands))


def task_sequence(task: ScheduledTask, container: str) -> CommandSequence:
    """Run a scheduled task's command inside the target container."""
    return CommandSequence(
        instance_id=container,
        commands=(
            f"docker exec {container} sh -c {shlex.quote(task.command)}",
        ),
    )


def auto_update_sequence(server: Server, snapshot: InstanceSnapshot) -> CommandSequence:
    return CommandSequence(
        instance_id=server.uuid,
        commands=(
            echo("Checking for control plane updates."),
            snapshot.auto_update_command,
        ),
    )
