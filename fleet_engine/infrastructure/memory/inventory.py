# fleet_engine/infrastructure/memory/inventory.py
"""
YAML inventory loader.

Builds an InMemoryFleetRecords from one document:

    instance: {auto_update: true}
    teams: [{id: 0, name: root, subscription: {active: true}}]
    servers: [{id: 0, uuid: host-a, name: host-a, ip: 10.0.0.5,
               agent_url: "http://10.0.0.5:9000", team: 0,
               swarm_worker: false, build_server: false}]
    databases: [{uuid: pg-main, name: main, engine: postgresql,
                 image: "postgres:16-alpine", server: 0, network: fleet,
                 credentials: {user: app, password: s3cret, db: app}}]
    backups: [{id: b1, database: pg-main, frequency: daily}]
    tasks: [{id: t1, name: purge, command: "php artisan purge",
             frequency: hourly, application: app-1}]
    applications: [{uuid: app-1, server: 0}]
    services: []

``${VAR}`` and ``${VAR:-default}`` are expanded from the environment.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from fleet_engine.core.errors import ConfigurationError
from fleet_engine.domain.models import (
    Destination,
    EngineConfig,
    EngineKind,
    EnvironmentVariable,
    InitScript,
    InstanceSettings,
    MongoCredentials,
    PersistentStorage,
    PostgresCredentials,
    RedisCredentials,
    ResourceLimits,
    ScheduledBackup,
    ScheduledTask,
    Server,
    ServerSettings,
    Subscription,
    TaskTarget,
    Team,
)
from fleet_engine.infrastructure.memory.repository import InMemoryFleetRecords


_ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

CREDENTIAL_PARSERS = {
    EngineKind.POSTGRESQL: lambda c: PostgresCredentials(user=c["user"], password=c["password"], db=c["db"]),
    EngineKind.MONGODB: lambda c: MongoCredentials(
        root_username=c["root_username"],
        root_password=c["root_password"],
        database=c["database"],
    ),
    EngineKind.REDIS: lambda c: RedisCredentials(password=c["password"]),
}


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default}; unknown variables stay as written."""
    if isinstance(value, str):
        def replacer(match):
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return _ENV_PATTERN.sub(replacer, value)

    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(v) for v in value]

    return value


def load_inventory(path: Union[str, Path]) -> InMemoryFleetRecords:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Inventory file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return parse_inventory(expand_env_vars(data))


def parse_inventory(data: Dict[str, Any]) -> InMemoryFleetRecords:
    """
    Raises:
        ConfigurationError: On unknown references or missing required keys
    """
    try:
        teams = {t["id"]: _team(t) for t in data.get("teams", [])}
        servers = [_server(s, teams) for s in data.get("servers", [])]
        by_id = {s.server_id: s for s in servers}

        return InMemoryFleetRecords(
            servers=servers,
            databases=[engine_config_from_dict(d, _lookup(by_id, d["server"], "server")) for d in data.get("databases", [])],
            backups=[_backup(b) for b in data.get("backups", [])],
            tasks=[_task(t) for t in data.get("tasks", [])],
            applications=[TaskTarget(uuid=a["uuid"], server_id=a["server"]) for a in data.get("applications", [])],
            services=[TaskTarget(uuid=s["uuid"], server_id=s["server"]) for s in data.get("services", [])],
            instance_settings=InstanceSettings(
                is_auto_update_enabled=bool((data.get("instance") or {}).get("auto_update", False)),
            ),
        )
    except KeyError as e:
        raise ConfigurationError(f"Inventory entry is missing {e}") from e


def engine_config_from_dict(data: Dict[str, Any], server: Server) -> EngineConfig:
    """
    Map one plain-dict database entry onto an EngineConfig.

    Raises:
        ConfigurationError: On unknown engines, missing keys or unknown limit fields
    """
    try:
        return _engine_config(data, server)
    except KeyError as e:
        raise ConfigurationError(f"Database entry is missing {e}") from e
    except TypeError as e:
        raise ConfigurationError(f"Invalid database entry: {e}") from e


def _engine_config(data: Dict[str, Any], server: Server) -> EngineConfig:
    try:
        engine = EngineKind(data["engine"])
    except ValueError as e:
        raise ConfigurationError(f"Unknown engine {data['engine']!r}") from e

    env = data.get("environment") or {}
    if isinstance(env, dict):
        environment = [EnvironmentVariable(key=k, value=str(v)) for k, v in env.items()]
    else:
        environment = [EnvironmentVariable(key=e["key"], value=str(e["value"])) for e in env]

    return EngineConfig(
        uuid=data["uuid"],
        name=data.get("name", data["uuid"]),
        engine=engine,
        image=data["image"],
        credentials=CREDENTIAL_PARSERS[engine](data["credentials"]),
        destination=Destination(network=data["network"], server=server),
        limits=ResourceLimits(**(data.get("limits") or {})),
        persistent_storages=[
            PersistentStorage(name=s["name"], mount_path=s["mount_path"], host_path=s.get("host_path"))
            for s in data.get("persistent_storages", [])
        ],
        ports_mappings=list(data.get("ports_mappings", [])),
        environment=environment,
        custom_conf=data.get("custom_conf"),
        init_scripts=[
            InitScript(filename=s["filename"], content=s["content"])
            for s in data.get("init_scripts", [])
        ],
        is_log_drain_enabled=bool(data.get("is_log_drain_enabled", False)),
    )


def _team(data: Dict[str, Any]) -> Team:
    sub = data.get("subscription")
    return Team(
        team_id=data["id"],
        name=data.get("name", ""),
        subscription=Subscription(
            active=sub.get("active", True),
            trial_already_ended=sub.get("trial_ended", False),
        ) if sub is not None else None,
    )


def _server(data: Dict[str, Any], teams: Dict[int, Team]) -> Server:
    team_id: Optional[int] = data.get("team")
    return Server(
        server_id=data["id"],
        uuid=data["uuid"],
        name=data.get("name", data["uuid"]),
        ip=data["ip"],
        agent_url=data["agent_url"],
        team=_lookup(teams, team_id, "team") if team_id is not None else None,
        settings=ServerSettings(
            is_usable=data.get("usable", True),
            is_reachable=data.get("reachable", True),
            is_log_drain_enabled=data.get("log_drain", False),
            is_swarm_worker=data.get("swarm_worker", False),
            is_build_server=data.get("build_server", False),
        ),
    )


def _backup(data: Dict[str, Any]) -> ScheduledBackup:
    return ScheduledBackup(
        backup_id=data["id"],
        database_id=data.get("database"),
        frequency=data["frequency"],
        enabled=data.get("enabled", True),
        keep_locally=data.get("keep_locally", True),
    )


def _task(data: Dict[str, Any]) -> ScheduledTask:
    return ScheduledTask(
        task_id=data["id"],
        name=data.get("name", data["id"]),
        command=data["command"],
        frequency=data["frequency"],
        enabled=data.get("enabled", True),
        application_id=data.get("application"),
        service_id=data.get("service"),
        container=data.get("container"),
    )


def _lookup(table: Dict[Any, Any], key: Any, kind: str) -> Any:
    if key not in table:
        raise ConfigurationError(f"Unknown {kind} {key!r}")
    return table[key]
