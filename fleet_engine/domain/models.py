#fleet_engine\domain\models.py
"""Domain models for managed databases, servers and scheduled jobs."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


# ============================================
# ENUMS
# ============================================

class EngineKind(Enum):
    """Supported database engines."""
    MONGODB = "mongodb"
    POSTGRESQL = "postgresql"
    REDIS = "redis"


# ============================================
# SERVERS
# ============================================

@dataclass
class Subscription:
    """Billing subscription of a team (multi-tenant deployments only)."""
    active: bool = True
    trial_already_ended: bool = False

    def is_billable(self) -> bool:
        return self.active and not self.trial_already_ended


@dataclass
class Team:
    team_id: int
    name: str = ""
    subscription: Optional[Subscription] = None


@dataclass
class ServerSettings:
    """Per-server switches maintained by the dashboard."""
    is_usable: bool = True
    is_reachable: bool = True
    is_log_drain_enabled: bool = False
    is_swarm_worker: bool = False
    is_build_server: bool = False


@dataclass
class Server:
    """Remote host running the container runtime and the runtime agent."""
    server_id: int
    uuid: str
    name: str
    ip: str
    agent_url: str
    team: Optional[Team] = None
    settings: ServerSettings = field(default_factory=ServerSettings)

    def is_log_drain_enabled(self) -> bool:
        return self.settings.is_log_drain_enabled

    def is_container_server(self) -> bool:
        """Runs workloads directly: neither a swarm worker nor a build server."""
        return not (self.settings.is_swarm_worker or self.settings.is_build_server)


@dataclass
class Destination:
    """Network placement of an instance: an existing network on one server."""
    network: str
    server: Server


# ============================================
# ENGINE CONFIG
# ============================================

@dataclass
class ResourceLimits:
    """Container resource limits, passed to the orchestrator verbatim."""
    memory: str = "0"
    memory_swap: str = "0"
    memory_swappiness: int = 60
    memory_reservation: str = "0"
    cpus: Union[str, float] = "0"
    cpu_shares: int = 1024
    cpuset: Optional[str] = None


@dataclass
class PersistentStorage:
    """
    Persistent storage declaration.

    Without a host path this is a named volume owned by the deployment,
    with one it is a bind mount owned by the host.
    """
    name: str
    mount_path: str
    host_path: Optional[str] = None

    @property
    def is_bind_mount(self) -> bool:
        return bool(self.host_path)


@dataclass
class EnvironmentVariable:
    key: str
    value: str


@dataclass
class InitScript:
    """Script executed once at first boot by the image's bootstrap convention."""
    filename: str
    content: str


@dataclass
class PostgresCredentials:
    user: str
    password: str
    db: str


@dataclass
class MongoCredentials:
    root_username: str
    root_password: str
    database: str


@dataclass
class RedisCredentials:
    password: str


Credentials = Union[PostgresCredentials, MongoCredentials, RedisCredentials]


@dataclass
class EngineConfig:
    """Desired configuration of one managed database instance."""
    uuid: str
    name: str
    engine: EngineKind
    image: str
    credentials: Credentials
    destination: Destination

    limits: ResourceLimits = field(default_factory=ResourceLimits)
    persistent_storages: List[PersistentStorage] = field(default_factory=list)
    ports_mappings: List[str] = field(default_factory=list)
    environment: List[EnvironmentVariable] = field(default_factory=list)

    custom_conf: Optional[str] = None
    init_scripts: List[InitScript] = field(default_factory=list)

    is_log_drain_enabled: bool = False

    @property
    def server(self) -> Server:
        return self.destination.server

    def log_drain_active(self) -> bool:
        """Both the instance and its host must enable log draining."""
        return self.is_log_drain_enabled and self.destination.server.is_log_drain_enabled()


# ============================================
# SCHEDULED JOBS
# ============================================

@dataclass
class ScheduledBackup:
    """Periodic backup of one managed database."""
    backup_id: str
    database_id: Optional[str]
    frequency: str
    enabled: bool = True
    keep_locally: bool = True


@dataclass
class ScheduledTask:
    """Periodic command run inside an application's or service's container."""
    task_id: str
    name: str
    command: str
    frequency: str
    enabled: bool = True
    application_id: Optional[str] = None
    service_id: Optional[str] = None
    container: Optional[str] = None


@dataclass
class TaskTarget:
    """Resolved owner of a scheduled task (an application or a service)."""
    uuid: str
    server_id: int


@dataclass
class InstanceSettings:
    """Instance-wide settings stored alongside the fleet records."""
    is_auto_update_enabled: bool = False
