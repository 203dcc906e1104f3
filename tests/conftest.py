#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timezone

from fleet_engine.config import FleetSettings, InstanceSnapshot
from fleet_engine.core.errors import RemoteExecutionError
from fleet_engine.core.events import MultiEventEmitter, PrintEventEmitter
from fleet_engine.core.service import UnitService
from fleet_engine.domain.models import (
    Destination,
    EngineConfig,
    EngineKind,
    MongoCredentials,
    PostgresCredentials,
    RedisCredentials,
    Server,
    ServerSettings,
    Subscription,
    Team,
)
from fleet_engine.executor.remote_executor import CompletionMessage
from fleet_engine.infrastructure.memory.repository import (
    InMemoryFleetRecords,
    InMemoryLockRepository,
    InMemoryUnitRepository,
)


CONFIG_ROOT = "/data/fleet/databases"


# ============================================
# SETTINGS
# ============================================

@pytest.fixture
def settings():
    """Settings independent of the environment and any .env file."""
    return FleetSettings(
        _env_file=None,
        configuration_root=CONFIG_ROOT,
        backup_root="/data/fleet/backups",
        helper_image="ghcr.io/fleet/helper:1.0",
        sentinel_ip="1.2.3.4",
        operator_team_id=0,
    )


@pytest.fixture
def snapshot():
    return InstanceSnapshot(
        helper_image="ghcr.io/fleet/helper:1.0",
        backup_root="/data/fleet/backups",
    )


@pytest.fixture
def tick_time():
    """Midnight UTC, January 1st 2024 (a Monday): every alias but weekly is due."""
    return datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


# ============================================
# SERVERS
# ============================================

def make_server(
    server_id=1,
    ip="10.0.0.5",
    team=None,
    usable=True,
    reachable=True,
    log_drain=False,
    swarm_worker=False,
    build_server=False,
):
    return Server(
        server_id=server_id,
        uuid=f"server-{server_id}",
        name=f"host-{server_id}",
        ip=ip,
        agent_url=f"http://{ip}:9000",
        team=team,
        settings=ServerSettings(
            is_usable=usable,
            is_reachable=reachable,
            is_log_drain_enabled=log_drain,
            is_swarm_worker=swarm_worker,
            is_build_server=build_server,
        ),
    )


@pytest.fixture
def operator_team():
    return Team(team_id=0, name="root")


@pytest.fixture
def paying_team():
    return Team(team_id=7, name="paying", subscription=Subscription(active=True))


@pytest.fixture
def expired_team():
    return Team(
        team_id=8,
        name="expired",
        subscription=Subscription(active=True, trial_already_ended=True),
    )


@pytest.fixture
def server_factory():
    return make_server


@pytest.fixture
def server(operator_team):
    return make_server(server_id=1, team=operator_team)


# ============================================
# ENGINE CONFIGS
# ============================================

@pytest.fixture
def pg_config(server):
    return EngineConfig(
        uuid="pg-main",
        name="main-postgres",
        engine=EngineKind.POSTGRESQL,
        image="postgres:16-alpine",
        credentials=PostgresCredentials(user="app", password="s3cret", db="appdb"),
        destination=Destination(network="fleet", server=server),
    )


@pytest.fixture
def redis_config(server):
    return EngineConfig(
        uuid="redis-cache",
        name="cache",
        engine=EngineKind.REDIS,
        image="redis:7.2",
        credentials=RedisCredentials(password="r3dis"),
        destination=Destination(network="fleet", server=server),
    )


@pytest.fixture
def mongo_config(server):
    return EngineConfig(
        uuid="mongo-docs",
        name="documents",
        engine=EngineKind.MONGODB,
        image="mongo:7",
        credentials=MongoCredentials(root_username="root", root_password="m0ngo", database="docs"),
        destination=Destination(network="fleet", server=server),
    )


@pytest.fixture
def all_configs(pg_config, redis_config, mongo_config):
    return [pg_config, redis_config, mongo_config]


# ============================================
# REPOSITORIES + SERVICES
# ============================================

@pytest.fixture
def unit_repository():
    return InMemoryUnitRepository()


class FakeClock:
    """Epoch clock for lock expiry that only moves when told to."""

    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lock_repository():
    return InMemoryLockRepository()


@pytest.fixture
def emitter():
    return PrintEventEmitter()


@pytest.fixture
def unit_service(unit_repository, emitter):
    return UnitService(unit_repository, MultiEventEmitter([emitter]))


@pytest.fixture
def records(server, pg_config):
    return InMemoryFleetRecords(servers=[server], databases=[pg_config])


# ============================================
# REMOTE EXECUTION
# ============================================

class FakeRemoteExecutor:
    """Records every sequence; fails when the sequence contains ``fail_on``."""

    def __init__(self, fail_on=None, output="ok\n"):
        self.fail_on = fail_on
        self.output = output
        self.calls = []

    def execute(self, sequence, server, correlation_id):
        self.calls.append((sequence, server, correlation_id))
        if self.fail_on and any(self.fail_on in c for c in sequence.commands):
            raise RemoteExecutionError(
                "Command failed with exit code 1",
                exit_code=1,
                output="pull access denied\n",
            )
        return CompletionMessage(
            correlation_id=correlation_id,
            success=True,
            exit_code=0,
            output=self.output,
        )


@pytest.fixture
def fake_remote():
    return FakeRemoteExecutor()


@pytest.fixture
def remote_factory():
    return FakeRemoteExecutor
