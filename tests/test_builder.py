#tests\test_builder.py

"""Test deployment spec builder."""

import pytest
import yaml

from fleet_engine.core.errors import ConfigurationError
from fleet_engine.deployment.builder import build, generate_environment_variables
from fleet_engine.deployment.spec import DeploymentSpec
from fleet_engine.domain.models import (
    EnvironmentVariable,
    InitScript,
    PersistentStorage,
    PostgresCredentials,
    RedisCredentials,
)
from fleet_engine.engines import get_strategy

CONFIG_ROOT = "/data/fleet/databases"


def bootstrap_bind(instance_id):
    return {
        "type": "bind",
        "source": f"{CONFIG_ROOT}/{instance_id}/docker-entrypoint-initdb.d",
        "target": "/docker-entrypoint-initdb.d",
        "read_only": True,
    }


class TestZeroStorage:
    """Instances without persistent storage."""

    def test_no_volume_registry(self, all_configs, settings):
        """No top-level volumes for any engine."""
        for config in all_configs:
            document = build(config, settings).to_compose()
            assert "volumes" not in document

    def test_only_bootstrap_bind_mount(self, pg_config, redis_config, settings):
        """The bootstrap bind is the only service volume."""
        for config in (pg_config, redis_config):
            service = build(config, settings).to_compose()["services"][config.uuid]
            assert service["volumes"] == [bootstrap_bind(config.uuid)]


class TestPersistentStorage:
    """Named volumes vs host bind mounts."""

    def test_named_volume_registered(self, pg_config, settings):
        pg_config.persistent_storages = [
            PersistentStorage(name="pg-data", mount_path="/var/lib/postgresql/data"),
        ]

        document = build(pg_config, settings).to_compose()

        assert document["volumes"] == {"pg-data": {"name": "pg-data", "external": False}}
        assert document["services"]["pg-main"]["volumes"][0] == "pg-data:/var/lib/postgresql/data"

    def test_host_bind_not_registered(self, redis_config, settings):
        redis_config.persistent_storages = [
            PersistentStorage(name="redis-data", mount_path="/data", host_path="/srv/redis"),
        ]

        document = build(redis_config, settings).to_compose()

        assert "volumes" not in document
        assert document["services"]["redis-cache"]["volumes"][0] == "/srv/redis:/data"

    def test_duplicate_volume_names_rejected(self, pg_config, settings):
        pg_config.persistent_storages = [
            PersistentStorage(name="data", mount_path="/a"),
            PersistentStorage(name="data", mount_path="/b"),
        ]

        with pytest.raises(ConfigurationError):
            build(pg_config, settings)


class TestEnvironment:
    """Mandatory credential injection."""

    def test_mandatory_variables_appended(self, pg_config, settings):
        service = build(pg_config, settings).service

        assert service["environment"] == [
            "POSTGRES_USER=app",
            "PGUSER=app",
            "POSTGRES_PASSWORD=s3cret",
            "POSTGRES_DB=appdb",
        ]

    def test_caller_key_suppresses_injection(self, all_configs, settings):
        """A caller key containing the mandatory key is never duplicated."""
        overrides = {
            "postgresql": "POSTGRES_PASSWORD",
            "redis": "REDIS_PASSWORD",
            "mongodb": "MONGO_INITDB_ROOT_PASSWORD",
        }
        for config in all_configs:
            key = overrides[config.engine.value]
            config.environment = [EnvironmentVariable(key=key, value="from-caller")]

            environment = build(config, settings).service["environment"]

            matching = [e for e in environment if e.startswith(f"{key}=")]
            assert matching == [f"{key}=from-caller"]

    def test_substring_match_suppresses_injection(self, pg_config):
        pg_config.environment = [EnvironmentVariable(key="MY_POSTGRES_DB_NAME", value="x")]

        environment = generate_environment_variables(pg_config, get_strategy(pg_config.engine))

        assert environment[0] == "MY_POSTGRES_DB_NAME=x"
        assert not any(e.startswith("POSTGRES_DB=") for e in environment)

    def test_caller_entries_come_first(self, redis_config, settings):
        redis_config.environment = [EnvironmentVariable(key="TZ", value="UTC")]

        environment = build(redis_config, settings).service["environment"]

        assert environment == ["TZ=UTC", "REDIS_PASSWORD=r3dis"]


class TestServiceFields:
    """Limits, ports, log drain and labels."""

    def test_cpus_always_float(self, pg_config, settings):
        pg_config.limits.cpus = "2"

        assert build(pg_config, settings).service["cpus"] == 2.0

    def test_non_numeric_cpus_rejected(self, pg_config, settings):
        pg_config.limits.cpus = "two"

        with pytest.raises(ConfigurationError):
            build(pg_config, settings)

    def test_cpuset_only_when_set(self, pg_config, settings):
        assert "cpuset" not in build(pg_config, settings).service

        pg_config.limits.cpuset = "0-1"
        assert build(pg_config, settings).service["cpuset"] == "0-1"

    def test_ports_only_when_given(self, pg_config, settings):
        assert "ports" not in build(pg_config, settings).service

        pg_config.ports_mappings = ["5433:5432"]
        assert build(pg_config, settings).service["ports"] == ["5433:5432"]

    def test_log_drain_requires_server_and_instance(self, pg_config, settings):
        pg_config.is_log_drain_enabled = True
        assert "logging" not in build(pg_config, settings).service

        pg_config.server.settings.is_log_drain_enabled = True
        logging_block = build(pg_config, settings).service["logging"]

        assert logging_block["driver"] == "fluentd"
        assert logging_block["options"]["fluentd-address"] == settings.log_drain_address

    def test_skeleton(self, pg_config, settings):
        service = build(pg_config, settings).service

        assert service["container_name"] == "pg-main"
        assert service["restart"] == "unless-stopped"
        assert service["networks"] == ["fleet"]
        assert service["labels"] == {"fleet.managed": "true"}
        assert service["healthcheck"]["retries"] == 10
        assert "command" not in service

    def test_external_network(self, pg_config, settings):
        networks = build(pg_config, settings).to_compose()["networks"]

        assert networks == {"fleet": {"external": True, "name": "fleet", "attachable": True}}


class TestEngineExtensions:
    """Engine-specific commands and mounts."""

    def test_postgres_custom_conf_sets_command_and_bind(self, pg_config, settings):
        pg_config.custom_conf = "max_connections = 200\n"

        service = build(pg_config, settings).service

        assert service["command"] == ["postgres", "-c", "config_file=/etc/postgresql/postgresql.conf"]
        assert {
            "type": "bind",
            "source": f"{CONFIG_ROOT}/pg-main/custom-postgres.conf",
            "target": "/etc/postgresql/postgresql.conf",
            "read_only": True,
        } in service["volumes"]

    def test_postgres_init_scripts_mounted_in_order(self, pg_config, settings):
        pg_config.init_scripts = [
            InitScript(filename="01-a.sql", content="select 1;"),
            InitScript(filename="02-b.sql", content="select 2;"),
        ]

        targets = [v["target"] for v in build(pg_config, settings).service["volumes"]]

        assert targets == [
            "/docker-entrypoint-initdb.d/01-a.sql",
            "/docker-entrypoint-initdb.d/02-b.sql",
            "/docker-entrypoint-initdb.d",
        ]

    def test_postgres_credentials_shell_quoted(self, pg_config, settings):
        pg_config.credentials = PostgresCredentials(user="app user", password="x", db="app;db")

        test = build(pg_config, settings).service["healthcheck"]["test"]

        assert test == ["CMD-SHELL", "psql -U 'app user' -d 'app;db' -c 'SELECT 1' || exit 1"]

    def test_postgres_backup_shell_quoted(self, pg_config):
        pg_config.credentials = PostgresCredentials(user="app user", password="x", db="app;db")

        [command] = get_strategy(pg_config.engine).backup_commands(pg_config, "/backups", "202401010000")

        assert "--username 'app user' 'app;db' " in command
        assert command.endswith("> '/backups/pg-dump-app;db-202401010000.dmp'")

    def test_redis_command(self, redis_config, settings):
        assert build(redis_config, settings).service["command"] == (
            "redis-server --requirepass r3dis --appendonly yes"
        )

        redis_config.custom_conf = "maxmemory 256mb\n"
        assert build(redis_config, settings).service["command"] == (
            "redis-server /usr/local/etc/redis/redis.conf --requirepass r3dis --appendonly yes"
        )

    def test_mongo_command(self, mongo_config, settings):
        assert build(mongo_config, settings).service["command"] == "mongod"

        mongo_config.custom_conf = "net:\n  port: 27017\n"
        assert build(mongo_config, settings).service["command"] == (
            "mongod --config /etc/mongo/mongod.conf"
        )


class TestValidation:
    """Malformed configs fail before anything is emitted."""

    def test_unsafe_instance_id(self, pg_config, settings):
        pg_config.uuid = "../etc"

        with pytest.raises(ConfigurationError):
            build(pg_config, settings)

    def test_credentials_must_match_engine(self, pg_config, settings):
        pg_config.credentials = RedisCredentials(password="x")

        with pytest.raises(ConfigurationError):
            build(pg_config, settings)

    def test_init_script_must_be_plain_filename(self, pg_config, settings):
        pg_config.init_scripts = [InitScript(filename="../escape.sql", content="")]

        with pytest.raises(ConfigurationError):
            build(pg_config, settings)


class TestSerialization:
    """Descriptor document."""

    def test_yaml_matches_document(self, pg_config, settings):
        spec = build(pg_config, settings)

        assert yaml.safe_load(spec.to_yaml()) == spec.to_compose()

    def test_build_is_deterministic(self, all_configs, settings):
        for config in all_configs:
            assert build(config, settings).to_yaml() == build(config, settings).to_yaml()

    def test_to_compose_returns_copies(self, pg_config, settings):
        spec = build(pg_config, settings)

        spec.to_compose()["services"]["pg-main"]["environment"].append("X=1")

        assert "X=1" not in spec.to_compose()["services"]["pg-main"]["environment"]

    def test_service_is_read_only(self, pg_config, settings):
        spec = build(pg_config, settings)

        with pytest.raises(TypeError):
            spec.service["image"] = "evil:latest"

        assert spec.to_compose()["services"]["pg-main"]["image"] == pg_config.image

    def test_service_detached_from_caller_mapping(self):
        service = {"image": "postgres:16", "environment": ["A=1"]}
        spec = DeploymentSpec(
            instance_id="pg-main",
            name="main",
            image="postgres:16",
            configuration_dir="/data/fleet/pg-main",
            network="fleet",
            service=service,
        )

        service["image"] = "evil:latest"
        service["environment"].append("B=2")

        assert spec.service["image"] == "postgres:16"
        assert spec.to_compose()["services"]["pg-main"]["environment"] == ["A=1"]
