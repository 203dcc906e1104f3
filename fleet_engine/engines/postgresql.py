# fleet_engine/engines/postgresql.py
"""Relational store (PostgreSQL)."""

import shlex
from typing import List, Tuple

from fleet_engine.deployment.spec import BOOTSTRAP_TARGET, BindMount
from fleet_engine.domain.models import EngineConfig, EngineKind
from fleet_engine.engines.base import ConfigMount, StartupCommand
from fleet_engine.pipeline.sequence import FileMaterialization


class PostgresEngine:
    kind = EngineKind.POSTGRESQL
    config_mount = ConfigMount(
        filename="custom-postgres.conf",
        target="/etc/postgresql/postgresql.conf",
    )

    def mandatory_environment(self, config: EngineConfig) -> List[Tuple[str, str]]:
        creds = config.credentials
        return [
            ("POSTGRES_USER", creds.user),
            ("PGUSER", creds.user),
            ("POSTGRES_PASSWORD", creds.password),
            ("POSTGRES_DB", creds.db),
        ]

    def health_check(self, config: EngineConfig) -> List[str]:
        creds = config.credentials
        user, db = shlex.quote(creds.user), shlex.quote(creds.db)
        return [
            "CMD-SHELL",
            f"psql -U {user} -d {db} -c 'SELECT 1' || exit 1",
        ]

    def startup_command(self, config: EngineConfig) -> StartupCommand:
        # Set together with the config bind mount, never one without the other.
        if config.custom_conf is None:
            return None
        return ["postgres", "-c", f"config_file={self.config_mount.target}"]

    def bootstrap_files(self, config: EngineConfig, bootstrap_dir: str) -> List[FileMaterialization]:
        return [
            FileMaterialization(path=f"{bootstrap_dir}/{script.filename}", content=script.content)
            for script in config.init_scripts
        ]

    def bootstrap_mounts(self, config: EngineConfig, bootstrap_dir: str) -> List[BindMount]:
        return [
            BindMount(
                source=f"{bootstrap_dir}/{script.filename}",
                target=f"{BOOTSTRAP_TARGET}/{script.filename}",
                read_only=True,
            )
            for script in config.init_scripts
        ]

    def backup_commands(self, config: EngineConfig, backup_dir: str, stamp: str) -> List[str]:
        creds = config.credentials
        target = shlex.quote(f"{backup_dir}/pg-dump-{creds.db}-{stamp}.dmp")
        return [
            f"docker exec {config.uuid} pg_dump --format=custom --no-acl --no-owner "
            f"--username {shlex.quote(creds.user)} {shlex.quote(creds.db)} "
            f"> {target}",
        ]
