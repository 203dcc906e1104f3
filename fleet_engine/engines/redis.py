# fleet_engine/engines/redis.py
"""Key-value store (Redis)."""

import shlex
from typing import List, Tuple

from fleet_engine.deployment.spec import BindMount
from fleet_engine.domain.models import EngineConfig, EngineKind
from fleet_engine.engines.base import ConfigMount, StartupCommand
from fleet_engine.pipeline.sequence import FileChannel, FileMaterialization


class RedisEngine:
    kind = EngineKind.REDIS
    # redis.conf goes through the agent's upload endpoint, not the echo channel
    config_mount = ConfigMount(
        filename="redis.conf",
        target="/usr/local/etc/redis/redis.conf",
        channel=FileChannel.COPY,
    )

    def mandatory_environment(self, config: EngineConfig) -> List[Tuple[str, str]]:
        return [("REDIS_PASSWORD", config.credentials.password)]

    def health_check(self, config: EngineConfig) -> List[str]:
        return ["CMD-SHELL", "redis-cli ping"]

    def startup_command(self, config: EngineConfig) -> StartupCommand:
        flags = f"--requirepass {shlex.quote(config.credentials.password)} --appendonly yes"
        if config.custom_conf is None:
            return f"redis-server {flags}"
        return f"redis-server {self.config_mount.target} {flags}"

    def bootstrap_files(self, config: EngineConfig, bootstrap_dir: str) -> List[FileMaterialization]:
        return []

    def bootstrap_mounts(self, config: EngineConfig, bootstrap_dir: str) -> List[BindMount]:
        return []

    def backup_commands(self, config: EngineConfig, backup_dir: str, stamp: str) -> List[str]:
        password = shlex.quote(config.credentials.password)
        return [
            f"docker exec {config.uuid} redis-cli -a {password} --no-auth-warning SAVE",
            f"docker cp {config.uuid}:/data/dump.rdb {backup_dir}/redis-dump-{stamp}.rdb",
        ]
