#fleet_engine\core\validation.py
import re
from typing import Union

from fleet_engine.core.errors import ConfigurationError
from fleet_engine.domain.models import (
    EngineConfig,
    EngineKind,
    MongoCredentials,
    PostgresCredentials,
    RedisCredentials,
)


INSTANCE_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

CREDENTIAL_TYPES = {
    EngineKind.MONGODB: MongoCredentials,
    EngineKind.POSTGRESQL: PostgresCredentials,
    EngineKind.REDIS: RedisCredentials,
}


def coerce_cpus(value: Union[str, float, int]) -> float:
    """CPU count is always emitted as a float, even when configured as '2'."""
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"limits_cpus must be numeric, got {value!r}")


def validate_engine_config(config: EngineConfig) -> None:
    # -------------------------
    # Identity
    # -------------------------
    if not config.uuid:
        raise ConfigurationError("uuid is required")

    if not INSTANCE_ID_PATTERN.match(config.uuid):
        raise ConfigurationError(
            f"uuid {config.uuid!r} is not a filesystem-safe identifier"
        )

    if not config.name:
        raise ConfigurationError("name is required")

    if not config.image:
        raise ConfigurationError("image is required")

    # -------------------------
    # Engine
    # -------------------------
    if not isinstance(config.engine, EngineKind):
        raise ConfigurationError(f"unsupported engine {config.engine!r}")

    expected = CREDENTIAL_TYPES[config.engine]
    if not isinstance(config.credentials, expected):
        raise ConfigurationError(
            f"{config.engine.value} requires {expected.__name__}"
        )

    # -------------------------
    # Placement
    # -------------------------
    if config.destination is None or not config.destination.network:
        raise ConfigurationError("destination network is required")

    if config.destination.server is None:
        raise ConfigurationError("destination server is required")

    # -------------------------
    # Limits
    # -------------------------
    coerce_cpus(config.limits.cpus)

    # -------------------------
    # Storage
    # -------------------------
    seen = set()
    for storage in config.persistent_storages:
        if not storage.mount_path:
            raise ConfigurationError(f"storage {storage.name!r} has no mount path")
        if not storage.is_bind_mount and not storage.name:
            raise ConfigurationError("named volume requires a name")
        if not storage.is_bind_mount:
            if storage.name in seen:
                raise ConfigurationError(f"duplicate volume name {storage.name!r}")
            seen.add(storage.name)

    # -------------------------
    # Files
    # -------------------------
    for script in config.init_scripts:
        if not FILENAME_PATTERN.match(script.filename or ""):
            raise ConfigurationError(
                f"init script filename {script.filename!r} is not a plain file name"
            )

    for variable in config.environment:
        if not variable.key:
            raise ConfigurationError("environment variable without a key")
