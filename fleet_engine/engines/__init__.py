"""Database engine variants."""

from typing import Dict

from fleet_engine.core.errors import ConfigurationError
from fleet_engine.domain.models import EngineKind

from .base import EngineStrategy

from .mongodb import MongoEngine
from .postgresql import PostgresEngine
from .redis import RedisEngine


ENGINES: Dict[EngineKind, EngineStrategy] = {
    EngineKind.MONGODB: MongoEngine(),
    EngineKind.POSTGRESQL: PostgresEngine(),
    EngineKind.REDIS: RedisEngine(),
}


def get_strategy(kind: EngineKind) -> EngineStrategy:
    try:
        return ENGINES[kind]
    except KeyError:
        raise ConfigurationError(f"unsupported engine {kind!r}")


__all__ = ["ENGINES", "EngineStrategy", "get_strategy", "MongoEngine", "PostgresEngine", "RedisEngine"]
