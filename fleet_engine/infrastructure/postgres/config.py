#fleet_engine\infrastructure\postgres\config.py

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class DatabaseSettings(BaseSettings):
    """Control plane database, read from FLEET_DB_* variables.

    Either set ``FLEET_DB_URL`` or the individual connection parts.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLEET_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    url: Optional[str] = None

    user: str = "fleet"
    password: str = ""
    host: str = "localhost"
    port: int = 5432
    name: str = "fleet"

    # Pool sizing for one scheduler or executor process
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    echo_sql: bool = False

    @property
    def database_url(self) -> str:
        if self.url:
            return self.url
        return URL.create(
            "postgresql+psycopg2",
            username=self.user,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.name,
        ).render_as_string(hide_password=False)


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Read on first use so importing the package never needs a database."""
    return DatabaseSettings()
