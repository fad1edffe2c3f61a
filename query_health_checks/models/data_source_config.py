"""Data source configuration models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr


class Adapter(str, Enum):
    """Supported backend drivers."""

    POSTGRES = "postgres"
    ORACLE = "oracle"
    SQLITE = "sqlite"


class CacheMode(str, Enum):
    """When results of normal runs are cached."""

    ALL = "all"
    SLOW = "slow"
    OFF = "off"


class CacheConfig(BaseModel):
    """Result cache settings for one data source."""

    mode: CacheMode = Field(CacheMode.OFF, description="The caching mode")
    expires_in: float = Field(3600, description="The cache TTL in seconds")
    slow_threshold: float = Field(
        15, description="Minimum run time in seconds to cache in slow mode"
    )

    class Config:
        """Pydantic config."""

        extra = "ignore"


class DataSourceConfig(BaseModel):
    """Single data source connection configuration."""

    id: str = Field(..., description="The data source identifier")
    adapter: Adapter = Field(Adapter.POSTGRES, description="The backend driver")
    url: Optional[SecretStr] = Field(
        None, description="The connection URL (postgres) or database path (sqlite)"
    )
    hostname: Optional[str] = Field(None, description="The Oracle hostname")
    port: int = Field(1521, description="The Oracle listener port")
    service_name: Optional[str] = Field(None, description="The Oracle service name")
    username: Optional[str] = Field(None, description="The Oracle username")
    password: Optional[SecretStr] = Field(None, description="The Oracle password")
    auth_mode: Optional[str] = Field("default", description="The Oracle auth mode")
    timeout: Optional[float] = Field(
        None, description="The per-statement timeout in seconds"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    reconnect: bool = Field(True, description="Whether reconnect is supported")

    class Config:
        """Pydantic config."""

        extra = "ignore"

    def dsn(self) -> str:
        """Generate Oracle DSN string.

        Returns:
            str: DSN in format (DESCRIPTION=...)
        """
        return f"(DESCRIPTION=(ADDRESS=(PROTOCOL=TCP)(HOST={self.hostname})(PORT={self.port}))(CONNECT_DATA=(SERVICE_NAME={self.service_name})))"
