"""Engine settings models matching query_checks.yaml."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr

from .data_source_config import DataSourceConfig


class RetrySettings(BaseModel):
    """Retry policy for transient backend failures."""

    max_attempts: int = Field(3, ge=1, description="Attempts per check run")
    backoff_seconds: float = Field(10, ge=0, description="Wait between attempts")


class SmtpSettings(BaseModel):
    """SMTP delivery settings."""

    host: str
    port: int = 587
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    use_tls: bool = True


class ErrorPatternSettings(BaseModel):
    """Additional backend error phrases."""

    timeout: List[str] = Field(default_factory=list)
    connection: List[str] = Field(default_factory=list)


class EngineSettings(BaseModel):
    """Top-level settings model."""

    check_schedules: List[str] = Field(
        default_factory=lambda: ["5 minutes", "1 hour", "1 day"]
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)
    transform_statement: Optional[str] = Field(
        None, description="Statement transform hook as 'module:function'"
    )
    from_email: Optional[str] = None
    smtp: Optional[SmtpSettings] = None
    error_patterns: ErrorPatternSettings = Field(default_factory=ErrorPatternSettings)
    data_sources: Dict[str, DataSourceConfig] = Field(default_factory=dict)

    class Config:
        """Pydantic config."""

        extra = "ignore"
