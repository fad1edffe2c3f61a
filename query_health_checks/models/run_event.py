"""Telemetry event models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from query_health_checks.models.check_state import CheckState


class RunEvent(BaseModel):
    """One structured record per check run."""

    check_id: str = Field(..., description="The check identifier")
    query_id: str = Field(..., description="The query identifier")
    query_name: str = Field("", description="The query display name")
    state_was: CheckState = Field(..., description="The state before the run")
    state: CheckState = Field(..., description="The state after the run")
    outcome_state: CheckState = Field(
        ..., description="The state derived from the outcome, before the disabled rule"
    )
    rows: Optional[int] = Field(None, description="The row count, absent on error")
    error: Optional[str] = Field(None, description="The error message, if any")
    tries: int = Field(..., description="The number of attempts used")
    started_at: datetime = Field(..., description="When the run started")
    duration: float = Field(0.0, description="The run duration in seconds")
