"""Statement run outcome model."""

from datetime import datetime
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field


class RunOutcome(BaseModel):
    """Result of running one statement against a data source."""

    columns: List[str] = Field(default_factory=list, description="The column names")
    rows: Optional[List[Tuple[Any, ...]]] = Field(
        None, description="The returned rows, absent on error"
    )
    error: Optional[str] = Field(None, description="The error message, if any")
    cached_at: Optional[datetime] = Field(
        None, description="When the result was cached, if served from cache"
    )

    @property
    def row_count(self) -> Optional[int]:
        """Number of rows, or None when the statement failed."""
        return None if self.rows is None else len(self.rows)
