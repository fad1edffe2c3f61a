"""Check models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from query_health_checks.models.check_state import CheckState, CheckType


class Check(BaseModel):
    """A scheduled health probe wrapping one query."""

    id: str = Field(..., description="The check identifier")
    query_id: str = Field(..., description="The query this check runs")
    schedule: str = Field(..., description="The schedule tier, e.g. '1 hour'")
    state: CheckState = Field(CheckState.NEW, description="The current state")
    check_type: CheckType = Field(
        CheckType.BAD_DATA, description="What counts as an unhealthy result"
    )
    emails: str = Field("", description="Comma separated recipient addresses")
    last_run_at: Optional[datetime] = Field(None, description="When the check last ran")
    state_changed_at: Optional[datetime] = Field(
        None, description="When the state last changed"
    )

    class Config:
        """Pydantic config."""

        extra = "ignore"

    def split_emails(self) -> List[str]:
        """Get the recipient list.

        Returns:
            List[str]: Lowercased addresses in configured order, without duplicates.
        """
        emails: List[str] = []
        for email in self.emails.lower().split(","):
            email = email.strip()
            if email and email not in emails:
                emails.append(email)
        return emails
