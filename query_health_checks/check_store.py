"""Persistent store interface for queries and checks."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from query_health_checks.models.check import Check
from query_health_checks.models.check_state import CheckState
from query_health_checks.models.query import Query


class CheckStore(ABC):
    """Where the engine reads queries and checks and writes check state."""

    @abstractmethod
    def get_query(self, query_id: str) -> Optional[Query]:
        """Get a query by identifier.

        Args:
            query_id: The query identifier.

        Returns:
            Query: The query, or None if not found.
        """
        pass

    @abstractmethod
    def list_checks(
        self,
        schedule: Optional[str] = None,
        states: Optional[Iterable[CheckState]] = None,
    ) -> List[Check]:
        """List checks in store order.

        Args:
            schedule: Only checks on this schedule tier. All tiers if None.
            states: Only checks in one of these states. All states if None.

        Returns:
            List[Check]: Snapshots of the matching checks.
        """
        pass

    @abstractmethod
    def update_check(self, check_id: str, state: CheckState, last_run_at: datetime) -> Check:
        """Record the outcome of a run.

        Args:
            check_id: The check identifier.
            state: The new state.
            last_run_at: When the check ran.

        Returns:
            Check: The updated check.

        Raises:
            KeyError: If the check is not found.
        """
        pass
