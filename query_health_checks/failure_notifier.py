"""Groups unhealthy checks by recipient and notifies each recipient once."""

from typing import Dict, List

from loguru import logger

from query_health_checks.check_store import CheckStore
from query_health_checks.models.check import Check
from query_health_checks.models.check_state import UNHEALTHY_STATES
from query_health_checks.notifications import NotificationSink


class FailureNotifier:
    """Sends each recipient the digest of their unhealthy checks."""

    def __init__(self, store: CheckStore, sink: NotificationSink, debug: bool = False) -> None:
        self.store = store
        self.sink = sink
        self.debug = debug

    def group_by_recipient(self) -> Dict[str, List[Check]]:
        """Map each recipient to the unhealthy checks they follow.

        Returns:
            Dict[str, List[Check]]: Recipients and checks, both in store order.
        """
        groups: Dict[str, List[Check]] = {}
        for check in self.store.list_checks(states=UNHEALTHY_STATES):
            for email in check.split_emails():
                checks = groups.setdefault(email, [])
                if all(c.id != check.id for c in checks):
                    checks.append(check)
        return groups

    def notify_failing(self) -> Dict[str, List[Check]]:
        """Hand one notification per recipient to the sink.

        Delivery happens out of band, so this returns without waiting.

        Returns:
            Dict[str, List[Check]]: The grouping that was sent.
        """
        groups = self.group_by_recipient()
        for email, checks in groups.items():
            if self.debug:
                logger.debug(f"[NOTIFY] Queueing {len(checks)} failing check(s) for {email}")
            try:
                self.sink.send_failing_checks(email, checks)
            except Exception as e:
                logger.error(f"[NOTIFY] Failed to queue failing checks for {email}: {e}")

        logger.info(f"[NOTIFY] Failing checks sent to {len(groups)} recipient(s)")
        return groups
