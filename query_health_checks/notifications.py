"""Notification sinks.

Sinks accept a message request per recipient and deliver it out of band.
Callers never wait for delivery and never see delivery errors.
"""

import os
import smtplib
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader
from loguru import logger

from query_health_checks.models.check import Check
from query_health_checks.models.engine_settings import SmtpSettings
from query_health_checks.models.query import Query
from query_health_checks.models.run_outcome import RunOutcome

QueryLookup = Callable[[str], Optional[Query]]


class NotificationSink(ABC):
    """Delivers check notifications."""

    @abstractmethod
    def send_failing_checks(self, recipient: str, checks: List[Check]) -> None:
        """Queue the digest of every unhealthy check a recipient follows."""
        pass

    @abstractmethod
    def send_state_change(
        self, recipient: str, check: Check, query: Query, outcome: RunOutcome
    ) -> None:
        """Queue a notice that a check changed state."""
        pass

    def close(self) -> None:
        pass


class LogNotificationSink(NotificationSink):
    """Logs notifications instead of delivering them."""

    def send_failing_checks(self, recipient: str, checks: List[Check]) -> None:
        logger.info(
            f"[NOTIFY] {recipient}: {len(checks)} failing check(s): "
            + ", ".join(f"{c.id} ({c.state.value})" for c in checks)
        )

    def send_state_change(
        self, recipient: str, check: Check, query: Query, outcome: RunOutcome
    ) -> None:
        logger.info(f"[NOTIFY] {recipient}: check {check.id} ({query.name}) is now {check.state.value}")


class MessageRenderer:
    """Renders notification subjects and bodies from Jinja2 templates."""

    def __init__(self, template_dir: Optional[str] = None) -> None:
        if template_dir is None:
            template_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
        self.env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)

    def failing_checks(
        self, checks: List[Check], query_lookup: QueryLookup
    ) -> Tuple[str, str]:
        subject = f"{len(checks)} Check{'s' if len(checks) != 1 else ''} Failing"
        rows = [(check, query_lookup(check.query_id)) for check in checks]
        body = self.env.get_template("failing_checks.html").render(checks=rows, subject=subject)
        return subject, body

    def state_change(self, check: Check, query: Query, outcome: RunOutcome) -> Tuple[str, str]:
        subject = f"Check {check.state.value.replace('_', ' ').title()}: {query.name}"
        body = self.env.get_template("state_change.html").render(
            check=check,
            query=query,
            outcome=outcome,
            rows=(outcome.rows or [])[:10],
            subject=subject,
        )
        return subject, body


class EmailNotificationSink(NotificationSink):
    """Sends notifications through SMTP on a background thread pool."""

    def __init__(
        self,
        smtp: SmtpSettings,
        from_email: str,
        query_lookup: QueryLookup,
        renderer: Optional[MessageRenderer] = None,
        max_workers: int = 2,
    ) -> None:
        """Initialize the e-mail sink.

        Args:
            smtp: The SMTP server settings.
            from_email: The sender address.
            query_lookup: Resolves a check's query for the message body.
            renderer: The template renderer.
            max_workers: The size of the delivery thread pool.
        """
        self.smtp = smtp
        self.from_email = from_email
        self.query_lookup = query_lookup
        self.renderer = renderer or MessageRenderer()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def send_failing_checks(self, recipient: str, checks: List[Check]) -> None:
        subject, body = self.renderer.failing_checks(checks, self.query_lookup)
        self._deliver_later(recipient, subject, body)

    def send_state_change(
        self, recipient: str, check: Check, query: Query, outcome: RunOutcome
    ) -> None:
        subject, body = self.renderer.state_change(check, query, outcome)
        self._deliver_later(recipient, subject, body)

    def _deliver_later(self, recipient: str, subject: str, body: str) -> Future:
        return self._executor.submit(self._deliver, recipient, subject, body)

    def _build_message(self, recipient: str, subject: str, body: str) -> str:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg.attach(MIMEText(body, "html"))
        return msg.as_string()

    def _deliver(self, recipient: str, subject: str, body: str) -> None:
        try:
            server = smtplib.SMTP(self.smtp.host, self.smtp.port)
            try:
                if self.smtp.use_tls:
                    server.starttls()
                if self.smtp.username and self.smtp.password:
                    server.login(self.smtp.username, self.smtp.password.get_secret_value())
                server.sendmail(
                    self.from_email, [recipient], self._build_message(recipient, subject, body)
                )
            finally:
                server.quit()
            logger.info(f"[NOTIFY] Sent '{subject}' to {recipient}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"[NOTIFY] Failed to send '{subject}' to {recipient}: {e}")

    def close(self) -> None:
        """Wait for queued deliveries and stop the pool."""
        self._executor.shutdown(wait=True)
