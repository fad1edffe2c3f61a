"""Telemetry sinks for check run events."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

from loguru import logger

from query_health_checks.models.check_state import CheckState
from query_health_checks.models.run_event import RunEvent


class TelemetrySink(ABC):
    """Accepts one structured event per check run."""

    @abstractmethod
    def record(self, event: RunEvent) -> None:
        pass


def logfmt_value(value: object) -> str:
    text = "" if value is None else str(getattr(value, "value", value))
    if not text or any(c in text for c in ' ="'):
        text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


class LoggingTelemetrySink(TelemetrySink):
    """Writes each event as a debug logfmt line with its fields bound to the record."""

    FIELDS = ("check_id", "query_id", "query_name", "state_was", "state", "rows", "error", "tries")

    def record(self, event: RunEvent) -> None:
        fields = event.model_dump(mode="json")
        line = " ".join(f"{name}={logfmt_value(getattr(event, name))}" for name in self.FIELDS)
        line += f" duration={event.duration:.2f}"
        logger.bind(**fields).debug(f"[CHECK] {line}")


class RunHistory(TelemetrySink):
    """Keeps the events of this process in memory."""

    def __init__(self) -> None:
        self.events: List[RunEvent] = []
        self._lock = threading.Lock()

    def record(self, event: RunEvent) -> None:
        with self._lock:
            self.events.append(event)

    def clear(self) -> None:
        with self._lock:
            self.events.clear()

    def get_summary(self) -> Dict[str, int]:
        """Count events by resulting state.

        Returns:
            Dict: Count per state value, plus 'total'.
        """
        summary = {state.value: 0 for state in CheckState}
        for event in self.events:
            summary[event.state.value] += 1
        summary["total"] = len(self.events)
        return summary


class FanoutTelemetrySink(TelemetrySink):
    """Forwards every event to several sinks."""

    def __init__(self, sinks: Iterable[TelemetrySink]) -> None:
        self.sinks = list(sinks)

    def record(self, event: RunEvent) -> None:
        for sink in self.sinks:
            try:
                sink.record(event)
            except Exception as e:
                logger.warning(f"[CHECK] Telemetry sink {type(sink).__name__} failed: {e}")
