"""Classification of backend errors into retry decisions.

Each backend family words statement timeouts and dropped connections
differently, so the vocabulary is kept as a table of patterns. New backend
error strings are added to the table, not to the matching logic.
"""

from enum import Enum
from typing import Iterable, List, NamedTuple, Optional, Tuple

TIMEOUT_MESSAGE = "Query timed out :("


class ErrorClass(str, Enum):
    """Retry decision for a failed attempt."""

    TIMEOUT = "timeout"
    CONNECTION_LOST = "connection_lost"
    TERMINAL = "terminal"


class MatchKind(str, Enum):
    """How a pattern is compared with error text."""

    CONTAINS = "contains"
    PREFIX = "prefix"
    EXACT = "exact"


class ErrorPattern(NamedTuple):
    """One entry of the error vocabulary."""

    phrase: str
    match: MatchKind
    kind: ErrorClass
    backend: str = "any"

    def matches(self, error: str) -> bool:
        if self.match == MatchKind.PREFIX:
            return error.startswith(self.phrase)
        if self.match == MatchKind.EXACT:
            return error == self.phrase
        return self.phrase in error


TIMEOUT_PATTERNS: Tuple[ErrorPattern, ...] = (
    ErrorPattern("canceling statement due to statement timeout", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "postgres"),
    ErrorPattern("cancelled on user's request", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "redshift"),
    ErrorPattern("canceled on user's request", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "redshift"),
    ErrorPattern("system requested abort", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "redshift"),
    ErrorPattern("maximum statement execution time exceeded", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "mysql"),
    ErrorPattern("call timeout of", MatchKind.CONTAINS, ErrorClass.TIMEOUT, "oracle"),
    ErrorPattern("interrupted", MatchKind.EXACT, ErrorClass.TIMEOUT, "sqlite"),
)

CONNECTION_PATTERNS: Tuple[ErrorPattern, ...] = (
    ErrorPattern("PG::ConnectionBad", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "postgres"),
    ErrorPattern("server closed the connection unexpectedly", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "postgres"),
    ErrorPattern("consuming input failed", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "postgres"),
    ErrorPattern("the connection is closed", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "postgres"),
    ErrorPattern("the connection is lost", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "postgres"),
    ErrorPattern("DPY-1001", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("DPY-4011", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("DPI-1080", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("ORA-03113", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("ORA-03114", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("ORA-03135", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "oracle"),
    ErrorPattern("Lost connection to MySQL server", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "mysql"),
    ErrorPattern("MySQL server has gone away", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "mysql"),
    ErrorPattern("Cannot operate on a closed database", MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "sqlite"),
)

DEFAULT_PATTERNS: Tuple[ErrorPattern, ...] = TIMEOUT_PATTERNS + CONNECTION_PATTERNS


class ErrorClassifier:
    """Maps raw backend error text to an ErrorClass."""

    def __init__(
        self,
        patterns: Iterable[ErrorPattern] = DEFAULT_PATTERNS,
        timeout_message: str = TIMEOUT_MESSAGE,
    ) -> None:
        self.patterns: Tuple[ErrorPattern, ...] = tuple(patterns)
        self.timeout_message = timeout_message

    def with_patterns(self, extra: Iterable[ErrorPattern]) -> "ErrorClassifier":
        """Return a new classifier with additional patterns appended."""
        return ErrorClassifier(self.patterns + tuple(extra), self.timeout_message)

    def is_timeout_text(self, error: Optional[str]) -> bool:
        """Whether a raw backend error means the statement timed out."""
        if not error:
            return False
        return any(
            p.kind == ErrorClass.TIMEOUT and p.matches(error) for p in self.patterns
        )

    def classify(self, error: Optional[str]) -> Optional[ErrorClass]:
        """Classify an attempt's error.

        Args:
            error: The RunOutcome error, already normalized by the data source.

        Returns:
            ErrorClass: The retry decision, or None when there is no error.
        """
        if error is None:
            return None
        if error == self.timeout_message:
            return ErrorClass.TIMEOUT
        for pattern in self.patterns:
            if pattern.kind == ErrorClass.CONNECTION_LOST and pattern.matches(error):
                return ErrorClass.CONNECTION_LOST
        return ErrorClass.TERMINAL


def build_patterns(
    timeout: Iterable[str] = (), connection: Iterable[str] = ()
) -> List[ErrorPattern]:
    """Build configured extra patterns.

    Args:
        timeout: Phrases matched anywhere in the error text.
        connection: Prefixes of connection-reset errors.

    Returns:
        List[ErrorPattern]: Patterns tagged as configured.
    """
    patterns = [
        ErrorPattern(phrase, MatchKind.CONTAINS, ErrorClass.TIMEOUT, "configured")
        for phrase in timeout
    ]
    patterns.extend(
        ErrorPattern(prefix, MatchKind.PREFIX, ErrorClass.CONNECTION_LOST, "configured")
        for prefix in connection
    )
    return patterns
