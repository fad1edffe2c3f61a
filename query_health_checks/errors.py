"""Exceptions raised by the check engine."""


class QueryCheckError(Exception):
    """Base class for check engine errors."""


class ConfigurationError(QueryCheckError):
    """Raised when engine settings or the check inventory are invalid."""


class UnknownScheduleError(QueryCheckError):
    """Raised when a dispatch names a schedule tier that is not configured."""


class TransformHookError(QueryCheckError):
    """Raised when the statement transform hook fails."""
