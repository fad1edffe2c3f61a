"""A configured data source: one backend connection shared by all checks."""

import threading
import time
from typing import Any, Callable, Optional

from loguru import logger

from query_health_checks.backends import Backend, build_backend
from query_health_checks.error_classifier import TIMEOUT_MESSAGE, ErrorClassifier
from query_health_checks.models.data_source_config import CacheMode, DataSourceConfig
from query_health_checks.models.run_outcome import RunOutcome
from query_health_checks.result_cache import ResultCache


class DataSource:
    """Runs statements against one backend and caches their results."""

    def __init__(
        self,
        config: DataSourceConfig,
        cache: ResultCache,
        classifier: Optional[ErrorClassifier] = None,
        backend: Optional[Backend] = None,
        timer: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ) -> None:
        """Initialize a data source.

        The connection is opened lazily on the first statement.

        Args:
            config: The data source configuration.
            cache: The result cache shared by all data sources.
            classifier: Used to recognise backend timeout errors.
            backend: The backend adapter. Built from the config adapter if None.
            timer: Measures run duration for the slow cache mode.
            debug: Enable debug logging.
        """
        self.id = config.id
        self.config = config
        self.cache = cache
        self.classifier = classifier or ErrorClassifier()
        self.backend = backend or build_backend(config)
        self.timer = timer
        self.debug = debug
        self._connection: Any = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DataSource(id={self.id!r}, adapter={self.config.adapter.value!r})"

    @property
    def cache_enabled(self) -> bool:
        return self.config.cache.mode != CacheMode.OFF

    def _get_connection(self) -> Any:
        with self._lock:
            if self._connection is None:
                if self.debug:
                    logger.debug(f"[CONNECT] Opening connection for {self.id}")
                self._connection = self.backend.connect()
            return self._connection

    # Statement Execution
    # =====================================================================
    def run_statement(self, statement: str, refresh_cache: bool = False) -> RunOutcome:
        """Run a statement, serving it from the cache when allowed.

        Backend failures never raise; they are returned as the outcome error.
        Any backend timeout is reported as TIMEOUT_MESSAGE.

        Args:
            statement: The statement to run.
            refresh_cache: Skip the cache lookup and always replace the entry:
                a success is stored, an error drops it.

        Returns:
            RunOutcome: The columns and rows, or the error.
        """
        if self.cache_enabled and not refresh_cache:
            cached = self.cache.lookup(self.id, statement)
            if cached is not None:
                if self.debug:
                    logger.debug(f"[CACHE] Hit for {self.id}, cached at {cached.cached_at}")
                return cached

        start = self.timer()
        try:
            columns, rows = self.backend.execute(self._get_connection(), statement)
            outcome = RunOutcome(columns=columns, rows=rows)
        except Exception as e:
            error = str(e)
            if self.classifier.is_timeout_text(error):
                error = TIMEOUT_MESSAGE
            outcome = RunOutcome(error=error)
        duration = self.timer() - start

        if outcome.error is None and self._should_cache(duration, refresh_cache):
            self.cache.store(self.id, statement, outcome, self.config.cache.expires_in)
            if self.debug:
                logger.debug(f"[CACHE] Stored result for {self.id} ({duration:.2f}s)")
        elif outcome.error is not None and refresh_cache and self.cache_enabled:
            # A failed refresh must not leave an older success behind
            self.cache.invalidate(self.id, statement)
            if self.debug:
                logger.debug(f"[CACHE] Dropped entry for {self.id} after failed refresh")

        return outcome

    def _should_cache(self, duration: float, refresh_cache: bool) -> bool:
        mode = self.config.cache.mode
        if mode == CacheMode.OFF:
            return False
        if refresh_cache or mode == CacheMode.ALL:
            return True
        return duration >= self.config.cache.slow_threshold

    # Connection Management
    # =====================================================================
    def reconnect(self) -> None:
        """Re-establish the backend connection.

        A live connection is kept as is. Otherwise a fresh connection is
        swapped in before the old one is closed, so a statement still running
        on the old connection fails with a driver error instead of reading
        from the new one.
        """
        if not self.config.reconnect:
            logger.info(f"[RECONNECT] Reconnect not supported for {self.id}, skipping")
            return

        with self._lock:
            old = self._connection
            if old is not None and self.backend.is_alive(old):
                if self.debug:
                    logger.debug(f"[RECONNECT] Connection for {self.id} is alive")
                return
            self._connection = self.backend.connect()

        if old is not None:
            self.backend.close(old)
        logger.info(f"[RECONNECT] Reconnected {self.id}")

    def close(self) -> None:
        """Close the connection, if one is open."""
        with self._lock:
            conn, self._connection = self._connection, None
        if conn is not None:
            self.backend.close(conn)
            if self.debug:
                logger.debug(f"[CONNECT] Closed connection for {self.id}")
