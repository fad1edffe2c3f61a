"""Backend adapters.

Each adapter knows how to open a connection for one driver, apply the data
source's per-statement timeout, and run a statement returning columns and
rows. Errors are raised as the driver raises them; the data source turns them
into RunOutcome errors.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

import oracledb
import psycopg
from loguru import logger

from query_health_checks.models.data_source_config import Adapter, DataSourceConfig

# Oracle client configuration is not read from tnsnames/sqlnet files
oracledb.defaults.config_dir = None

Rows = List[Tuple[Any, ...]]


class Backend(ABC):
    """Base class for all backend adapters."""

    def __init__(self, config: DataSourceConfig) -> None:
        self.config = config

    @property
    def timeout_ms(self) -> Optional[int]:
        if not self.config.timeout:
            return None
        return int(self.config.timeout * 1000)

    @abstractmethod
    def connect(self) -> Any:
        """Open a new connection with the statement timeout applied."""
        pass

    @abstractmethod
    def execute(self, connection: Any, statement: str) -> Tuple[List[str], Rows]:
        """Run a statement.

        Args:
            connection: A connection returned by connect().
            statement: The statement to run.

        Returns:
            Tuple[List[str], Rows]: The column names and the rows.
        """
        pass

    @abstractmethod
    def is_alive(self, connection: Any) -> bool:
        """Whether the connection can still be used."""
        pass

    def close(self, connection: Any) -> None:
        try:
            connection.close()
        except Exception as e:
            logger.warning(f"[CONNECT] Error closing connection for {self.config.id}: {e}")


class PostgresBackend(Backend):
    """PostgreSQL (and Redshift) through psycopg."""

    def connect(self) -> psycopg.Connection:
        if self.config.url is None:
            raise ValueError(f"Data source {self.config.id} has no url")
        conn = psycopg.connect(self.config.url.get_secret_value(), autocommit=True)
        if self.timeout_ms:
            conn.execute(f"SET statement_timeout = {self.timeout_ms}")
        return conn

    def execute(self, connection: psycopg.Connection, statement: str) -> Tuple[List[str], Rows]:
        with connection.cursor() as cur:
            cur.execute(statement)
            if cur.description is None:
                return [], []
            columns = [column.name for column in cur.description]
            return columns, [tuple(row) for row in cur.fetchall()]

    def is_alive(self, connection: psycopg.Connection) -> bool:
        return not connection.closed and not connection.broken


class OracleBackend(Backend):
    """Oracle through python-oracledb in thin mode."""

    def get_auth_mode(self) -> int:
        """Get oracledb authentication mode constant.

        Returns:
            int: oracledb authentication mode, AUTH_MODE_DEFAULT when not set.
        """
        auth_mode = self.config.auth_mode
        if not auth_mode or auth_mode.lower() == "default":
            return oracledb.AUTH_MODE_DEFAULT

        mode_map = {
            "sysdba": oracledb.AUTH_MODE_SYSDBA,
            "sysoper": oracledb.AUTH_MODE_SYSOPER,
        }
        return mode_map.get(auth_mode.lower(), oracledb.AUTH_MODE_DEFAULT)

    def connect(self) -> oracledb.Connection:
        password = self.config.password.get_secret_value() if self.config.password else None
        conn = oracledb.connect(
            user=self.config.username,
            password=password,
            dsn=self.config.dsn(),
            mode=self.get_auth_mode(),
        )
        if self.timeout_ms:
            conn.call_timeout = self.timeout_ms
        return conn

    def execute(self, connection: oracledb.Connection, statement: str) -> Tuple[List[str], Rows]:
        with connection.cursor() as cur:
            cur.execute(statement)
            if cur.description is None:
                return [], []
            columns = [column[0] for column in cur.description]
            return columns, [tuple(row) for row in cur.fetchall()]

    def is_alive(self, connection: oracledb.Connection) -> bool:
        return connection.is_healthy()


class SqliteBackend(Backend):
    """SQLite through the standard library driver.

    SQLite has no statement timeout, so a progress handler interrupts the
    statement once the deadline passes. The interrupted statement fails with
    "interrupted". The handler belongs to the connection, so statements on a
    shared connection run one at a time.
    """

    def __init__(self, config: DataSourceConfig) -> None:
        super().__init__(config)
        self._execute_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        path = self.config.url.get_secret_value() if self.config.url else ":memory:"
        return sqlite3.connect(path, check_same_thread=False)

    def execute(self, connection: sqlite3.Connection, statement: str) -> Tuple[List[str], Rows]:
        with self._execute_lock:
            if self.config.timeout:
                deadline = time.monotonic() + self.config.timeout
                connection.set_progress_handler(lambda: int(time.monotonic() > deadline), 1000)
            try:
                cur = connection.execute(statement)
                if cur.description is None:
                    return [], []
                columns = [column[0] for column in cur.description]
                return columns, [tuple(row) for row in cur.fetchall()]
            finally:
                if self.config.timeout:
                    connection.set_progress_handler(None, 0)

    def is_alive(self, connection: sqlite3.Connection) -> bool:
        with self._execute_lock:
            try:
                connection.execute("SELECT 1")
            except sqlite3.Error:
                return False
            return True


BACKENDS = {
    Adapter.POSTGRES: PostgresBackend,
    Adapter.ORACLE: OracleBackend,
    Adapter.SQLITE: SqliteBackend,
}


def build_backend(config: DataSourceConfig) -> Backend:
    """Create the adapter for a data source's driver."""
    return BACKENDS[config.adapter](config)
