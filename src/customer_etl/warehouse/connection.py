"""
Warehouse connection pool (psycopg3 + psycopg_pool)

Connection settings come from explicit arguments or the DB_* environment
variables. Rows are returned as dictionaries.
"""
import os
import time
from contextlib import contextmanager

from psycopg import Connection, OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from customer_etl.core.exceptions import ConfigurationError, SinkConnectivityError
from customer_etl.observability.logger import get_logger

logger = get_logger(__name__)

ENV_DEFAULTS = {
    "host": ("DB_HOST", "localhost"),
    "port": ("DB_PORT", "5432"),
    "database": ("DB_NAME", "customers"),
    "user": ("DB_USER", "etl"),
}


class DatabaseConnectionPool:
    """
    Lazily opened pool of warehouse connections.

    Two ways to use a connection:

    * ``get_connection()`` scopes a connection to a ``with`` block; the pool
      commits on clean exit and rolls back on error.
    * ``acquire()`` / ``release()`` hand out a connection the caller manages,
      so a sink can hold it across begin, write and commit.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Raises:
            ConfigurationError: when neither ``password`` nor DB_PASSWORD is set
        """
        self.host = host or os.getenv(*ENV_DEFAULTS["host"])
        self.port = port or int(os.getenv(*ENV_DEFAULTS["port"]))
        self.database = database or os.getenv(*ENV_DEFAULTS["database"])
        self.user = user or os.getenv(*ENV_DEFAULTS["user"])
        self.password = password or os.getenv("DB_PASSWORD")
        if not self.password:
            raise ConfigurationError(
                "No warehouse password configured: pass password= or set DB_PASSWORD"
            )

        self.min_size = min_size
        self.max_size = max(max_size, min_size)
        self.timeout = timeout
        self.conninfo = make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
            connect_timeout=max(1, int(timeout)),
        )
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _new_pool(self) -> ConnectionPool:
        return ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, waiting for ``min_size`` connections.

        A failed attempt is retried after ``retry_delay`` seconds, up to
        ``max_retries`` attempts in total. Opening an open pool is a no-op.

        Raises:
            SinkConnectivityError: when the last attempt fails
        """
        if self._pool is not None:
            return

        failure: Exception | None = None
        attempt = 0
        while attempt < max_retries:
            attempt += 1
            pool = self._new_pool()
            try:
                pool.open(wait=True, timeout=self.timeout)
            except (OperationalError, PoolTimeout) as e:
                pool.close()
                failure = e
                logger.warning(
                    "Warehouse unreachable",
                    extra={"attempt": attempt, "max_retries": max_retries, "error": str(e)},
                )
                if attempt < max_retries:
                    time.sleep(retry_delay)
                continue

            self._pool = pool
            logger.info(
                "Warehouse pool ready",
                extra={"host": self.host, "database": self.database, "max_size": self.max_size},
            )
            return

        raise SinkConnectivityError(
            f"Could not reach warehouse {self.host}:{self.port}/{self.database} "
            f"after {max_retries} attempts",
            context={"host": self.host, "port": self.port, "database": self.database},
            original_exception=failure,
        )

    def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            raise RuntimeError("Warehouse pool is closed; call open() first")
        return self._pool

    def acquire(self, timeout: float | None = None) -> Connection:
        """Check out a connection. Raises PoolTimeout when none frees up in time."""
        return self.pool.getconn(timeout=timeout)

    def release(self, conn: Connection) -> None:
        self.pool.putconn(conn)

    @contextmanager
    def get_connection(self):
        with self.pool.connection() as conn:
            yield conn

    def execute_query(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run a SELECT and return every row as a dict"""
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchall()

    def execute_command(self, command: str, params: tuple | None = None) -> int:
        """Run one statement in its own transaction; returns the affected row count"""
        with self.get_connection() as conn:
            rowcount = conn.execute(command, params).rowcount
            conn.commit()
        return rowcount

    def execute_batch(self, command: str, params_list: list[tuple]) -> None:
        """Run ``command`` once per parameter tuple in a single transaction"""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(command, params_list)
            conn.commit()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
