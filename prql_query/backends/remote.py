"""
Remote database backend.

Executes SQL on a PostgreSQL (psycopg2) or MySQL (pymysql) server and
returns the rows as Arrow record batches.
"""

from typing import Any, Mapping, Optional
from urllib.parse import unquote, urlparse

import pyarrow as pa

try:
    import psycopg2
except ImportError:
    psycopg2 = None

try:
    import pymysql
except ImportError:
    pymysql = None

from .base import Backend, BackendKind, ResultSet, quote_identifier
from ..config import RemoteConfig
from ..errors import BackendExecutionError
from ..logging import get_logger
from ..sources import Source


logger = get_logger(__name__)

TARGETS = {
    "postgres": "sql.postgres",
    "postgresql": "sql.postgres",
    "mysql": "sql.mysql",
}


def database_scheme(database: Optional[str]) -> str:
    """Lower-cased scheme of a connection string, '' when it has none."""
    if not database or "://" not in database:
        return ""
    return database.split("://", 1)[0].lower()


def mysql_connect_kwargs(database: str, connect_timeout: int) -> dict[str, Any]:
    """Translate a mysql:// URL into pymysql.connect() arguments."""
    url = urlparse(database)
    kwargs: dict[str, Any] = {
        "host": url.hostname or "localhost",
        "port": url.port or 3306,
        "connect_timeout": connect_timeout,
    }
    if url.username:
        kwargs["user"] = unquote(url.username)
    if url.password:
        kwargs["password"] = unquote(url.password)
    if url.path.strip("/"):
        kwargs["database"] = url.path.strip("/")
    return kwargs


def rows_to_arrow(columns: list[str], rows: list[tuple]) -> pa.Table:
    """Convert cursor rows to a PyArrow Table, keeping duplicate column names."""
    if not rows:
        return pa.Table.from_arrays([pa.array([], pa.null()) for _ in columns], names=columns)

    arrays = [pa.array(list(values)) for values in zip(*rows)]
    return pa.Table.from_arrays(arrays, names=columns)


class RemoteBackend(Backend):
    """
    Remote SQL server connector.

    Best used for tables that live in the database; file sources are not
    supported. Connection is opened for one query and closed.
    """

    kind = BackendKind.REMOTE

    def __init__(self, config: RemoteConfig, database: Optional[str] = None):
        self.config = config
        self.database = database
        self.scheme = database_scheme(database)
        self.name = self.scheme or "remote"
        self._conn = None

    @property
    def target(self) -> str:
        return TARGETS.get(self.scheme, "sql.generic")

    @property
    def conn(self):
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = self._create_connection()
        return self._conn

    def _create_connection(self):
        if not self.database:
            raise BackendExecutionError(self.name, "a --database connection string is required")

        if self.scheme in ("postgres", "postgresql"):
            if psycopg2 is None:
                raise BackendExecutionError(
                    self.name, "psycopg2 is required. Install with: pip install psycopg2-binary"
                )
            return psycopg2.connect(self.database, connect_timeout=self.config.connect_timeout)

        if self.scheme == "mysql":
            if pymysql is None:
                raise BackendExecutionError(self.name, "pymysql is required. Install with: pip install pymysql")
            return pymysql.connect(**mysql_connect_kwargs(self.database, self.config.connect_timeout))

        raise BackendExecutionError(self.name, f"unsupported database scheme in {self.database!r}")

    def open(self) -> None:
        try:
            self.conn
        except BackendExecutionError:
            raise
        except Exception as e:
            raise self.error(e, "cannot connect") from e

    def scan_expression(self, source: Source, name: str) -> str:
        if source.is_file:
            raise BackendExecutionError(
                self.name, f"file source {source.location!r} cannot be read by a remote database"
            )
        return source.location

    def bind(self, relations: Mapping[str, Source], as_views: bool = False) -> None:
        if not as_views:
            return

        aliased = {name: s for name, s in relations.items() if name != s.location}
        for name, source in aliased.items():
            self.scan_expression(source, name)

        if not aliased:
            return

        if self.scheme == "mysql":
            logger.warning(
                "MySQL has no temporary views; raw SQL must use table names, "
                f"not aliases: {', '.join(aliased)}"
            )
            return

        try:
            with self.conn.cursor() as cur:
                for name, source in aliased.items():
                    logger.debug(f"Binding {name} -> {source.location}")
                    cur.execute(
                        f"CREATE TEMP VIEW {quote_identifier(name)} AS SELECT * FROM {source.location}"
                    )
        except Exception as e:
            raise self.error(e, "binding sources") from e

    def execute(self, sql: str) -> ResultSet:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql)
                if cur.description is None:
                    return ResultSet(schema=pa.schema([]), batches=[])
                columns = [col[0] for col in cur.description]
                rows = cur.fetchall()
            table = rows_to_arrow(columns, list(rows))
        except Exception as e:
            raise self.error(e) from e

        logger.info(f"Fetched {table.num_rows} rows from {self.name}")
        return ResultSet.from_table(table, max_chunksize=self.config.batch_size)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
