"""
DuckDB execution backend.

Embedded analytical database: scans local files directly and queries its
own on-disk store when given a duckdb:// database.
"""

from typing import Mapping, Optional

try:
    import duckdb
except ImportError:
    raise ImportError("duckdb is required. Install with: pip install duckdb")

from .base import Backend, BackendKind, ResultSet, quote_identifier, quote_literal
from ..config import DuckDBConfig, OutputConfig
from ..formats import OutputFormat, OutputSpec
from ..logging import get_logger
from ..sources import Source


logger = get_logger(__name__)

SCAN_FUNCTIONS = {
    "csv": "read_csv_auto",
    "json": "read_json_auto",
    "parquet": "read_parquet",
    "avro": "read_avro",
}

COPY_OPTIONS = {
    OutputFormat.CSV: "FORMAT CSV, HEADER",
    OutputFormat.JSON: "FORMAT JSON",
    OutputFormat.PARQUET: "FORMAT PARQUET, COMPRESSION {compression}",
}


def database_path(database: Optional[str]) -> str:
    """
    Map a connection string to a DuckDB database path.

    duckdb://shop.db -> shop.db, duckdb:///data/shop.db -> /data/shop.db,
    a plain path is used as is, and no database means in-memory.
    """
    if not database:
        return ":memory:"
    scheme, sep, rest = database.partition("://")
    if sep and scheme.lower() == "duckdb":
        return rest or ":memory:"
    return database


class DuckDBBackend(Backend):
    """DuckDB analytical engine."""

    kind = BackendKind.EMBEDDED
    name = "duckdb"
    target = "sql.duckdb"

    def __init__(
        self,
        config: DuckDBConfig,
        database: Optional[str] = None,
        output_config: Optional[OutputConfig] = None,
    ):
        self.config = config
        self.output_config = output_config or OutputConfig()
        self.database_path = database_path(database)
        self._conn: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create DuckDB connection."""
        if self._conn is None:
            self._conn = self._create_connection()
        return self._conn

    def _create_connection(self) -> duckdb.DuckDBPyConnection:
        """Create and configure DuckDB connection."""
        logger.debug(f"Connecting to duckdb database {self.database_path}")
        conn = duckdb.connect(self.database_path)

        if self.config.threads:
            conn.execute(f"SET threads = {self.config.threads}")

        if self.config.memory_limit:
            conn.execute(f"SET memory_limit = {quote_literal(self.config.memory_limit)}")

        return conn

    def open(self) -> None:
        try:
            self.conn
        except duckdb.Error as e:
            raise self.error(e, f"cannot open {self.database_path}") from e

    def scan_expression(self, source: Source, name: str) -> str:
        if source.is_file:
            function = SCAN_FUNCTIONS[source.extension]
            return f"{function}({quote_literal(source.location)})"
        return source.location

    def bind(self, relations: Mapping[str, Source], as_views: bool = False) -> None:
        try:
            if any(source.extension == "avro" for source in relations.values()):
                self.conn.execute("INSTALL avro")
                self.conn.execute("LOAD avro")

            if not as_views:
                return

            for name, source in relations.items():
                if name == source.location:
                    continue
                scan = self.scan_expression(source, name)
                logger.debug(f"Binding {name} -> {scan}")
                self.conn.execute(
                    f"CREATE OR REPLACE TEMP VIEW {quote_identifier(name)} AS SELECT * FROM {scan}"
                )
        except duckdb.Error as e:
            raise self.error(e, "binding sources") from e

    def execute(self, sql: str) -> ResultSet:
        try:
            reader = self.conn.execute(sql).to_arrow_reader(self.config.batch_size)
        except duckdb.Error as e:
            raise self.error(e) from e
        return ResultSet(schema=reader.schema, batches=reader)

    def supports_native(self, output: OutputSpec) -> bool:
        if output.format is OutputFormat.TABLE:
            return True
        return not output.sink.is_stdout

    def write_native(self, sql: str, output: OutputSpec) -> None:
        """
        Serialize with DuckDB itself.

        Files are written with COPY ... TO; an empty parquet result is
        discarded. The table format uses DuckDB's own relation rendering.
        """
        try:
            if output.format is OutputFormat.TABLE:
                text = str(self.conn.sql(sql))
                with output.sink.open() as stream:
                    stream.write(text.rstrip("\n").encode("utf-8") + b"\n")
                return

            options = COPY_OPTIONS[output.format].format(
                compression=self.output_config.parquet_compression
            )
            with output.sink.staging_path() as tmp:
                copy = f"COPY ({sql}) TO {quote_literal(str(tmp))} ({options})"
                rows = self.conn.execute(copy).fetchone()[0]
                if rows == 0 and output.format is OutputFormat.PARQUET:
                    logger.info("Empty result, no parquet output written")
                    tmp.unlink(missing_ok=True)
        except duckdb.Error as e:
            raise self.error(e) from e

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
