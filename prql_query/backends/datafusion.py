"""
DataFusion execution backend.

In-process query engine: each file source is registered as a table under
its relation name and queried with SQL.
"""

from typing import Mapping, Optional

try:
    from datafusion import SessionConfig, SessionContext
except ImportError:
    raise ImportError("datafusion is required. Install with: pip install datafusion")

from .base import Backend, BackendKind, ResultSet
from ..config import DataFusionConfig, OutputConfig
from ..errors import BackendExecutionError
from ..formats import OutputFormat, OutputSpec
from ..logging import get_logger
from ..sources import Source


logger = get_logger(__name__)


class DataFusionBackend(Backend):
    """Apache DataFusion session over local files."""

    kind = BackendKind.DISTRIBUTED
    name = "datafusion"
    target = "sql.generic"

    def __init__(self, config: DataFusionConfig, output_config: Optional[OutputConfig] = None):
        self.config = config
        self.output_config = output_config or OutputConfig()
        self._ctx: Optional[SessionContext] = None

    @property
    def ctx(self) -> SessionContext:
        """Get or create the session context."""
        if self._ctx is None:
            self._ctx = self._create_context()
        return self._ctx

    def _create_context(self) -> SessionContext:
        session = (
            SessionConfig()
            .with_information_schema(True)
            .with_batch_size(self.config.batch_size)
        )
        if self.config.target_partitions:
            session = session.with_target_partitions(self.config.target_partitions)
        return SessionContext(session)

    def open(self) -> None:
        try:
            self.ctx
        except Exception as e:
            raise self.error(e, "cannot create session") from e

    def scan_expression(self, source: Source, name: str) -> str:
        if not source.is_file:
            raise BackendExecutionError(
                self.name,
                f"cannot resolve table {source.location!r}; "
                "only csv, json, parquet and avro files are supported without --database",
            )
        return name

    def bind(self, relations: Mapping[str, Source], as_views: bool = False) -> None:
        for name, source in relations.items():
            self.scan_expression(source, name)
            logger.debug(f"Registering {source.location} as {name}")
            try:
                if source.extension == "csv":
                    self.ctx.register_csv(name, source.location)
                elif source.extension == "parquet":
                    self.ctx.register_parquet(name, source.location)
                elif source.extension == "json":
                    self.ctx.register_json(name, source.location)
                elif source.extension == "avro":
                    self.ctx.register_avro(name, source.location)
            except Exception as e:
                raise self.error(e, f"cannot register {source.location}") from e

    def execute(self, sql: str) -> ResultSet:
        try:
            df = self.ctx.sql(sql)
            batches = df.collect()
            schema = df.schema()
        except Exception as e:
            raise self.error(e) from e
        return ResultSet(schema=schema, batches=batches)

    def supports_native(self, output: OutputSpec) -> bool:
        return not output.sink.is_stdout and output.format is not OutputFormat.TABLE

    def write_native(self, sql: str, output: OutputSpec) -> None:
        """Serialize with DataFusion's DataFrame writers; an empty parquet result is discarded."""
        try:
            df = self.ctx.sql(sql)
            if output.format is OutputFormat.PARQUET and df.count() == 0:
                logger.info("Empty result, no parquet output written")
                return
            with output.sink.staging_path() as tmp:
                if output.format is OutputFormat.CSV:
                    df.write_csv(str(tmp), with_header=True)
                elif output.format is OutputFormat.PARQUET:
                    df.write_parquet(str(tmp), compression=self.output_config.parquet_compression)
                elif output.format is OutputFormat.JSON:
                    df.write_json(str(tmp))
        except Exception as e:
            raise self.error(e) from e

    def close(self) -> None:
        self._ctx = None
