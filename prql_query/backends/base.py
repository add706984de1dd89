"""Base backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

import pyarrow as pa

from ..errors import BackendExecutionError
from ..formats import OutputSpec
from ..sources import Source


class BackendKind(Enum):
    """Execution engines a query can be routed to."""

    EMBEDDED = "embedded"
    DISTRIBUTED = "distributed"
    REMOTE = "remote"
    AUTO = "auto"


@dataclass(frozen=True)
class BackendConfig:
    """Requested backend and optional database connection string."""

    kind: BackendKind = BackendKind.AUTO
    database: Optional[str] = None


@dataclass
class ResultSet:
    """In-memory query result: one schema, a sequence of record batches."""

    schema: pa.Schema
    batches: Iterable[pa.RecordBatch]

    @classmethod
    def from_table(cls, table: pa.Table, max_chunksize: Optional[int] = None) -> "ResultSet":
        return cls(schema=table.schema, batches=table.to_batches(max_chunksize=max_chunksize))


def quote_literal(value: str) -> str:
    """Quote a SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def quote_identifier(name: str) -> str:
    """Quote a SQL identifier with double quotes."""
    return '"' + name.replace('"', '""') + '"'


class Backend(ABC):
    """
    Abstract base class for execution backends.

    A backend is opened once per invocation, used for exactly one query and
    closed. Every engine failure surfaces as BackendExecutionError with the
    engine's message preserved.
    """

    kind: BackendKind
    name: str = "backend"
    target: str = "sql.generic"

    def open(self) -> None:
        """Open the execution context (connection, session)."""
        pass

    def close(self) -> None:
        """Close any open connections."""
        pass

    @abstractmethod
    def scan_expression(self, source: Source, name: str) -> str:
        """
        SQL expression that reads a source.

        Args:
            source: Source to scan
            name: Relation name the source is bound under

        Returns:
            Expression usable in a FROM clause
        """
        pass

    def bind(self, relations: Mapping[str, Source], as_views: bool = False) -> None:
        """
        Make sources available to the engine under the given names.

        Args:
            relations: Relation name -> source
            as_views: Expose each name as a queryable relation (raw SQL
                references aliases directly)
        """
        pass

    @abstractmethod
    def execute(self, sql: str) -> ResultSet:
        """Execute SQL and return the result batches."""
        pass

    def supports_native(self, output: OutputSpec) -> bool:
        """Whether the engine can serialize this output itself."""
        return False

    def write_native(self, sql: str, output: OutputSpec) -> None:
        """Execute SQL and serialize the result with the engine's own writer."""
        raise NotImplementedError(f"{self.name} has no native writer")

    def error(self, exc: Exception, action: str = "") -> BackendExecutionError:
        """Wrap an engine exception, keeping its message."""
        message = f"{action}: {exc}" if action else str(exc)
        return BackendExecutionError(self.name, message)

    def __enter__(self) -> "Backend":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
