"""
One query invocation, end to end.

    sources -> backend selection -> format resolution -> normalization
            -> dispatch -> sink
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO

from .backends import BackendConfig, BackendKind, BackendRegistry, default_registry
from .config import QueryConfig
from .dispatcher import Dispatcher
from .errors import NoBackendAvailable, PqError
from .formats import OutputFormat, OutputSpec, Sink, WriterMode, resolve_format
from .logging import get_logger
from .query import normalize_query
from .selector import select_backend
from .sources import resolve_sources


logger = get_logger(__name__)

QUERY_FILE_SUFFIXES = (".prql", ".sql")


@dataclass
class Invocation:
    """Raw user input for one run, as given on the command line."""

    query: str = "-"
    sources: list[str] = field(default_factory=list)
    to: str = "-"
    database: Optional[str] = None
    backend: str = "auto"
    format: Optional[str] = None
    writer: Optional[str] = None
    sql: bool = False
    no_exec: bool = False


def read_query(query: str, stdin: Optional[TextIO] = None) -> tuple[str, bool]:
    """
    Load query text.

    Args:
        query: Literal text, a path to a .prql / .sql file, or '-' for stdin
        stdin: Stream to read for '-'

    Returns:
        (text, is_sql) where is_sql is True for .sql files
    """
    if query == "-":
        return (stdin or sys.stdin).read(), False

    path = Path(query)
    if path.suffix.lower() in QUERY_FILE_SUFFIXES and path.is_file():
        logger.info(f"Reading query from {path}")
        return path.read_text(encoding="utf-8"), path.suffix.lower() == ".sql"

    return query, False


def writer_mode(value: str) -> WriterMode:
    """Parse a writer strategy name."""
    try:
        return WriterMode(value)
    except ValueError:
        choices = ", ".join(m.value for m in WriterMode)
        raise PqError(f"Unknown writer {value!r}; expected one of: {choices}") from None


def run(
    invocation: Invocation,
    config: Optional[QueryConfig] = None,
    registry: Optional[BackendRegistry] = None,
    stdin: Optional[TextIO] = None,
) -> str:
    """
    Run one invocation.

    Returns:
        Text to print on stdout: the generated SQL for --no-exec, otherwise
        empty (results go to the sink directly)
    """
    config = config or QueryConfig.default()
    registry = registry or default_registry()
    dispatcher = Dispatcher(registry, config)

    text, is_sql_file = read_query(invocation.query, stdin)
    sql_mode = invocation.sql or is_sql_file
    sources = resolve_sources(invocation.sources)
    requested = BackendConfig(kind=BackendKind(invocation.backend), database=invocation.database)

    if invocation.no_exec:
        try:
            kind = select_backend(requested, sources, registry, config.default_backend)
            backend = dispatcher.create_backend(BackendConfig(kind, invocation.database))
        except NoBackendAvailable as e:
            logger.info(f"{e}; compiling for the generic target")
            backend = None

        query = normalize_query(text, sources, sql=sql_mode, target=backend.target if backend else None)
        return dispatcher.render_sql(query, sources, backend)

    kind = select_backend(requested, sources, registry, config.default_backend)
    backend = dispatcher.create_backend(BackendConfig(kind, invocation.database))

    sink = Sink.parse(invocation.to)
    explicit = OutputFormat(invocation.format) if invocation.format else None
    output = OutputSpec(
        sink=sink,
        format=resolve_format(explicit, sink),
        writer_mode=writer_mode(invocation.writer or config.writer),
    )

    query = normalize_query(text, sources, sql=sql_mode, target=backend.target)
    rows = dispatcher.dispatch(query, sources, backend, output)
    if rows >= 0:
        logger.info(f"{rows} rows")
    return ""
