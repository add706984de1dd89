"""
Query dispatch.

Compiles the normalized query, substitutes each source placeholder with the
backend's scan expression, executes on the backend and routes the result
through the selected writer strategy.
"""

import logging
from typing import Optional, Sequence

from .backends import Backend, BackendConfig, BackendKind, BackendRegistry
from .compiler import compile_prql
from .config import QueryConfig
from .formats import OutputSpec, WriterMode
from .logging import get_logger, log_execution_time
from .query import Dialect, Query, substitute_placeholders
from .sources import Source
from .writer import ResultWriter


logger = get_logger(__name__)


class Dispatcher:
    """
    Routes one query to one backend and one writer.

    Holds no state between calls: each dispatch opens the backend, runs the
    query, writes the output and closes the backend.
    """

    def __init__(self, registry: BackendRegistry, config: Optional[QueryConfig] = None):
        self.registry = registry
        self.config = config or QueryConfig.default()
        self.writer = ResultWriter(self.config.output)

    def create_backend(self, backend_config: BackendConfig) -> Backend:
        """Instantiate the adapter for a resolved backend config."""
        if backend_config.kind is BackendKind.AUTO:
            raise ValueError("backend kind must be resolved before dispatch")
        return self.registry.create(backend_config.kind, self.config, backend_config.database)

    def render_sql(self, query: Query, sources: Sequence[Source], backend: Optional[Backend] = None) -> str:
        """
        Produce the SQL the backend will run.

        PRQL is compiled and its placeholders replaced with the backend's scan
        expressions; without a backend the placeholders are left in place.
        Raw SQL passes through.
        """
        if query.dialect is Dialect.SQL:
            sql = query.text
        else:
            with log_execution_time(logger, "compile", logging.DEBUG):
                sql = compile_prql(query.text)

            if backend is not None:
                replacements = {
                    name: backend.scan_expression(source, name)
                    for name, source in query.relations(sources).items()
                }
                sql = substitute_placeholders(sql, replacements)

        sql = sql.strip().rstrip(";").rstrip()
        logger.debug(f"sql = {sql!r}")
        return sql

    def dispatch(
        self,
        query: Query,
        sources: Sequence[Source],
        backend: Backend,
        output: OutputSpec,
    ) -> int:
        """
        Execute the query and write its result.

        Returns:
            Rows written, or -1 when an engine-native writer does not report it
        """
        sql = self.render_sql(query, sources, backend)

        with backend:
            backend.bind(query.relations(sources), as_views=query.dialect is Dialect.SQL)

            if output.writer_mode is WriterMode.ENGINE_NATIVE:
                if backend.supports_native(output):
                    with log_execution_time(logger, f"{backend.name} native write"):
                        backend.write_native(sql, output)
                    return -1
                logger.warning(
                    f"{backend.name} cannot write {output.format.value} to {output.sink} natively; "
                    "using the shared columnar writer"
                )

            with log_execution_time(logger, f"{backend.name} execute"):
                result = backend.execute(sql)

            with log_execution_time(logger, f"write {output.format.value}"):
                return self.writer.write(result, output.format, output.sink)
