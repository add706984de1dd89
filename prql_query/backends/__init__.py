"""
Execution backends for prql-query.

Backends are registered at runtime: a kind is available when its driver
library is importable.
"""

from importlib.util import find_spec
from typing import Callable, Optional

from .base import Backend, BackendConfig, BackendKind, ResultSet
from ..config import QueryConfig
from ..errors import NoBackendAvailable


BackendFactory = Callable[[QueryConfig, Optional[str]], Backend]


def _duckdb(config: QueryConfig, database: Optional[str]) -> Backend:
    from .duckdb import DuckDBBackend

    return DuckDBBackend(config.duckdb, database, config.output)


def _datafusion(config: QueryConfig, database: Optional[str]) -> Backend:
    from .datafusion import DataFusionBackend

    return DataFusionBackend(config.datafusion, config.output)


def _remote(config: QueryConfig, database: Optional[str]) -> Backend:
    from .remote import RemoteBackend

    return RemoteBackend(config.remote, database)


class BackendRegistry:
    """Registry of the backends available in this process."""

    def __init__(self):
        self._factories: dict[BackendKind, BackendFactory] = {}

    def register(self, kind: BackendKind, factory: BackendFactory) -> None:
        """Register a backend factory."""
        self._factories[kind] = factory

    def __contains__(self, kind: BackendKind) -> bool:
        return kind in self._factories

    def available(self) -> list[BackendKind]:
        """List registered backend kinds."""
        return list(self._factories.keys())

    def create(self, kind: BackendKind, config: QueryConfig, database: Optional[str] = None) -> Backend:
        """Instantiate a backend; no connection is opened."""
        if kind not in self._factories:
            raise NoBackendAvailable(f"Backend not available: {kind.value}")
        return self._factories[kind](config, database)


def default_registry() -> BackendRegistry:
    """Build a registry of every backend whose driver is installed."""
    registry = BackendRegistry()
    if find_spec("duckdb") is not None:
        registry.register(BackendKind.EMBEDDED, _duckdb)
    if find_spec("datafusion") is not None:
        registry.register(BackendKind.DISTRIBUTED, _datafusion)
    if find_spec("psycopg2") is not None or find_spec("pymysql") is not None:
        registry.register(BackendKind.REMOTE, _remote)
    return registry


__all__ = [
    "Backend",
    "BackendConfig",
    "BackendKind",
    "BackendRegistry",
    "ResultSet",
    "default_registry",
]
