"""Tests for backend selection."""

import pytest

from prql_query.backends import BackendConfig, BackendKind, BackendRegistry
from prql_query.errors import NoBackendAvailable
from prql_query.selector import scheme_backend, select_backend
from prql_query.sources import Source


def _registry(*kinds):
    registry = BackendRegistry()
    for kind in kinds:
        registry.register(kind, lambda config, database: None)
    return registry


ALL = _registry(BackendKind.EMBEDDED, BackendKind.DISTRIBUTED, BackendKind.REMOTE)
FILES = [Source(alias="sales", location="sales.csv")]
TABLES = [Source(alias="orders", location="public.orders")]


class TestSchemeBackend:
    """Tests for connection string schemes."""

    def test_duckdb(self):
        assert scheme_backend("duckdb://shop.db") is BackendKind.EMBEDDED
        assert scheme_backend("DUCKDB://shop.db") is BackendKind.EMBEDDED

    def test_plain_path(self):
        assert scheme_backend("shop.duckdb") is BackendKind.EMBEDDED

    def test_remote(self):
        assert scheme_backend("postgres://user@host/db") is BackendKind.REMOTE
        assert scheme_backend("mysql://root@localhost/shop") is BackendKind.REMOTE


class TestSelectBackend:
    """Tests for selection precedence."""

    def test_explicit_wins(self):
        config = BackendConfig(kind=BackendKind.EMBEDDED, database="postgres://h/db")
        assert select_backend(config, FILES, ALL) is BackendKind.EMBEDDED

    def test_database_scheme(self):
        config = BackendConfig(database="postgres://h/db")
        assert select_backend(config, FILES, ALL) is BackendKind.REMOTE

        config = BackendConfig(database="duckdb://shop.db")
        assert select_backend(config, TABLES, ALL) is BackendKind.EMBEDDED

    def test_files_use_default_engine(self):
        assert select_backend(BackendConfig(), FILES, ALL) is BackendKind.DISTRIBUTED
        assert select_backend(BackendConfig(), FILES, ALL, default="embedded") is BackendKind.EMBEDDED

    def test_default_engine_fallback(self):
        registry = _registry(BackendKind.EMBEDDED)
        assert select_backend(BackendConfig(), FILES, registry) is BackendKind.EMBEDDED

    def test_no_local_engine(self):
        registry = _registry(BackendKind.REMOTE)
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(), FILES, registry)

    def test_invalid_default(self):
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(), FILES, ALL, default="remote")
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(), FILES, ALL, default="spark")

    def test_nothing_to_run_on(self):
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(), [], ALL)
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(), TABLES, ALL)

    def test_explicit_kind_not_installed(self):
        registry = _registry(BackendKind.DISTRIBUTED)
        with pytest.raises(NoBackendAvailable, match="embedded"):
            select_backend(BackendConfig(kind=BackendKind.EMBEDDED), FILES, registry)

    def test_remote_not_installed(self):
        registry = _registry(BackendKind.EMBEDDED, BackendKind.DISTRIBUTED)
        with pytest.raises(NoBackendAvailable):
            select_backend(BackendConfig(database="mysql://h/db"), TABLES, registry)


class TestBackendRegistry:
    """Tests for the runtime registry."""

    def test_create_missing(self):
        with pytest.raises(NoBackendAvailable):
            _registry().create(BackendKind.EMBEDDED, None)

    def test_available(self):
        registry = _registry(BackendKind.REMOTE)
        assert registry.available() == [BackendKind.REMOTE]
        assert BackendKind.REMOTE in registry
        assert BackendKind.EMBEDDED not in registry
