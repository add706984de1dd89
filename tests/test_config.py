"""Tests for configuration loading."""

import json
import tempfile
from pathlib import Path

import pytest

from prql_query.config import QueryConfig, load_config
from prql_query.errors import ConfigError


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestQueryConfig:
    """Tests for QueryConfig."""

    def test_defaults(self):
        config = QueryConfig.default()
        assert config.default_backend == "distributed"
        assert config.writer == "shared-columnar"
        assert config.output.parquet_compression == "zstd"
        assert config.duckdb.threads is None

    def test_from_file(self, temp_dir):
        path = temp_dir / "pq.json"
        path.write_text(json.dumps({
            "default_backend": "embedded",
            "duckdb": {"threads": 2, "memory_limit": "1GB"},
            "output": {"table_max_rows": 50},
        }))

        config = QueryConfig.from_file(path)

        assert config.default_backend == "embedded"
        assert config.duckdb.threads == 2
        assert config.duckdb.memory_limit == "1GB"
        assert config.output.table_max_rows == 50
        assert config.datafusion.batch_size == 8192

    def test_from_env(self):
        config = QueryConfig.from_env({
            "PQ_DEFAULT_BACKEND": "embedded",
            "PQ_WRITER": "engine-native",
            "PQ_DUCKDB_THREADS": "4",
            "PQ_PARQUET_COMPRESSION": "snappy",
            "PQ_BATCH_SIZE": "1024",
            "PQ_DUCKDB_MEMORY_LIMIT": "",
        })

        assert config.default_backend == "embedded"
        assert config.writer == "engine-native"
        assert config.duckdb.threads == 4
        assert config.duckdb.memory_limit is None
        assert config.output.parquet_compression == "snappy"
        assert config.duckdb.batch_size == 1024
        assert config.datafusion.batch_size == 1024
        assert config.remote.batch_size == 1024

    def test_to_dict(self):
        data = QueryConfig.default().to_dict()
        assert data["default_backend"] == "distributed"
        assert data["output"]["parquet_compression"] == "zstd"
        assert set(data) == {"default_backend", "writer", "duckdb", "datafusion", "remote", "output"}


def test_load_config_env_over_file(temp_dir):
    path = temp_dir / "pq.json"
    path.write_text(json.dumps({"default_backend": "embedded", "writer": "engine-native"}))

    config = load_config(str(path), environ={"PQ_DEFAULT_BACKEND": "distributed"})

    assert config.default_backend == "distributed"
    assert config.writer == "engine-native"


def test_load_config_without_file():
    assert load_config(environ={}).to_dict() == QueryConfig.default().to_dict()


class TestInvalidConfig:
    """Tests for bad config files and environment values."""

    def test_unknown_key(self, temp_dir):
        path = temp_dir / "pq.json"
        path.write_text(json.dumps({"duckdb": {"thread": 4}}))

        with pytest.raises(ConfigError, match="thread"):
            QueryConfig.from_file(path)

    def test_invalid_json(self, temp_dir):
        path = temp_dir / "pq.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError, match="pq.json"):
            QueryConfig.from_file(path)

    def test_not_an_object(self, temp_dir):
        path = temp_dir / "pq.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigError, match="JSON object"):
            QueryConfig.from_file(path)

    def test_non_integer_env(self):
        with pytest.raises(ConfigError, match="PQ_DUCKDB_THREADS.*'four'"):
            QueryConfig.from_env({"PQ_DUCKDB_THREADS": "four"})

        with pytest.raises(ConfigError, match="PQ_BATCH_SIZE"):
            QueryConfig.from_env({"PQ_BATCH_SIZE": "1e3"})
