"""
Configuration for prql-query.

Supports environment variables and JSON config files. Command-line flags
take precedence over both.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError


ENV_PREFIX = "PQ_"


@dataclass
class DuckDBConfig:
    """Configuration for the embedded DuckDB backend."""

    threads: Optional[int] = None
    memory_limit: Optional[str] = None  # e.g., "4GB"
    batch_size: int = 100_000


@dataclass
class DataFusionConfig:
    """Configuration for the DataFusion backend."""

    target_partitions: Optional[int] = None
    batch_size: int = 8192


@dataclass
class RemoteConfig:
    """Configuration for remote database connections."""

    batch_size: int = 100_000
    connect_timeout: int = 10


@dataclass
class OutputConfig:
    """Configuration for result serialization."""

    parquet_compression: str = "zstd"
    table_max_rows: Optional[int] = None


@dataclass
class QueryConfig:
    """Main configuration."""

    default_backend: str = "distributed"
    writer: str = "shared-columnar"
    duckdb: DuckDBConfig = field(default_factory=DuckDBConfig)
    datafusion: DataFusionConfig = field(default_factory=DataFusionConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_file(cls, path: Path) -> "QueryConfig":
        """Load configuration from JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a JSON object")

        try:
            return cls(
                default_backend=data.get("default_backend", "distributed"),
                writer=data.get("writer", "shared-columnar"),
                duckdb=DuckDBConfig(**data.get("duckdb", {})),
                datafusion=DataFusionConfig(**data.get("datafusion", {})),
                remote=RemoteConfig(**data.get("remote", {})),
                output=OutputConfig(**data.get("output", {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    @classmethod
    def default(cls) -> "QueryConfig":
        """Create default configuration."""
        return cls()

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "QueryConfig":
        """Override settings from PQ_* environment variables, in place."""
        env = os.environ if environ is None else environ

        def get(key: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + key)
            return value if value else None

        def get_int(key: str) -> int:
            value = get(key)
            try:
                return int(value)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{key} must be an integer, got {value!r}") from None

        if get("DEFAULT_BACKEND"):
            self.default_backend = get("DEFAULT_BACKEND")
        if get("WRITER"):
            self.writer = get("WRITER")
        if get("DUCKDB_THREADS"):
            self.duckdb.threads = get_int("DUCKDB_THREADS")
        if get("DUCKDB_MEMORY_LIMIT"):
            self.duckdb.memory_limit = get("DUCKDB_MEMORY_LIMIT")
        if get("PARQUET_COMPRESSION"):
            self.output.parquet_compression = get("PARQUET_COMPRESSION")
        if get("BATCH_SIZE"):
            batch_size = get_int("BATCH_SIZE")
            self.duckdb.batch_size = batch_size
            self.datafusion.batch_size = batch_size
            self.remote.batch_size = batch_size
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "QueryConfig":
        """Create config from defaults and environment variables."""
        return cls.default().apply_env(environ)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "default_backend": self.default_backend,
            "writer": self.writer,
            "duckdb": {
                "threads": self.duckdb.threads,
                "memory_limit": self.duckdb.memory_limit,
                "batch_size": self.duckdb.batch_size,
            },
            "datafusion": {
                "target_partitions": self.datafusion.target_partitions,
                "batch_size": self.datafusion.batch_size,
            },
            "remote": {
                "batch_size": self.remote.batch_size,
                "connect_timeout": self.remote.connect_timeout,
            },
            "output": {
                "parquet_compression": self.output.parquet_compression,
                "table_max_rows": self.output.table_max_rows,
            },
        }


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> QueryConfig:
    """Load or create configuration, then apply environment overrides."""
    if path:
        config = QueryConfig.from_file(Path(path))
    else:
        config = QueryConfig.default()
    return config.apply_env(environ)
