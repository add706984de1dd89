"""
Output formats, destinations and format resolution.

Precedence for the output format:
    1. explicit --format (validated against the destination)
    2. stdout destination -> table
    3. file destination -> inferred from the file extension
"""

import os
import shutil
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .errors import IncompatibleFormat, UnsupportedFormat


class OutputFormat(Enum):
    """Result serialization format."""

    CSV = "csv"
    JSON = "json"
    PARQUET = "parquet"
    TABLE = "table"

    @property
    def is_binary(self) -> bool:
        return self is OutputFormat.PARQUET


class WriterMode(Enum):
    """Writer strategy: the engine's own writer or the shared columnar writer."""

    ENGINE_NATIVE = "engine-native"
    SHARED_COLUMNAR = "shared-columnar"


EXTENSION_FORMATS = {
    ".csv": OutputFormat.CSV,
    ".json": OutputFormat.JSON,
    ".jsonl": OutputFormat.JSON,
    ".ndjson": OutputFormat.JSON,
    ".parquet": OutputFormat.PARQUET,
    ".pq": OutputFormat.PARQUET,
    ".txt": OutputFormat.TABLE,
}


def format_for_extension(path: Path) -> Optional[OutputFormat]:
    """Map a file extension to its output format, if known."""
    return EXTENSION_FORMATS.get(path.suffix.lower())


def _isatty(stream) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


@dataclass(frozen=True)
class Sink:
    """
    Output destination: stdout (path is None) or a file.

    File output is staged in a temporary sibling and renamed onto the
    destination only when writing completes, so a failed write never leaves
    a partial file behind.
    """

    path: Optional[Path] = None
    interactive: bool = False

    @classmethod
    def parse(cls, destination: Optional[str]) -> "Sink":
        """Create a sink from a --to value; '-' (or nothing) is stdout."""
        if destination in (None, "", "-"):
            return cls(path=None, interactive=_isatty(sys.stdout))
        return cls(path=Path(destination))

    @property
    def is_stdout(self) -> bool:
        return self.path is None

    def __str__(self) -> str:
        return "-" if self.path is None else str(self.path)

    @contextmanager
    def staging_path(self) -> Iterator[Path]:
        """
        Yield a temporary path that replaces the destination on success.

        If the writer leaves nothing at the temporary path, the destination
        is left untouched.
        """
        if self.path is None:
            raise ValueError("stdout has no staging path")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.stem}-{uuid.uuid4().hex[:8]}{self.path.suffix}")
        try:
            yield tmp
        except BaseException:
            _remove(tmp)
            raise
        if tmp.exists():
            os.replace(tmp, self.path)

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        """Open the sink for binary writing."""
        if self.path is None:
            sys.stdout.flush()
            buffer = sys.stdout.buffer
            yield buffer
            buffer.flush()
            return

        with self.staging_path() as tmp:
            with open(tmp, "wb") as f:
                yield f


@dataclass(frozen=True)
class OutputSpec:
    """Where results go, in which format, and through which writer."""

    sink: Sink
    format: OutputFormat
    writer_mode: WriterMode = WriterMode.SHARED_COLUMNAR


def resolve_format(explicit: Optional[OutputFormat], sink: Sink) -> OutputFormat:
    """
    Resolve the output format for a destination.

    Raises:
        IncompatibleFormat: binary format to a terminal, or the explicit
            format contradicts a known file extension
        UnsupportedFormat: no explicit format and the file extension is
            not recognised
    """
    if explicit is not None:
        if sink.is_stdout:
            if explicit.is_binary and sink.interactive:
                raise IncompatibleFormat(
                    f"Refusing to write {explicit.value} to a terminal; use --to <file>"
                )
            return explicit

        inferred = format_for_extension(sink.path)
        if inferred is not None and inferred is not explicit:
            raise IncompatibleFormat(
                f"Format {explicit.value!r} does not match destination {sink} "
                f"(extension implies {inferred.value!r})"
            )
        return explicit

    if sink.is_stdout:
        return OutputFormat.TABLE

    inferred = format_for_extension(sink.path)
    if inferred is None:
        raise UnsupportedFormat(str(sink))
    return inferred
