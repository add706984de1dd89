"""
Shared columnar result writer.

Encodes record batches as csv, newline-delimited json, parquet or an
aligned text table and writes them incrementally to a sink.
"""

import base64
import io
import itertools
import json
import shutil
from datetime import date, datetime, time
from decimal import Decimal
from typing import BinaryIO, Iterable, Iterator, Optional

import pyarrow as pa
import pyarrow.csv as pa_csv
import pyarrow.parquet as pq
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .backends import ResultSet
from .config import OutputConfig
from .errors import PqError, SerializationError
from .formats import OutputFormat, Sink
from .logging import get_logger


logger = get_logger(__name__)


class _KeepOpen(io.RawIOBase):
    """Binary stream wrapper that leaves the underlying stream open on close."""

    def __init__(self, raw: BinaryIO):
        self._raw = raw

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        self._raw.write(b)
        return len(b)

    def flush(self) -> None:
        if not self._raw.closed:
            self._raw.flush()


def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return str(value)


def _rows(batch: pa.RecordBatch) -> Iterator[tuple]:
    # column-wise conversion keeps duplicate column names apart
    return zip(*[column.to_pylist() for column in batch.columns])


class ResultWriter:
    """
    Serialize query results to a sink.

    One writer per output; batches are consumed once.
    """

    def __init__(self, config: Optional[OutputConfig] = None):
        self.config = config or OutputConfig()

    def write(self, result: ResultSet, fmt: OutputFormat, sink: Sink) -> int:
        """
        Write a result set.

        Args:
            result: Schema and record batches
            fmt: Output format
            sink: Destination

        Returns:
            Number of rows written

        Raises:
            SerializationError: encoding or writing failed
        """
        try:
            batches = (b for b in result.batches if b.num_rows > 0)
            first = next(batches, None)

            if first is None and fmt is OutputFormat.PARQUET:
                logger.info("Empty result, no parquet output written")
                return 0

            schema = first.schema if first is not None else result.schema
            remaining = itertools.chain([first], batches) if first is not None else iter(())

            with sink.open() as stream:
                if fmt is OutputFormat.CSV:
                    rows = self._write_csv(stream, schema, remaining)
                elif fmt is OutputFormat.JSON:
                    rows = self._write_json(stream, remaining)
                elif fmt is OutputFormat.PARQUET:
                    rows = self._write_parquet(stream, schema, remaining)
                else:
                    rows = self._write_table(stream, schema, remaining, sink.interactive)
        except PqError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to write {fmt.value} to {sink}: {e}") from e

        logger.info(f"Wrote {rows} rows as {fmt.value} to {sink}")
        return rows

    def _write_csv(self, stream: BinaryIO, schema: pa.Schema, batches: Iterable[pa.RecordBatch]) -> int:
        rows = 0
        writer = pa_csv.CSVWriter(_KeepOpen(stream), schema)
        try:
            for batch in batches:
                writer.write_batch(batch)
                rows += batch.num_rows
        finally:
            writer.close()
        return rows

    def _write_json(self, stream: BinaryIO, batches: Iterable[pa.RecordBatch]) -> int:
        rows = 0
        for batch in batches:
            names = batch.schema.names
            lines = [
                json.dumps(dict(zip(names, row)), default=_json_default, ensure_ascii=False)
                for row in _rows(batch)
            ]
            stream.write(("\n".join(lines) + "\n").encode("utf-8"))
            rows += batch.num_rows
        return rows

    def _write_parquet(self, stream: BinaryIO, schema: pa.Schema, batches: Iterable[pa.RecordBatch]) -> int:
        rows = 0
        writer = pq.ParquetWriter(_KeepOpen(stream), schema, compression=self.config.parquet_compression)
        try:
            for batch in batches:
                # one row group per batch
                writer.write_batch(batch, row_group_size=batch.num_rows)
                rows += batch.num_rows
        finally:
            writer.close()
        return rows

    def _write_table(
        self,
        stream: BinaryIO,
        schema: pa.Schema,
        batches: Iterable[pa.RecordBatch],
        interactive: bool,
    ) -> int:
        table = Table(show_header=True, header_style="bold")
        for name in schema.names:
            table.add_column(Text(name))

        limit = self.config.table_max_rows
        rows = 0
        for batch in batches:
            for row in _rows(batch):
                if limit is None or rows < limit:
                    table.add_row(*[Text("null" if v is None else str(v)) for v in row])
                rows += 1

        if limit is not None and rows > limit:
            table.caption = f"{limit} of {rows} rows"

        width = shutil.get_terminal_size().columns if interactive else 10_000
        console = Console(
            file=io.StringIO(),
            width=width,
            force_terminal=interactive,
            color_system="auto" if interactive else None,
        )
        console.print(table)

        text = console.file.getvalue()
        if not text.endswith("\n"):
            text += "\n"
        stream.write(text.encode("utf-8"))
        return rows
