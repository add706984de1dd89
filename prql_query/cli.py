"""
CLI entry point for prql-query.

Usage:
    pq --from sales.csv "take 5"
    pq --from t=orders --database duckdb://shop.db --to out.json "from t | filter amount > 100"
    pq --no-exec "from employees | select {name, salary}"
    cat query.prql | pq --from data.parquet --to result.csv
"""

import sys

import click
from rich.console import Console

from . import __version__
from .backends import BackendKind
from .config import load_config
from .errors import PqError
from .formats import OutputFormat, WriterMode
from .logging import LogConfig, get_logger, setup_logging
from .runner import Invocation, run


console = Console(stderr=True)
logger = get_logger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("query", default="-", envvar="PQ_QUERY")
@click.option(
    "--from", "-f", "sources", multiple=True, envvar="PQ_FROM",
    help="Source to query, as alias=location or a bare location (repeatable)",
)
@click.option("--to", "-t", default="-", show_default=True, envvar="PQ_TO", help="Destination file, '-' for stdout")
@click.option("--database", "-d", envvar="PQ_DATABASE", help="Database connection string, e.g. duckdb://shop.db")
@click.option(
    "--backend", "-b", type=click.Choice([k.value for k in BackendKind]),
    default=BackendKind.AUTO.value, show_default=True, envvar="PQ_BACKEND",
    help="Execution backend",
)
@click.option(
    "--format", "fmt", type=click.Choice([f.value for f in OutputFormat]), envvar="PQ_FORMAT",
    help="Output format (default: table on stdout, else from the file extension)",
)
@click.option(
    "--writer", "-w", type=click.Choice([m.value for m in WriterMode]), envvar="PQ_WRITER",
    help="Serialize with the engine's own writer or the shared columnar writer",
)
@click.option("--sql", is_flag=True, envvar="PQ_SQL", help="Treat QUERY as raw SQL")
@click.option("--no-exec", is_flag=True, envvar="PQ_NO_EXEC", help="Print the generated SQL without executing")
@click.option(
    "--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), envvar="PQ_CONFIG",
    help="Path to JSON config file",
)
@click.option("--verbose", "-v", count=True, help="More logging on stderr (-v info, -vv debug)")
@click.version_option(__version__, prog_name="pq")
def main(query, sources, to, database, backend, fmt, writer, sql, no_exec, config_path, verbose):
    """Query csv, json, parquet and avro files or database tables with PRQL or SQL.

    QUERY is literal PRQL/SQL text, a .prql or .sql file, or '-' to read stdin.
    """
    setup_logging(LogConfig.from_verbosity(verbose))

    invocation = Invocation(
        query=query,
        sources=list(sources),
        to=to,
        database=database,
        backend=backend,
        format=fmt,
        writer=writer,
        sql=sql,
        no_exec=no_exec,
    )

    try:
        config = load_config(config_path)
        logger.debug(f"config = {config.to_dict()}")
        output = run(invocation, config)
    except PqError as e:
        console.print(f"Error: {e}", style="red", markup=False, highlight=False, soft_wrap=True)
        sys.exit(1)

    if output:
        click.echo(output)


if __name__ == "__main__":
    main()
