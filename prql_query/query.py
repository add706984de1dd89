"""
Query normalization.

Classifies the query as PRQL or raw SQL and, for PRQL, rewrites it so it
compiles against any backend:

    prql target:sql.duckdb
    let sales = (from __pq_rel0__ = __pq_src0__)
    from sales
    take 5

Each source is bound under a placeholder token. The dispatcher replaces the
tokens in the compiled SQL with the backend's scan expression
(``read_csv_auto('sales.csv')``, a registered table name, a remote table).
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Sequence

from .errors import MalformedSourceSpec
from .logging import get_logger
from .sources import Source


logger = get_logger(__name__)

DEFAULT_TARGET = "sql.generic"

PLACEHOLDER = "__pq_src{index}__"
RELATION_ALIAS = "__pq_rel{index}__"

_HEADER = re.compile(r"^prql\b", re.IGNORECASE)
_FROM_CLAUSE = re.compile(r"\s*(from|from_text)\b")
_DECLARATION = re.compile(r"(let|module|import)\b|@")
_STRING = re.compile(r"'(?:[^'\\]|\\.)*'" r'|"(?:[^"\\]|\\.)*"')

# Names declared by the PRQL standard library; a source bound under one of
# them shadows or collides with the std declaration.
STD_NAMES = frozenset({
    # modules and types
    "std", "prql", "this", "that", "internal", "math", "text", "date", "time",
    "timestamp", "int", "float", "bool", "scalar", "tuple", "array", "relation", "range",
    # keywords
    "let", "into", "case", "module", "func", "type", "import", "true", "false", "null",
    # transforms
    "from", "from_text", "select", "filter", "derive", "aggregate", "sort", "take",
    "join", "group", "window", "append", "intersect", "remove", "loop",
    "read_parquet", "read_csv", "read_json",
    # aggregate and window functions
    "min", "max", "sum", "average", "stddev", "all", "any", "concat_array",
    "count", "count_distinct", "lag", "lead", "first", "last", "rank", "rank_dense",
    "row_number",
    # operators and scalar functions
    "mul", "div_i", "div_f", "mod", "add", "sub", "eq", "ne", "gt", "gte", "lt", "lte",
    "and", "or", "not", "neg", "coalesce", "regex_search", "round", "as", "in",
})
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Dialect(Enum):
    """Query language of the submitted text."""

    PRQL = "prql"
    SQL = "sql"


@dataclass(frozen=True)
class Query:
    """A normalized query, ready for compilation and dispatch."""

    text: str
    dialect: Dialect
    placeholders: Mapping[str, str] = field(default_factory=dict)

    def relations(self, sources: Sequence[Source]) -> dict[str, Source]:
        """
        Map the relation names the backend must provide to their sources.

        PRQL queries reference placeholder tokens; raw SQL references the
        aliases directly.
        """
        if self.dialect is Dialect.PRQL:
            return {self.placeholders[s.alias]: s for s in sources}
        return {s.alias: s for s in sources}


def quote_identifier(name: str) -> str:
    """Quote a PRQL identifier with backticks when it is not a plain name."""
    if _IDENTIFIER.match(name):
        return name
    return "`" + name.replace("`", "") + "`"


def split_header(text: str) -> tuple[Optional[str], str]:
    """
    Split off a leading ``prql ...`` header line.

    Returns (header, body); header includes any blank or comment lines that
    precede it and is None when the text has no header.
    """
    lines = text.splitlines()
    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if _HEADER.match(stripped):
            return "\n".join(lines[: i + 1]), "\n".join(lines[i + 1:])
        break
    return None, text


def _nesting(line: str) -> int:
    """Net change in bracket depth over one line, ignoring strings and comments."""
    code = _STRING.sub("", line).split("#", 1)[0]
    return sum(code.count(c) for c in "([{") - sum(code.count(c) for c in ")]}")


def split_declarations(body: str) -> tuple[str, str]:
    """
    Split leading declarations off the main pipeline.

    Declarations are ``let`` / ``module`` / ``import`` statements with their
    annotations, plus the blank and comment lines between them. A
    declaration continues while its brackets are open.

    Returns:
        (declarations, main pipeline)
    """
    lines = body.splitlines()
    depth = 0
    end = 0

    for i, line in enumerate(lines):
        stripped = line.strip()
        if depth == 0 and stripped and not stripped.startswith("#") and not _DECLARATION.match(stripped):
            break
        depth = max(depth + _nesting(line), 0)
        end = i + 1

    return "\n".join(lines[:end]), "\n".join(lines[end:])


def has_from_clause(text: str) -> bool:
    """Whether the main pipeline (after any declarations) starts with ``from``."""
    _, main = split_declarations(text)
    return _FROM_CLAUSE.match(main) is not None


def check_alias(source: Source) -> None:
    """Reject aliases that collide with a PRQL standard library name."""
    if source.alias in STD_NAMES:
        raise MalformedSourceSpec(
            source.location,
            f"alias {source.alias!r} is a PRQL standard library name; "
            "give the source another alias with alias=location",
        )


def relation_alias(token: str) -> str:
    """Relation alias paired with a placeholder token (same index)."""
    return token.replace("__pq_src", "__pq_rel", 1)


def allocate_placeholders(text: str, aliases: Sequence[str]) -> dict[str, str]:
    """
    Allocate one collision-free token per alias.

    Indexes increase monotonically; an index is skipped when its token (or
    relation alias) already occurs in the query text or in any alias, so a
    literal replace of the tokens can never touch user text.
    """
    taken = "\n".join([text, *aliases])
    placeholders: dict[str, str] = {}
    index = 0

    for alias in aliases:
        while (
            PLACEHOLDER.format(index=index) in taken
            or RELATION_ALIAS.format(index=index) in taken
        ):
            index += 1
        placeholders[alias] = PLACEHOLDER.format(index=index)
        index += 1

    return placeholders


def normalize_query(
    text: str,
    sources: Sequence[Source],
    *,
    sql: bool = False,
    target: Optional[str] = None,
) -> Query:
    """
    Normalize raw query text against the resolved sources.

    Args:
        text: Query text as submitted
        sources: Resolved sources, in declaration order
        sql: Treat the text as raw SQL (no rewriting)
        target: PRQL compile target for the header, e.g. 'sql.duckdb'

    Returns:
        Query
    """
    if sql:
        logger.debug("Raw SQL query, no normalization")
        return Query(text=text, dialect=Dialect.SQL)

    for source in sources:
        check_alias(source)

    header, body = split_header(text)
    declarations, main = split_declarations(body.strip("\n"))
    placeholders = allocate_placeholders(text, [s.alias for s in sources])

    lines = [header if header is not None else f"prql target:{target or DEFAULT_TARGET}"]

    for source in sources:
        token = placeholders[source.alias]
        relation = relation_alias(token)
        lines.append(f"let {quote_identifier(source.alias)} = (from {relation} = {token})")

    if declarations:
        lines.append(declarations)

    if sources and _FROM_CLAUSE.match(main) is None:
        last = sources[-1].alias
        logger.debug(f"No from clause, starting from last source: {last}")
        lines.append(f"from {quote_identifier(last)}")

    lines.append(main)
    normalized = "\n".join(lines)
    logger.debug(f"prql = {normalized!r}")

    return Query(text=normalized, dialect=Dialect.PRQL, placeholders=placeholders)


def substitute_placeholders(sql: str, replacements: Mapping[str, str]) -> str:
    """Replace placeholder tokens in compiled SQL, longest token first."""
    for token in sorted(replacements, key=len, reverse=True):
        sql = sql.replace(token, replacements[token])
    return sql
