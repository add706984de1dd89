"""
Source resolution.

Turns raw --from entries ("alias=location" or a bare "location") into
aliased Source bindings. Resolution is purely syntactic: nothing here
checks that a file or table exists.
"""

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterable, Optional

from .errors import MalformedSourceSpec


FILE_EXTENSIONS = ("csv", "json", "parquet", "avro")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def file_extension(location: str) -> Optional[str]:
    """Return the recognised tabular file extension of a location, if any."""
    suffix = PurePath(location.strip()).suffix.lower().lstrip(".")
    return suffix if suffix in FILE_EXTENSIONS else None


@dataclass(frozen=True)
class Source:
    """A named relation: a local file or a (possibly schema-qualified) table."""

    alias: str
    location: str

    @property
    def extension(self) -> Optional[str]:
        return file_extension(self.location)

    @property
    def is_file(self) -> bool:
        return self.extension is not None


def derive_alias(location: str) -> str:
    """
    Derive an alias from a bare location.

    Files use their base name without extension, spaces replaced by
    underscores. Anything else is a table reference: the alias is the last
    whitespace-separated token, reduced to its final dotted part with quotes
    removed ("schema.table" -> "table", "orders o" -> "o").
    """
    location = location.strip()
    if file_extension(location):
        return PurePath(location).stem.replace(" ", "_")

    tokens = location.split()
    if not tokens:
        raise MalformedSourceSpec(location, "no alias can be derived")

    alias = tokens[-1].rsplit(".", 1)[-1].strip("\"`'[]")
    if not alias:
        raise MalformedSourceSpec(location, "no alias can be derived")
    return alias


def parse_source(spec: str) -> Source:
    """Parse one --from entry."""
    alias, sep, location = spec.partition("=")
    if sep and _IDENTIFIER.match(alias.strip()):
        alias, location = alias.strip(), location.strip()
        if not location:
            raise MalformedSourceSpec(spec, "empty location")
        return Source(alias=alias, location=location)

    if sep and not alias.strip():
        raise MalformedSourceSpec(spec, "empty alias")

    return Source(alias=derive_alias(spec), location=spec.strip())


def resolve_sources(specs: Iterable[str]) -> list[Source]:
    """
    Resolve --from entries into Sources, preserving order.

    Raises:
        MalformedSourceSpec: an entry cannot be parsed, or two entries
            resolve to the same alias.
    """
    sources: list[Source] = []
    seen: set[str] = set()

    for spec in specs:
        source = parse_source(spec)
        if source.alias in seen:
            raise MalformedSourceSpec(spec, f"duplicate alias {source.alias!r}")
        seen.add(source.alias)
        sources.append(source)

    return sources
