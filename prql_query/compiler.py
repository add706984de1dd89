"""PRQL to SQL compilation via prqlc."""

import json
import re

import prqlc

from .errors import QueryCompilationError
from .logging import get_logger


logger = get_logger(__name__)

_ERROR_PREFIX = re.compile(r"^\s*Error:[ \t]*")


def _error_message(exc: Exception) -> str:
    """Extract the compiler's own rendering of an error, if it sent JSON."""
    text = str(exc)
    try:
        payload = json.loads(text)
    except ValueError:
        return _ERROR_PREFIX.sub("", text)

    messages = payload.get("inner", []) if isinstance(payload, dict) else []
    rendered = [m.get("display") or m.get("reason") for m in messages if isinstance(m, dict)]
    rendered = [_ERROR_PREFIX.sub("", r.rstrip()) for r in rendered if r]
    return "\n".join(rendered) if rendered else text


def compile_prql(prql: str) -> str:
    """
    Compile PRQL to SQL.

    The compile target is taken from the query's ``prql target:...`` header.

    Raises:
        QueryCompilationError: the compiler rejected the query
    """
    options = prqlc.CompileOptions(format=True, signature_comment=False)
    try:
        sql = prqlc.compile(prql, options)
    except Exception as e:
        raise QueryCompilationError(_error_message(e)) from e

    logger.debug("sql = %s", " ".join(sql.split()))
    return sql
