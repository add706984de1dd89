"""
Backend selection.

Precedence (highest first):
    1. explicit --backend
    2. --database scheme: duckdb (or a plain path) -> embedded, else remote
    3. local file sources -> configured default engine
    4. nothing to run on -> NoBackendAvailable
"""

from typing import Optional, Sequence

from .backends import BackendConfig, BackendKind, BackendRegistry
from .errors import NoBackendAvailable
from .logging import get_logger
from .sources import Source


logger = get_logger(__name__)

EMBEDDED_SCHEMES = {"duckdb"}

LOCAL_ENGINES = (BackendKind.DISTRIBUTED, BackendKind.EMBEDDED)


def scheme_backend(database: str) -> BackendKind:
    """Backend implied by a connection string's scheme."""
    scheme, sep, _ = database.partition("://")
    if not sep or scheme.lower() in EMBEDDED_SCHEMES:
        return BackendKind.EMBEDDED
    return BackendKind.REMOTE


def _default_engine(default: str, registry: BackendRegistry) -> BackendKind:
    try:
        preferred = BackendKind(default)
    except ValueError:
        raise NoBackendAvailable(f"Unknown default backend: {default!r}")

    if preferred not in LOCAL_ENGINES:
        raise NoBackendAvailable(f"Default backend must be a local engine, got {default!r}")

    if preferred in registry:
        return preferred

    for kind in LOCAL_ENGINES:
        if kind in registry:
            logger.info(f"Default backend {preferred.value} not installed, using {kind.value}")
            return kind

    raise NoBackendAvailable("No local query engine installed (duckdb or datafusion)")


def select_backend(
    config: BackendConfig,
    sources: Sequence[Source],
    registry: BackendRegistry,
    default: str = "distributed",
) -> BackendKind:
    """
    Resolve the backend kind for an invocation.

    Args:
        config: Requested kind (possibly AUTO) and database string
        sources: Resolved sources
        registry: Backends available in this process
        default: Configured default local engine

    Returns:
        A concrete BackendKind present in the registry

    Raises:
        NoBackendAvailable
    """
    if config.kind is not BackendKind.AUTO:
        kind = config.kind
        reason = "explicit"
    elif config.database:
        kind = scheme_backend(config.database)
        reason = "database scheme"
    elif any(source.is_file for source in sources):
        kind = _default_engine(default, registry)
        reason = "default engine"
    else:
        raise NoBackendAvailable(
            "No backend available: give --database, a file source, or --backend"
        )

    if kind not in registry:
        raise NoBackendAvailable(f"Backend not available: {kind.value}")

    logger.info(f"Selected backend {kind.value} ({reason})")
    return kind
