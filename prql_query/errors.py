"""Exception hierarchy for prql-query.

Every error is fatal to the invocation; the CLI reports it once on stderr.
"""


class PqError(Exception):
    """Base exception for prql-query errors."""
    pass


class MalformedSourceSpec(PqError):
    """A --from entry cannot be parsed into alias and location."""
    def __init__(self, spec: str, reason: str):
        self.spec = spec
        self.reason = reason
        super().__init__(f"Malformed source {spec!r}: {reason}")


class NoBackendAvailable(PqError):
    """No execution backend could be resolved."""
    pass


class IncompatibleFormat(PqError):
    """Explicit output format conflicts with the destination."""
    pass


class UnsupportedFormat(PqError):
    """Destination extension has no known format mapping."""
    def __init__(self, destination: str):
        self.destination = destination
        super().__init__(f"Cannot infer output format from destination: {destination}")


class QueryCompilationError(PqError):
    """The PRQL compiler rejected the normalized query."""
    pass


class BackendExecutionError(PqError):
    """The engine failed while connecting, preparing or executing."""
    def __init__(self, backend: str, message: str):
        self.backend = backend
        super().__init__(f"{backend}: {message}")


class SerializationError(PqError):
    """The result writer failed to encode or write a batch."""
    pass


class ConfigError(PqError):
    """A config file or PQ_* environment variable holds an invalid value."""
    pass
