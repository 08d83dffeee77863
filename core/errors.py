# core/errors.py
"""Exception taxonomy for name list generation."""

from __future__ import annotations


class NameForgeError(Exception):
    """Base class for all name list generation errors."""


class ParseError(NameForgeError):
    """Malformed DSL source, reported with its location."""

    def __init__(
        self,
        message: str,
        line: int,
        column: int,
        construct: str | None = None,
        source: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.construct = construct
        self.source = source
        location = f"{source}:{line}:{column}"
        detail = f" (near {construct!r})" if construct else ""
        super().__init__(f"{location}: {message}{detail}")


class ConfigInvariantError(NameForgeError):
    """The parsed tree violates a global invariant such as key uniqueness."""


class ConflictingWeightError(ParseError, ConfigInvariantError):
    """A node declares its weight more than once."""


class CacheCorruptionError(NameForgeError):
    """A single cache entry could not be read back."""

    def __init__(self, signature: str, reason: str) -> None:
        self.signature = signature
        self.reason = reason
        super().__init__(f"Cache entry {signature[:12]}... unusable: {reason}")


class ProviderError(NameForgeError):
    """The generation capability failed for one node."""


class WriteError(NameForgeError):
    """An output artifact could not be persisted."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write '{path}': {reason}")
