"""Exception types raised by stigmap operations."""

from __future__ import annotations


class StigmapError(Exception):
    """Base class for all stigmap errors."""


class ParseError(StigmapError):
    """A catalog or checklist document could not be parsed.

    Fatal to the one import that raised it; previously loaded state is
    left untouched.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source or '<document>'}: {reason}")


class StoreError(StigmapError):
    """A persistence operation failed and was rolled back."""


class ExportError(StigmapError):
    """A report could not be written to its output path."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write {path}: {reason}")
