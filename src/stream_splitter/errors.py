"""
Typed errors for the splitter.

Every error carries a category, a retryable flag and a context dict so it can be
logged as structured fields. Fatal errors abort a run; ``CleanupError`` is the
only recovered one (the router logs it and keeps going).

Hierarchy::

    SplitterError
    ├── SourceError
    │   ├── SourceUnavailableError   object could not be opened
    │   ├── SourceReadError          stream failed mid-read
    │   └── ParseError               unparseable row
    ├── KeyDerivationError           key policy could not build a key
    ├── StorageError
    │   ├── CleanupError             partition delete failed (recovered)
    │   └── SinkCommitError          group output could not be committed
    ├── RouterClosedError            route() after finish()/abort()
    └── ConfigError
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for log routing."""

    SOURCE = "SOURCE"
    PARSE = "PARSE"
    STORAGE = "STORAGE"
    POLICY = "POLICY"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


class SplitterError(Exception):
    """Base class for all splitter errors."""

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        retryable: bool | None = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.category = self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class SourceError(SplitterError):
    default_category = ErrorCategory.SOURCE


class SourceUnavailableError(SourceError):
    """The source object could not be opened."""


class SourceReadError(SourceError):
    """The source stream failed while being read."""

    default_retryable = True


class ParseError(SourceError):
    """A row could not be parsed. Carries ``line`` in its context."""

    default_category = ErrorCategory.PARSE

    @property
    def line(self) -> int | None:
        return self.context.get("line")


class KeyDerivationError(SplitterError):
    """The key policy could not derive a key from a record."""

    default_category = ErrorCategory.POLICY


class StorageError(SplitterError):
    default_category = ErrorCategory.STORAGE
    default_retryable = True


class CleanupError(StorageError):
    """Deleting stale objects under a partition failed. Logged, never raised to callers."""


class SinkCommitError(StorageError):
    """A group output could not be durably written."""


class RouterClosedError(SplitterError):
    """A record was routed after the router stopped accepting new groups."""


class ConfigError(SplitterError):
    """Settings could not be loaded or are unusable."""

    default_category = ErrorCategory.CONFIG
