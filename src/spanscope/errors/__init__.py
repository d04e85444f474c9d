"""Spanscope error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    INPUT = "input"
    IO = "io"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class SpanscopeError(Exception):
    """Base error for all spanscope exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class SpanParseError(SpanscopeError):
    """A span record is malformed (missing ids, unparsable timestamps)."""

    def __init__(
        self,
        message: str,
        *,
        span_id: str | None = None,
        field: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, category=ErrorCategory.INPUT, **kwargs)
        self.span_id = span_id
        self.field = field


class TraceFileError(SpanscopeError):
    """A trace input file could not be read or decoded."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.IO)
        self.path = path


class ConfigurationError(SpanscopeError):
    """Invalid or inconsistent configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION)
