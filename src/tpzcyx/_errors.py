"""Exceptions raised by tpzcyx.

Every public operation either succeeds or raises exactly one of the
exceptions defined here.  All of them derive from `TpzcyxError`, so callers
that only want to report a failure can catch that single type.

Each exception keeps the values that produced it as attributes, and exposes
them as a plain dictionary through `details()`.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, TypedDict

from typing_extensions import NotRequired

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = [
    "DatasetIOError",
    "ErrorDetails",
    "InvalidDimensionError",
    "InvalidPatternParameter",
    "MemoryLimitExceeded",
    "MetadataMismatchError",
    "ParseError",
    "SizeOverflowError",
    "TpzcyxError",
]


class ErrorDetails(TypedDict):
    type: str
    """
    Identifier of the error kind, designed for programmatic use.  It will change
    rarely or never.
    """
    msg: str
    """A human readable error message."""
    ctx: NotRequired[dict[str, Any]]
    """The values that were used to render `msg`."""


class TpzcyxError(Exception):
    """Base class for every error raised by tpzcyx."""

    type: str = "tpzcyx_error"

    def __init__(self, msg: str, **ctx: Any) -> None:
        self._ctx = ctx
        super().__init__(msg)

    @property
    def title(self) -> str:
        """The title of the error, as used when reporting it."""
        return type(self).__name__

    def details(self, *, include_context: bool = True) -> ErrorDetails:
        """Details about this error.

        Parameters
        ----------
        include_context : bool
            Whether to include the values that produced the error.
        """
        info: ErrorDetails = {"type": self.type, "msg": str(self)}
        if include_context and self._ctx:
            info["ctx"] = dict(self._ctx)
        return info


class DatasetIOError(TpzcyxError):
    """A file could not be opened, read, written or moved into place."""

    type = "io_error"

    def __init__(self, path: str | os.PathLike, reason: str) -> None:
        self.path = os.fspath(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}", path=self.path, reason=reason)

    @classmethod
    def from_os_error(cls, path: str | os.PathLike, err: OSError) -> DatasetIOError:
        reason = err.strerror or str(err) or type(err).__name__
        return cls(path, reason)


class InvalidDimensionError(TpzcyxError):
    """One of the six TPZCYX dimensions is not a positive integer."""

    type = "invalid_dimension"

    def __init__(self, dimensions: Sequence[Any], msg: str | None = None) -> None:
        self.dimensions = tuple(dimensions)
        if msg is None:
            msg = (
                "All dimensions (t, p, z, c, y, x) must be positive integers, "
                f"got {self.dimensions}"
            )
        super().__init__(msg, dimensions=self.dimensions)


class InvalidPatternParameter(TpzcyxError):
    """A pattern parameter is outside of its valid range."""

    type = "invalid_pattern_parameter"

    def __init__(self, kind: str, parameter: str, value: Any, reason: str) -> None:
        self.kind = kind
        self.parameter = parameter
        self.value = value
        super().__init__(
            f"{kind}.{parameter}={value!r}: {reason}",
            kind=kind,
            parameter=parameter,
            value=value,
        )


class MemoryLimitExceeded(TpzcyxError):
    """The payload would not fit within the memory budget."""

    type = "memory_limit_exceeded"

    def __init__(self, required: int, limit: int) -> None:
        self.required = required
        self.limit = limit
        super().__init__(
            f"Payload requires {required} bytes "
            f"({required / 2**20:.1f} MiB), the limit is {limit} bytes "
            f"({limit / 2**20:.0f} MiB)",
            required=required,
            limit=limit,
        )


class ParseError(TpzcyxError):
    """A descriptor is malformed, incomplete or violates an invariant.

    When the failure was detected by the schema, `errors` holds the individual
    pydantic error entries.
    """

    type = "parse_error"

    def __init__(
        self,
        msg: str,
        path: str | os.PathLike | None = None,
        errors: Sequence[Any] = (),
    ) -> None:
        self.msg = msg
        self.path = os.fspath(path) if path is not None else None
        self.errors = list(errors)
        if self.path is not None:
            msg = f"{self.path}: {msg}"
        super().__init__(msg, path=self.path)

    def with_path(self, path: str | os.PathLike) -> ParseError:
        """Return a copy of this error that names the descriptor it came from."""
        return ParseError(self.msg, path=path, errors=self.errors)


class MetadataMismatchError(TpzcyxError):
    """The payload does not have the size the descriptor requires."""

    type = "metadata_mismatch"

    def __init__(
        self,
        expected: int,
        actual: int,
        path: str | os.PathLike | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        self.path = os.fspath(path) if path is not None else None
        where = f"{self.path}: " if self.path is not None else ""
        super().__init__(
            f"{where}payload size mismatch: expected {expected} bytes, "
            f"got {actual}",
            expected=expected,
            actual=actual,
            path=self.path,
        )


class SizeOverflowError(TpzcyxError):
    """The product of the dimensions does not fit in an unsigned 64 bit size."""

    type = "size_overflow"

    def __init__(self, dimensions: Sequence[int]) -> None:
        self.dimensions = tuple(dimensions)
        super().__init__(
            f"Payload size for dimensions {self.dimensions} overflows 64 bits",
            dimensions=self.dimensions,
        )
