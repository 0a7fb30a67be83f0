"""
Error taxonomy shared by the lifecycle engine, the driver directory and the
geospatial index.  Callers handle exactly one hierarchy, rooted at
``DispatchError``; adapters translate their own failures into it.
"""

from __future__ import annotations

from typing import Iterable, Optional


class DispatchError(Exception):
    """Base class; ``code`` is a stable machine-readable identifier."""

    code = "dispatch_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DispatchError):
    """Referenced order, driver or passenger does not exist."""

    code = "not_found"


class InvalidStateError(DispatchError):
    """The requested transition is not legal from the current state."""

    code = "invalid_state"

    def __init__(
        self,
        message: str,
        *,
        current: Optional[str] = None,
        expected: Optional[Iterable[str]] = None,
    ):
        super().__init__(message)
        self.current = current
        self.expected = tuple(expected) if expected is not None else ()


class ConflictError(DispatchError):
    """Uniqueness violation, e.g. an order-number collision."""

    code = "conflict"


class InvalidArgumentError(DispatchError):
    """Malformed input: out-of-range coordinates, ratings, fares."""

    code = "invalid_argument"


class InternalError(DispatchError):
    """Storage or adapter failure, surfaced as-is."""

    code = "internal"
