"""Error taxonomy and the result type returned by store mutations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class StaffingError(Exception):
    """Base class for domain failures reported by the staffing core."""

    code = "staffing_error"


class ValidationError(StaffingError, ValueError):
    """Missing or malformed fields, or an illegal workflow transition."""

    code = "validation_error"


class PermissionDeniedError(StaffingError, PermissionError):
    """The acting role is not entitled to the attempted transition."""

    code = "permission_denied"


class NotFoundError(StaffingError, LookupError):
    """Reference to an unknown staff member, project or SPCR."""

    code = "not_found"


@dataclass(frozen=True)
class OpResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[StaffingError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OpResult[Any]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: StaffingError) -> "OpResult[Any]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


__all__ = [
    "NotFoundError",
    "OpResult",
    "PermissionDeniedError",
    "StaffingError",
    "ValidationError",
]
