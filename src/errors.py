"""Healthcare pipeline exception hierarchy.

Every stage raises a specific error type so a failed run reports which
stage broke and, for value problems, which record and column.
"""

from __future__ import annotations

from typing import Any


class HealthcareEtlError(Exception):
    """Base exception for all pipeline failures."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.stage}] {message}" if self.stage else message


class NotFoundError(HealthcareEtlError):
    """Raised when a table or column the stage needs does not exist."""


class TypeCoercionError(HealthcareEtlError):
    """Raised when a stored value cannot be converted to its target type."""

    def __init__(self, column: str, row: int, value: Any, target: str, stage: str | None = None):
        super().__init__(
            f"Row {row}: cannot convert {column}={value!r} to {target}", stage=stage
        )
        self.column = column
        self.row = row
        self.value = value
        self.target = target


class AlreadyExistsError(HealthcareEtlError):
    """Raised when a schema or key step is rerun against a normalized table."""


class DuplicateColumnError(AlreadyExistsError):
    """Raised when a rename target is already present in the table."""


class ConstraintViolationError(HealthcareEtlError):
    """Raised when surrogate key values collide."""


class DataQualityError(HealthcareEtlError):
    """Raised when quality alerting is enabled and missing values are found."""
