"""Typed errors raised by the PAYE engine.

Every error carries enough context (employee, period, field) to reproduce the
failure from a test.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


class PayeEngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"detail": str(self), "code": self.code}
        for name in ("employee_id", "period_id", "field"):
            value = getattr(self, name, None)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a payroll batch."""

    employee_id: str
    period_id: str
    field: str
    message: str
    severity: str = "error"  # 'error' | 'warning'

    def to_dict(self) -> dict[str, str]:
        return {
            "employee_id": self.employee_id,
            "period_id": self.period_id,
            "field": self.field,
            "message": self.message,
            "severity": self.severity,
        }


class ValidationError(PayeEngineError):
    """Raised when a batch fails validation. Lists every offending entry."""

    code = "VALIDATION_ERROR"

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        super().__init__(
            f"Payroll batch failed validation with {len(self.issues)} issue(s)"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [issue.to_dict() for issue in self.issues]
        return data


class ConfigurationError(PayeEngineError):
    """Raised when tax tables are invalid or do not cover a period."""

    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        employee_id: str | None = None,
        period_id: str | None = None,
        field: str | None = None,
    ):
        self.employee_id = employee_id
        self.period_id = period_id
        self.field = field
        super().__init__(message)


class CalculationError(PayeEngineError):
    """Raised when a single calculation cannot be performed."""

    code = "CALCULATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        employee_id: str | None = None,
        period_id: str | None = None,
        field: str | None = None,
    ):
        self.employee_id = employee_id
        self.period_id = period_id
        self.field = field
        super().__init__(message)


class DuplicateError(PayeEngineError):
    """Raised when (employee, period) already has a committed calculation."""

    code = "DUPLICATE_CALCULATION"

    def __init__(
        self,
        employee_id: str,
        period_id: str,
        existing_entry_id: UUID | None = None,
    ):
        self.employee_id = employee_id
        self.period_id = period_id
        self.existing_entry_id = existing_entry_id
        super().__init__(
            f"Employee {employee_id} already has a committed calculation "
            f"for period {period_id}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["employee_id"] = self.employee_id
        data["period_id"] = self.period_id
        data["existing_entry_id"] = (
            str(self.existing_entry_id) if self.existing_entry_id else None
        )
        return data


class ImmutableRecordError(PayeEngineError):
    """Raised on an attempt to update or delete an append-only record."""

    code = "IMMUTABLE_RECORD"


class ReportDataError(PayeEngineError):
    """Raised when a report has no underlying data to project."""

    code = "REPORT_DATA_MISSING"
