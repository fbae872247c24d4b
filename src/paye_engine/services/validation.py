"""Pre-calculation validation of payroll batches."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Sequence

from paye_engine.calculators.types import EmployeeProfile, PayrollEntry, TaxYearConfig
from paye_engine.errors import ValidationError, ValidationIssue

logger = logging.getLogger(__name__)

# Retirement fund contributions are deductible up to 27.5% of remuneration
RETIREMENT_DEDUCTION_LIMIT = Decimal("0.275")

_AMOUNT_FIELDS = ("gross_salary", "irregular_income", "fringe_benefits", "pre_tax_deductions")


@dataclass
class ValidationReport:
    """Outcome of a batch that passed validation."""

    entries_checked: int
    employees_checked: int
    warnings: list[ValidationIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries_checked": self.entries_checked,
            "employees_checked": self.employees_checked,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class PayrollValidator:
    """Checks a batch before anything is calculated or committed.

    All issues are collected first. Any error-severity issue fails the whole
    batch with ValidationError; warnings never block.
    """

    def validate_batch(
        self,
        entries: Sequence[PayrollEntry],
        employees: Mapping[str, EmployeeProfile],
        config: TaxYearConfig,
        committed_through: Mapping[str, date] | None = None,
    ) -> ValidationReport:
        """Validate a batch of payroll entries.

        Args:
            entries: Entries to be processed
            employees: Known employee profiles by employee_id
            config: Tax tables the batch will be calculated with
            committed_through: Last committed period end per employee

        Raises:
            ValidationError: Listing every offending entry
        """
        committed_through = committed_through or {}
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        seen: set[tuple[str, str]] = set()
        by_employee: dict[str, list[PayrollEntry]] = defaultdict(list)

        for entry in entries:
            errors.extend(self._check_entry(entry, employees, config, committed_through))

            key = (entry.employee_id, entry.period.period_id)
            if key in seen:
                errors.append(
                    _issue(entry, "period_id", "Duplicate entry for employee and period in batch")
                )
                continue
            seen.add(key)
            by_employee[entry.employee_id].append(entry)

            profile = employees.get(entry.employee_id)
            if profile is not None:
                warnings.extend(self._warnings_for(entry, profile))

        for employee_entries in by_employee.values():
            errors.extend(self._check_overlaps(employee_entries))

        if errors:
            logger.info(
                "Payroll batch rejected: %d error(s) across %d entries",
                len(errors),
                len(entries),
            )
            raise ValidationError(errors)

        return ValidationReport(
            entries_checked=len(entries),
            employees_checked=len(by_employee),
            warnings=warnings,
        )

    def _check_entry(
        self,
        entry: PayrollEntry,
        employees: Mapping[str, EmployeeProfile],
        config: TaxYearConfig,
        committed_through: Mapping[str, date],
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        period = entry.period

        profile = employees.get(entry.employee_id)
        if profile is None:
            issues.append(_issue(entry, "employee_id", "Unknown employee"))
        elif profile.medical_scheme_members < 0:
            issues.append(
                _issue(entry, "medical_scheme_members", "Medical scheme members is negative")
            )

        if period.end < period.start:
            issues.append(_issue(entry, "period", "Period end precedes period start"))
        elif not (config.covers(period.start) and config.covers(period.end)):
            issues.append(
                _issue(
                    entry,
                    "period",
                    f"Period {period.start} to {period.end} is outside tax year "
                    f"{config.tax_year} ({config.effective_start} to {config.effective_end})",
                )
            )

        for name in _AMOUNT_FIELDS:
            if getattr(entry, name) < 0:
                issues.append(_issue(entry, name, f"{name} must not be negative"))

        last_end = committed_through.get(entry.employee_id)
        if last_end is not None and period.start <= last_end:
            issues.append(
                _issue(
                    entry,
                    "period",
                    f"Period starts {period.start}, not after the last committed "
                    f"period ending {last_end}",
                )
            )
        return issues

    def _check_overlaps(self, entries: list[PayrollEntry]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        ordered = sorted(entries, key=lambda e: (e.period.start, e.period.end))
        for previous, current in zip(ordered, ordered[1:]):
            if current.period.overlaps(previous.period):
                issues.append(
                    _issue(
                        current,
                        "period",
                        f"Period overlaps period {previous.period.period_id}",
                    )
                )
        return issues

    def _warnings_for(
        self, entry: PayrollEntry, profile: EmployeeProfile
    ) -> list[ValidationIssue]:
        warnings: list[ValidationIssue] = []
        if profile.date_of_birth is None:
            warnings.append(
                _warning(
                    entry,
                    "date_of_birth",
                    "Date of birth missing; age rebates may be understated",
                )
            )
        if not profile.tax_number:
            warnings.append(
                _warning(entry, "tax_number", "Tax number missing; required for IRP5")
            )

        gross = entry.gross_salary
        if gross > 0 and entry.pre_tax_deductions > gross * RETIREMENT_DEDUCTION_LIMIT:
            warnings.append(
                _warning(
                    entry,
                    "pre_tax_deductions",
                    "Retirement deductions exceed 27.5% of gross",
                )
            )
        if entry.pre_tax_deductions > entry.gross_remuneration:
            warnings.append(
                _warning(entry, "pre_tax_deductions", "Deductions exceed gross remuneration")
            )
        return warnings


def _issue(entry: PayrollEntry, field_name: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        employee_id=entry.employee_id,
        period_id=entry.period.period_id,
        field=field_name,
        message=message,
    )


def _warning(entry: PayrollEntry, field_name: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        employee_id=entry.employee_id,
        period_id=entry.period.period_id,
        field=field_name,
        message=message,
        severity="warning",
    )
