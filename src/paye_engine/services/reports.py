"""Statutory reports projected from the audit trail and YTD ledger.

Reports are pure projections: they carry no generation timestamp and order
everything deterministically, so re-running a report over unchanged data
yields identical output.
"""

from __future__ import annotations

import calendar
import csv
import io
from collections import defaultdict
from dataclasses import dataclass, fields, is_dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Literal, Union

from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.calculators.money import ZERO, round_money
from paye_engine.calculators.tax_year import tax_year_bounds, tax_year_label
from paye_engine.calculators.types import EmployeeProfile
from paye_engine.errors import ReportDataError
from paye_engine.models import YTD_AMOUNT_FIELDS, AuditLogEntry
from paye_engine.services.audit_trail import AuditTrailRecorder
from paye_engine.services.ytd_accumulator import YTDAccumulator, YTDRecord

EMP201_DUE_DAY = 7

# Measure name -> (audit column, YTD field)
RECONCILED_MEASURES = {
    "gross_remuneration": ("gross_remuneration", "gross"),
    "paye": ("paye", "paye"),
    "uif_employee": ("uif_employee", "uif_employee"),
    "uif_employer": ("uif_employer", "uif_employer"),
    "sdl": ("sdl", "sdl"),
}


def _to_plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


def _csv(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


@dataclass(frozen=True)
class Emp201Report:
    """Monthly employer declaration (PAYE, UIF, SDL)."""

    filing_period: str  # YYYY-MM
    tax_year: str
    period_end: date
    due_date: date
    employee_count: int
    gross_remuneration: Decimal
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    uif_total: Decimal
    sdl: Decimal
    total_due: Decimal
    report_type: Literal["EMP201"] = "EMP201"

    @property
    def is_nil(self) -> bool:
        return self.employee_count == 0

    def to_dict(self) -> dict[str, Any]:
        data = _to_plain(self)
        data["is_nil"] = self.is_nil
        return data

    def to_csv(self) -> str:
        return _csv(
            [
                ["EMP201 - Monthly Employer Declaration"],
                ["Period", self.filing_period],
                ["Tax Year", self.tax_year],
                [],
                ["Description", "Amount (R)"],
                ["Total PAYE", str(self.paye)],
                ["Total UIF - Employee", str(self.uif_employee)],
                ["Total UIF - Employer", str(self.uif_employer)],
                ["Total SDL", str(self.sdl)],
                [],
                ["Total Amount Due", str(self.total_due)],
                ["Due Date", self.due_date.isoformat()],
                [],
                ["Employee Count", str(self.employee_count)],
            ]
        )


@dataclass(frozen=True)
class ReconciliationFinding:
    """A difference between declared (EMP201) and year-to-date figures."""

    measure: str
    declared: Decimal
    year_to_date: Decimal
    variance: Decimal  # declared - year_to_date
    employee_id: str | None = None  # None for employer-level totals

    def describe(self) -> str:
        scope = f"employee {self.employee_id}" if self.employee_id else "employer totals"
        return (
            f"{self.measure} for {scope}: declared {self.declared}, "
            f"year-to-date {self.year_to_date} (variance {self.variance})"
        )


@dataclass(frozen=True)
class Emp501EmployeeLine:
    employee_id: str
    full_name: str | None
    tax_number: str | None
    gross: Decimal
    taxable_income: Decimal
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    retirement: Decimal
    medical_credits: Decimal
    periods_processed: int


@dataclass(frozen=True)
class Emp501Report:
    """Annual employer reconciliation of EMP201 declarations against YTD totals."""

    tax_year: str
    period_start: date
    period_end: date
    monthly: tuple[Emp201Report, ...]
    declared_totals: dict[str, Decimal]
    ytd_totals: dict[str, Decimal]
    variance: dict[str, Decimal]
    employees: tuple[Emp501EmployeeLine, ...]
    findings: tuple[ReconciliationFinding, ...]
    report_type: Literal["EMP501"] = "EMP501"

    @property
    def balanced(self) -> bool:
        return not self.findings and all(v == 0 for v in self.variance.values())

    def to_dict(self) -> dict[str, Any]:
        data = _to_plain(self)
        data["balanced"] = self.balanced
        data["monthly"] = [m.to_dict() for m in self.monthly]
        return data

    def to_csv(self) -> str:
        rows: list[list[str]] = [
            ["EMP501 - Annual Employer Reconciliation"],
            ["Tax Year", self.tax_year],
            [],
            [
                "Employee ID",
                "Employee Name",
                "Tax Number",
                "Gross Income",
                "Taxable Income",
                "PAYE",
                "UIF",
                "Pension",
                "Medical Credits",
            ],
        ]
        for line in self.employees:
            rows.append(
                [
                    line.employee_id,
                    line.full_name or "",
                    line.tax_number or "",
                    str(line.gross),
                    str(line.taxable_income),
                    str(line.paye),
                    str(line.uif_employee),
                    str(line.retirement),
                    str(line.medical_credits),
                ]
            )
        rows.append([])
        rows.append(
            [
                "TOTALS",
                "",
                "",
                str(self.ytd_totals["gross"]),
                str(self.ytd_totals["taxable_income"]),
                str(self.ytd_totals["paye"]),
                str(self.ytd_totals["uif_employee"]),
                str(self.ytd_totals["retirement"]),
                str(self.ytd_totals["medical_credits"]),
            ]
        )
        rows.append(["Balanced", "yes" if self.balanced else "no"])
        return _csv(rows)


@dataclass(frozen=True)
class Irp5Report:
    """Employee tax certificate for one tax year."""

    certificate_number: str
    employee_id: str
    full_name: str | None
    tax_number: str | None
    date_of_birth: date | None
    tax_year: str
    period_start: date
    period_end: date
    # Income
    gross_remuneration: Decimal
    regular_income: Decimal
    irregular_income: Decimal
    fringe_benefits: Decimal
    taxable_income: Decimal
    # Deductions
    paye: Decimal
    uif_employee: Decimal
    retirement: Decimal
    # Credits
    medical_credits: Decimal
    periods_processed: int
    report_type: Literal["IRP5"] = "IRP5"

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)


Report = Union[Emp201Report, Emp501Report, Irp5Report]


class ReportGenerator:
    """Generates EMP201, EMP501 and IRP5 from committed data only."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrailRecorder(session)
        self.ytd = YTDAccumulator(session)

    async def generate_emp201(self, filing_period: str) -> Emp201Report:
        """Monthly declaration for a filing month ("YYYY-MM").

        A month without committed calculations yields a nil return.
        """
        year, month = _parse_filing_period(filing_period)
        entries = await self.audit.effective_entries(filing_period=filing_period)
        return self._emp201(year, month, entries)

    async def generate_emp501(
        self,
        tax_year: str,
        employees: dict[str, EmployeeProfile] | None = None,
    ) -> Emp501Report:
        """Annual reconciliation.

        Variances and findings are returned as data; an unbalanced
        reconciliation is not an error.
        """
        period_start, period_end = _tax_year_bounds(tax_year)
        employees = employees or {}

        entries = await self.audit.effective_entries(tax_year=tax_year)
        by_month: dict[str, list[AuditLogEntry]] = defaultdict(list)
        for entry in entries:
            by_month[entry.filing_period].append(entry)
        monthly = tuple(
            self._emp201(*_parse_filing_period(fp), by_month[fp]) for fp in sorted(by_month)
        )

        declared = {
            measure: round_money(sum((getattr(m, measure) for m in monthly), ZERO))
            for measure in RECONCILED_MEASURES
        }
        records = await self.ytd.list_for_tax_year(tax_year)
        ytd_totals = _sum_records(records)
        variance = {
            measure: declared[measure] - ytd_totals[ytd_field]
            for measure, (_, ytd_field) in RECONCILED_MEASURES.items()
        }

        findings = [
            ReconciliationFinding(
                measure=measure,
                declared=declared[measure],
                year_to_date=ytd_totals[ytd_field],
                variance=variance[measure],
            )
            for measure, (_, ytd_field) in RECONCILED_MEASURES.items()
            if variance[measure] != 0
        ]
        findings.extend(_employee_findings(entries, records))

        lines = tuple(
            Emp501EmployeeLine(
                employee_id=record.employee_id,
                full_name=_profile_attr(employees, record.employee_id, "full_name"),
                tax_number=_profile_attr(employees, record.employee_id, "tax_number"),
                gross=record.gross,
                taxable_income=record.taxable_income,
                paye=record.paye,
                uif_employee=record.uif_employee,
                uif_employer=record.uif_employer,
                sdl=record.sdl,
                retirement=record.retirement,
                medical_credits=record.medical_credits,
                periods_processed=record.periods_processed,
            )
            for record in records
        )

        return Emp501Report(
            tax_year=tax_year,
            period_start=period_start,
            period_end=period_end,
            monthly=monthly,
            declared_totals=declared,
            ytd_totals=ytd_totals,
            variance=variance,
            employees=lines,
            findings=tuple(findings),
        )

    async def generate_irp5(
        self,
        employee_id: str,
        tax_year: str,
        profile: EmployeeProfile | None = None,
    ) -> Irp5Report:
        """Employee tax certificate.

        Raises:
            ReportDataError: If the employee has no history in the tax year
        """
        period_start, period_end = _tax_year_bounds(tax_year)
        entries = await self.audit.effective_entries(employee_id=employee_id, tax_year=tax_year)
        record = await self.ytd.get_ytd(employee_id, tax_year)
        if not entries and record.periods_processed == 0:
            raise ReportDataError(
                f"No payroll history for employee {employee_id} in {tax_year}"
            )

        return Irp5Report(
            certificate_number=f"{tax_year.replace('/', '')}-{employee_id}",
            employee_id=employee_id,
            full_name=profile.full_name if profile else None,
            tax_number=profile.tax_number if profile else None,
            date_of_birth=profile.date_of_birth if profile else None,
            tax_year=tax_year,
            period_start=period_start,
            period_end=period_end,
            gross_remuneration=record.gross,
            regular_income=_total(entries, "regular_income"),
            irregular_income=_total(entries, "irregular_income"),
            fringe_benefits=_total(entries, "fringe_benefits"),
            taxable_income=record.taxable_income,
            paye=record.paye,
            uif_employee=record.uif_employee,
            retirement=record.retirement,
            medical_credits=record.medical_credits,
            periods_processed=record.periods_processed,
        )

    def _emp201(self, year: int, month: int, entries: list[AuditLogEntry]) -> Emp201Report:
        period_end = date(year, month, calendar.monthrange(year, month)[1])
        due_year, due_month = (year + 1, 1) if month == 12 else (year, month + 1)

        paye = _total(entries, "paye")
        uif_employee = _total(entries, "uif_employee")
        uif_employer = _total(entries, "uif_employer")
        sdl = _total(entries, "sdl")
        return Emp201Report(
            filing_period=f"{year:04d}-{month:02d}",
            tax_year=tax_year_label(period_end),
            period_end=period_end,
            due_date=date(due_year, due_month, EMP201_DUE_DAY),
            employee_count=len({e.employee_id for e in entries}),
            gross_remuneration=_total(entries, "gross_remuneration"),
            paye=paye,
            uif_employee=uif_employee,
            uif_employer=uif_employer,
            uif_total=uif_employee + uif_employer,
            sdl=sdl,
            total_due=paye + uif_employee + uif_employer + sdl,
        )


def _total(entries: Iterable[AuditLogEntry], column: str) -> Decimal:
    return round_money(sum((Decimal(getattr(e, column)) for e in entries), ZERO))


def _sum_records(records: Iterable[YTDRecord]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for record in records:
        for name, value in record.amounts().items():
            totals[name] += value
    return {name: round_money(totals[name]) for name in YTD_AMOUNT_FIELDS}


def _employee_findings(
    entries: list[AuditLogEntry], records: list[YTDRecord]
) -> list[ReconciliationFinding]:
    by_employee: dict[str, list[AuditLogEntry]] = defaultdict(list)
    for entry in entries:
        by_employee[entry.employee_id].append(entry)
    ytd_by_employee = {r.employee_id: r for r in records}

    findings = []
    for employee_id in sorted(set(by_employee) | set(ytd_by_employee)):
        record = ytd_by_employee.get(employee_id)
        for measure, (column, ytd_field) in RECONCILED_MEASURES.items():
            declared = _total(by_employee.get(employee_id, []), column)
            ytd_value = getattr(record, ytd_field) if record else ZERO
            if declared != ytd_value:
                findings.append(
                    ReconciliationFinding(
                        measure=measure,
                        declared=declared,
                        year_to_date=ytd_value,
                        variance=declared - ytd_value,
                        employee_id=employee_id,
                    )
                )
    return findings


def _profile_attr(
    employees: dict[str, EmployeeProfile], employee_id: str, name: str
) -> str | None:
    profile = employees.get(employee_id)
    return getattr(profile, name) if profile else None


def _parse_filing_period(filing_period: str) -> tuple[int, int]:
    try:
        year_part, month_part = filing_period.split("-")
        year, month = int(year_part), int(month_part)
    except ValueError as e:
        raise ReportDataError(f"Invalid filing period {filing_period!r}") from e
    if not 1 <= month <= 12:
        raise ReportDataError(f"Invalid filing period {filing_period!r}")
    return year, month


def _tax_year_bounds(tax_year: str) -> tuple[date, date]:
    try:
        return tax_year_bounds(tax_year)
    except ValueError as e:
        raise ReportDataError(str(e)) from e
