"""Year-to-date totals derived from the append-only YTD ledger."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.calculators.money import ZERO, round_money
from paye_engine.models import YTD_AMOUNT_FIELDS, AuditLogEntry, YTDLedgerEntry

# YTD ledger column -> audit entry column
_AUDIT_SOURCE = {
    "gross": "gross_remuneration",
    "taxable_income": "taxable_income",
    "regular_income": "regular_income",
    "irregular_income": "irregular_income",
    "fringe_benefits": "fringe_benefits",
    "retirement": "pre_tax_deductions",
    "medical_credits": "medical_credit",
    "paye": "paye",
    "uif_employee": "uif_employee",
    "uif_employer": "uif_employer",
    "sdl": "sdl",
}


@dataclass(frozen=True)
class YTDRecord:
    """Cumulative figures for one employee in one tax year."""

    employee_id: str
    tax_year: str
    gross: Decimal = ZERO
    taxable_income: Decimal = ZERO
    regular_income: Decimal = ZERO
    irregular_income: Decimal = ZERO
    fringe_benefits: Decimal = ZERO
    retirement: Decimal = ZERO
    medical_credits: Decimal = ZERO
    paye: Decimal = ZERO
    uif_employee: Decimal = ZERO
    uif_employer: Decimal = ZERO
    sdl: Decimal = ZERO
    periods_processed: int = 0

    def amounts(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in YTD_AMOUNT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Decimal) else value
        return data


def sum_ledger(employee_id: str, tax_year: str, rows: Iterable[YTDLedgerEntry]) -> YTDRecord:
    """Fold ledger deltas into a YTD record (Decimal arithmetic, no SQL SUM)."""
    totals = {name: ZERO for name in YTD_AMOUNT_FIELDS}
    periods = 0
    for row in rows:
        for name in YTD_AMOUNT_FIELDS:
            totals[name] += Decimal(getattr(row, name))
        periods += row.periods
    return YTDRecord(
        employee_id=employee_id,
        tax_year=tax_year,
        periods_processed=periods,
        **{name: round_money(value) for name, value in totals.items()},
    )


class YTDAccumulator:
    """Builds ledger deltas and reads year-to-date totals.

    Totals are never stored; they are the sum of the ledger for
    (employee_id, tax_year), so an interrupted commit cannot leave a
    half-updated balance behind.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def build_entry(self, audit_entry: AuditLogEntry) -> YTDLedgerEntry:
        """Ledger delta for an original (revision 0) calculation."""
        amounts = {
            name: getattr(audit_entry, source) for name, source in _AUDIT_SOURCE.items()
        }
        return YTDLedgerEntry(
            employee_id=audit_entry.employee_id,
            tax_year=audit_entry.tax_year,
            period_id=audit_entry.period_id,
            audit_entry_id=audit_entry.audit_entry_id,
            corrects_entry_id=None,
            periods=1,
            **amounts,
        )

    def build_correction(
        self, correction: AuditLogEntry, superseded: AuditLogEntry
    ) -> YTDLedgerEntry:
        """Ledger delta (new - old) for a correction; the period count is unchanged."""
        amounts = {
            name: Decimal(getattr(correction, source)) - Decimal(getattr(superseded, source))
            for name, source in _AUDIT_SOURCE.items()
        }
        return YTDLedgerEntry(
            employee_id=correction.employee_id,
            tax_year=correction.tax_year,
            period_id=correction.period_id,
            audit_entry_id=correction.audit_entry_id,
            corrects_entry_id=correction.corrects_entry_id,
            periods=0,
            **amounts,
        )

    async def get_ytd(self, employee_id: str, tax_year: str) -> YTDRecord:
        """Current totals; an employee with no history gets a zero record."""
        stmt = select(YTDLedgerEntry).where(
            YTDLedgerEntry.employee_id == employee_id,
            YTDLedgerEntry.tax_year == tax_year,
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return sum_ledger(employee_id, tax_year, rows)

    async def list_for_tax_year(self, tax_year: str) -> list[YTDRecord]:
        """Totals for every employee with history in the tax year, by employee id."""
        stmt = select(YTDLedgerEntry).where(YTDLedgerEntry.tax_year == tax_year)
        rows = (await self.session.execute(stmt)).scalars().all()

        grouped: dict[str, list[YTDLedgerEntry]] = defaultdict(list)
        for row in rows:
            grouped[row.employee_id].append(row)
        return [
            sum_ledger(employee_id, tax_year, grouped[employee_id])
            for employee_id in sorted(grouped)
        ]
