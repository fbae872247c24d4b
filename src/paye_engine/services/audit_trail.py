"""Tamper-evident audit trail of committed calculations."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.calculators.money import round_money
from paye_engine.calculators.types import CalculationBreakdown, PayrollEntry
from paye_engine.models import AUDIT_AMOUNT_FIELDS, AuditLogEntry

logger = logging.getLogger(__name__)


def compute_entry_hash(entry: AuditLogEntry) -> str:
    """sha256 over the canonical content of an audit entry.

    recorded_at is excluded so the hash survives database round trips of
    timezone-aware timestamps.
    """
    data = {
        "audit_entry_id": str(entry.audit_entry_id),
        "calculation_id": str(entry.calculation_id),
        "employee_id": entry.employee_id,
        "period_id": entry.period_id,
        "period_start": entry.period_start.isoformat(),
        "period_end": entry.period_end.isoformat(),
        "filing_period": entry.filing_period,
        "tax_year": entry.tax_year,
        "revision": entry.revision,
        "corrects_entry_id": str(entry.corrects_entry_id) if entry.corrects_entry_id else None,
        "correction_reason": entry.correction_reason,
        "config_ref": entry.config_ref,
        "config_fingerprint": entry.config_fingerprint,
        "input_snapshot": entry.input_snapshot,
        "breakdown_snapshot": entry.breakdown_snapshot,
        "amounts": {
            name: str(round_money(Decimal(getattr(entry, name))))
            for name in AUDIT_AMOUNT_FIELDS
        },
    }
    json_str = json.dumps(data, sort_keys=True)
    return hashlib.sha256(json_str.encode()).hexdigest()


class AuditTrailRecorder:
    """Builds and queries write-once audit entries.

    Each entry keeps the full input and breakdown so any past figure can be
    reproduced, plus the config reference and fingerprint of the tables used.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def build_entry(
        self,
        entry: PayrollEntry,
        breakdown: CalculationBreakdown,
        *,
        revision: int = 0,
        corrects_entry_id: UUID | None = None,
        correction_reason: str | None = None,
    ) -> AuditLogEntry:
        """Build (but do not add) an audit entry with its hash."""
        period = entry.period
        row = AuditLogEntry(
            audit_entry_id=uuid4(),
            calculation_id=breakdown.calculation_id,
            employee_id=entry.employee_id,
            period_id=period.period_id,
            period_start=period.start,
            period_end=period.end,
            filing_period=period.filing_period,
            tax_year=breakdown.tax_year,
            revision=revision,
            corrects_entry_id=corrects_entry_id,
            correction_reason=correction_reason,
            config_ref=breakdown.config_ref,
            config_fingerprint=breakdown.config_fingerprint,
            input_snapshot=entry.to_canonical_dict(),
            breakdown_snapshot=breakdown.to_canonical_dict(),
            gross_remuneration=breakdown.gross_remuneration,
            regular_income=round_money(entry.gross_salary),
            irregular_income=breakdown.irregular_income,
            fringe_benefits=breakdown.fringe_benefits,
            pre_tax_deductions=breakdown.pre_tax_deductions,
            taxable_income=round_money(
                breakdown.regular_taxable + breakdown.irregular_income
            ),
            medical_credit=round_money(
                breakdown.medical_credit / breakdown.periods_per_year
            ),
            paye=breakdown.paye,
            uif_employee=breakdown.uif_employee,
            uif_employer=breakdown.uif_employer,
            sdl=breakdown.sdl,
            net_pay=breakdown.net_pay,
        )
        row.entry_hash = compute_entry_hash(row)
        return row

    async def get(self, audit_entry_id: UUID) -> AuditLogEntry | None:
        return await self.session.get(AuditLogEntry, audit_entry_id)

    async def find(
        self, employee_id: str, period_id: str, revision: int | None = None
    ) -> AuditLogEntry | None:
        """Entry for (employee, period); the latest revision when revision is None."""
        stmt = select(AuditLogEntry).where(
            AuditLogEntry.employee_id == employee_id,
            AuditLogEntry.period_id == period_id,
        )
        if revision is not None:
            stmt = stmt.where(AuditLogEntry.revision == revision)
        stmt = stmt.order_by(AuditLogEntry.revision.desc()).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def by_employee(
        self, employee_id: str, tax_year: str | None = None
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(AuditLogEntry.employee_id == employee_id)
        if tax_year is not None:
            stmt = stmt.where(AuditLogEntry.tax_year == tax_year)
        return await self._all(stmt)

    async def by_period(self, period_id: str) -> list[AuditLogEntry]:
        return await self._all(select(AuditLogEntry).where(AuditLogEntry.period_id == period_id))

    async def by_config_ref(self, config_ref: str) -> list[AuditLogEntry]:
        return await self._all(
            select(AuditLogEntry).where(AuditLogEntry.config_ref == config_ref)
        )

    async def by_tax_year(self, tax_year: str) -> list[AuditLogEntry]:
        return await self._all(select(AuditLogEntry).where(AuditLogEntry.tax_year == tax_year))

    async def by_filing_period(self, filing_period: str) -> list[AuditLogEntry]:
        return await self._all(
            select(AuditLogEntry).where(AuditLogEntry.filing_period == filing_period)
        )

    async def query(
        self,
        *,
        employee_id: str | None = None,
        period_id: str | None = None,
        tax_year: str | None = None,
        filing_period: str | None = None,
        config_ref: str | None = None,
    ) -> list[AuditLogEntry]:
        """All revisions matching every given filter."""
        stmt = select(AuditLogEntry)
        if employee_id is not None:
            stmt = stmt.where(AuditLogEntry.employee_id == employee_id)
        if period_id is not None:
            stmt = stmt.where(AuditLogEntry.period_id == period_id)
        if tax_year is not None:
            stmt = stmt.where(AuditLogEntry.tax_year == tax_year)
        if filing_period is not None:
            stmt = stmt.where(AuditLogEntry.filing_period == filing_period)
        if config_ref is not None:
            stmt = stmt.where(AuditLogEntry.config_ref == config_ref)
        return await self._all(stmt)

    async def effective_entries(
        self,
        *,
        employee_id: str | None = None,
        tax_year: str | None = None,
        filing_period: str | None = None,
    ) -> list[AuditLogEntry]:
        """Latest revision per (employee, period): what reports should declare."""
        rows = await self.query(
            employee_id=employee_id, tax_year=tax_year, filing_period=filing_period
        )
        return latest_revisions(rows)

    async def committed_through(
        self, employee_ids: Iterable[str] | None = None
    ) -> dict[str, date]:
        """Last committed period end per employee."""
        stmt = select(AuditLogEntry.employee_id, func.max(AuditLogEntry.period_end)).group_by(
            AuditLogEntry.employee_id
        )
        if employee_ids is not None:
            stmt = stmt.where(AuditLogEntry.employee_id.in_(list(employee_ids)))
        result = await self.session.execute(stmt)
        return {employee_id: last_end for employee_id, last_end in result.all()}

    async def verify_integrity(
        self, entries: Sequence[AuditLogEntry] | None = None
    ) -> list[UUID]:
        """Recompute hashes; return ids of entries whose content no longer matches."""
        if entries is None:
            entries = await self._all(select(AuditLogEntry))
        tampered = [
            entry.audit_entry_id
            for entry in entries
            if compute_entry_hash(entry) != entry.entry_hash
        ]
        if tampered:
            logger.warning("Audit integrity check failed for %d entries", len(tampered))
        return tampered

    async def _all(self, stmt: Select[tuple[AuditLogEntry]]) -> list[AuditLogEntry]:
        stmt = stmt.order_by(
            AuditLogEntry.employee_id,
            AuditLogEntry.period_start,
            AuditLogEntry.period_id,
            AuditLogEntry.revision,
        )
        return list((await self.session.execute(stmt)).scalars().all())


def latest_revisions(rows: Iterable[AuditLogEntry]) -> list[AuditLogEntry]:
    """Keep the highest revision per (employee, period), preserving order."""
    latest: dict[tuple[str, str], AuditLogEntry] = {}
    for row in rows:
        key = (row.employee_id, row.period_id)
        current = latest.get(key)
        if current is None or row.revision > current.revision:
            latest[key] = row
    return sorted(
        latest.values(), key=lambda r: (r.employee_id, r.period_start, r.period_id)
    )
