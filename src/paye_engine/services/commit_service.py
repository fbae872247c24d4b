"""Atomic commit of a calculation into the audit trail and YTD ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.calculators.types import CalculationBreakdown, PayrollEntry
from paye_engine.errors import CalculationError, DuplicateError
from paye_engine.models import AuditLogEntry, YTDLedgerEntry
from paye_engine.services.audit_trail import AuditTrailRecorder
from paye_engine.services.ytd_accumulator import YTDAccumulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """Rows written by one commit."""

    audit_entry_id: UUID
    ytd_entry_id: UUID
    calculation_id: UUID
    employee_id: str
    period_id: str
    revision: int


class CommitService:
    """Writes audit entry and YTD delta together, or neither.

    Key invariants:
    1. One revision-0 audit entry per (employee_id, period_id), enforced by
       a unique constraint so concurrent commits cannot both succeed
    2. Every audit entry has exactly one YTD ledger row
    3. Corrections never touch earlier rows; they append revision n+1 and a
       signed YTD delta

    Both rows are flushed inside the caller's transaction. On any write
    failure the session is rolled back before the error propagates.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditTrailRecorder(session)
        self.ytd = YTDAccumulator(session)

    async def record_and_accumulate(
        self, entry: PayrollEntry, breakdown: CalculationBreakdown
    ) -> CommitResult:
        """Commit an original calculation.

        Raises:
            DuplicateError: If (employee, period) is already committed
            CalculationError: If the breakdown was not produced for this entry
        """
        self._check_matches(entry, breakdown)

        existing = await self.audit.find(entry.employee_id, entry.period.period_id, revision=0)
        if existing is not None:
            raise DuplicateError(
                entry.employee_id, entry.period.period_id, existing.audit_entry_id
            )

        audit_row = self.audit.build_entry(entry, breakdown)
        ledger_row = self.ytd.build_entry(audit_row)
        await self._write(entry, audit_row, ledger_row)

        logger.debug(
            "Committed %s/%s paye=%s (calculation %s)",
            entry.employee_id,
            entry.period.period_id,
            breakdown.paye,
            breakdown.calculation_id,
        )
        return self._result(audit_row, ledger_row)

    async def record_correction(
        self,
        original_entry_id: UUID,
        entry: PayrollEntry,
        breakdown: CalculationBreakdown,
        reason: str,
    ) -> CommitResult:
        """Append a correcting revision for a committed calculation.

        The YTD delta is taken against the latest revision, so successive
        corrections of one period never double count.
        """
        self._check_matches(entry, breakdown)
        original = await self.audit.get(original_entry_id)
        if original is None:
            raise CalculationError(
                f"Audit entry {original_entry_id} does not exist",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
                field="original_entry_id",
            )
        if (original.employee_id, original.period_id) != (
            entry.employee_id,
            entry.period.period_id,
        ):
            raise CalculationError(
                f"Audit entry {original_entry_id} is for {original.employee_id}/"
                f"{original.period_id}, not {entry.employee_id}/{entry.period.period_id}",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
                field="original_entry_id",
            )
        if not reason:
            raise CalculationError(
                "A correction requires a reason",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
                field="reason",
            )

        latest = await self.audit.find(entry.employee_id, entry.period.period_id)
        if latest is None:
            raise CalculationError(
                f"No committed entry for {entry.employee_id}/{entry.period.period_id}",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
                field="original_entry_id",
            )

        audit_row = self.audit.build_entry(
            entry,
            breakdown,
            revision=latest.revision + 1,
            corrects_entry_id=original.audit_entry_id,
            correction_reason=reason,
        )
        ledger_row = self.ytd.build_correction(audit_row, latest)
        await self._write(entry, audit_row, ledger_row)

        logger.info(
            "Recorded correction %d for %s/%s: paye %s -> %s (%s)",
            audit_row.revision,
            entry.employee_id,
            entry.period.period_id,
            latest.paye,
            audit_row.paye,
            reason,
        )
        return self._result(audit_row, ledger_row)

    async def _write(
        self, entry: PayrollEntry, audit_row: AuditLogEntry, ledger_row: YTDLedgerEntry
    ) -> None:
        try:
            self.session.add(audit_row)
            await self.session.flush()
            self.session.add(ledger_row)
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.audit.find(
                entry.employee_id, entry.period.period_id, revision=audit_row.revision
            )
            if existing is None:
                raise
            # Another transaction committed this (employee, period) first
            raise DuplicateError(
                entry.employee_id, entry.period.period_id, existing.audit_entry_id
            ) from None
        except Exception:
            await self.session.rollback()
            raise

    @staticmethod
    def _check_matches(entry: PayrollEntry, breakdown: CalculationBreakdown) -> None:
        if (breakdown.employee_id, breakdown.period_id) != (
            entry.employee_id,
            entry.period.period_id,
        ):
            raise CalculationError(
                f"Breakdown is for {breakdown.employee_id}/{breakdown.period_id}",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
            )

    @staticmethod
    def _result(audit_row: AuditLogEntry, ledger_row: YTDLedgerEntry) -> CommitResult:
        return CommitResult(
            audit_entry_id=audit_row.audit_entry_id,
            ytd_entry_id=ledger_row.ytd_entry_id,
            calculation_id=audit_row.calculation_id,
            employee_id=audit_row.employee_id,
            period_id=audit_row.period_id,
            revision=audit_row.revision,
        )
