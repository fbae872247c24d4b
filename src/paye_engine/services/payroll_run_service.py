"""Batch orchestration: validate, calculate and commit a payroll batch."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paye_engine.calculators.tax_calculator import TaxCalculator
from paye_engine.calculators.types import EmployeeProfile, PayrollEntry, TaxYearConfig
from paye_engine.config import get_settings
from paye_engine.errors import DuplicateError, PayeEngineError
from paye_engine.models import AuditLogEntry
from paye_engine.services.audit_trail import AuditTrailRecorder
from paye_engine.services.commit_service import CommitService
from paye_engine.services.validation import PayrollValidator, ValidationReport

logger = logging.getLogger(__name__)


class EntryStatus(str, Enum):
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    SKIPPED = "skipped"  # not attempted (earlier period failed, or batch aborted)


@dataclass(frozen=True)
class EntryOutcome:
    employee_id: str
    period_id: str
    status: EntryStatus
    calculation_id: UUID | None = None
    audit_entry_id: UUID | None = None
    paye: Decimal | None = None
    net_pay: Decimal | None = None
    error_code: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "period_id": self.period_id,
            "status": self.status.value,
            "calculation_id": str(self.calculation_id) if self.calculation_id else None,
            "audit_entry_id": str(self.audit_entry_id) if self.audit_entry_id else None,
            "paye": str(self.paye) if self.paye is not None else None,
            "net_pay": str(self.net_pay) if self.net_pay is not None else None,
            "error_code": self.error_code,
            "error": self.error,
        }


@dataclass
class BatchResult:
    config_ref: str
    validation: ValidationReport
    outcomes: list[EntryOutcome] = field(default_factory=list)
    aborted: bool = False

    def count(self, status: EntryStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def committed(self) -> int:
        return self.count(EntryStatus.COMMITTED)

    @property
    def failed(self) -> int:
        return self.count(EntryStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_ref": self.config_ref,
            "aborted": self.aborted,
            "counts": {status.value: self.count(status) for status in EntryStatus},
            "warnings": [w.to_dict() for w in self.validation.warnings],
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class PayrollRunService:
    """Runs a payroll batch against one config version.

    Flow:
    1. Entries already committed are reported as duplicates
    2. The rest are validated as a whole; any error rejects the batch
    3. Each employee's entries run in period order; distinct employees run
       concurrently, bounded by a semaphore
    4. Every entry commits in its own transaction, so a failure only stops
       that employee's later periods
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        calculator: TaxCalculator | None = None,
    ):
        self.session_factory = session_factory
        self.calculator = calculator or TaxCalculator()
        self.validator = PayrollValidator()

    async def validate(
        self,
        entries: Sequence[PayrollEntry],
        employees: Mapping[str, EmployeeProfile],
        config: TaxYearConfig,
    ) -> ValidationReport:
        """Validate against committed history without processing anything."""
        async with self.session_factory() as session:
            committed_through = await AuditTrailRecorder(session).committed_through(
                {e.employee_id for e in entries}
            )
        return self.validator.validate_batch(entries, employees, config, committed_through)

    async def process_batch(
        self,
        entries: Sequence[PayrollEntry],
        employees: Mapping[str, EmployeeProfile],
        config: TaxYearConfig,
        concurrency: int | None = None,
        abort: asyncio.Event | None = None,
    ) -> BatchResult:
        """Validate, calculate and commit a batch.

        Raises:
            ValidationError: If any pending entry fails validation
        """
        concurrency = concurrency or get_settings().batch_concurrency
        abort = abort or asyncio.Event()

        async with self.session_factory() as session:
            committed = await self._committed_keys(session, entries)
            pending = [
                e for e in entries if (e.employee_id, e.period.period_id) not in committed
            ]
            committed_through = await AuditTrailRecorder(session).committed_through(
                {e.employee_id for e in pending}
            )

        report = self.validator.validate_batch(pending, employees, config, committed_through)
        result = BatchResult(config_ref=config.config_ref, validation=report)
        for entry in entries:
            key = (entry.employee_id, entry.period.period_id)
            if key in committed:
                result.outcomes.append(
                    EntryOutcome(
                        employee_id=entry.employee_id,
                        period_id=entry.period.period_id,
                        status=EntryStatus.DUPLICATE,
                        audit_entry_id=committed[key],
                        error_code=DuplicateError.code,
                    )
                )

        by_employee: dict[str, list[PayrollEntry]] = defaultdict(list)
        for entry in pending:
            by_employee[entry.employee_id].append(entry)

        semaphore = asyncio.Semaphore(concurrency)
        tasks = [
            self._run_employee(
                sorted(employee_entries, key=lambda e: e.period.start),
                employees[employee_id],
                config,
                semaphore,
                abort,
            )
            for employee_id, employee_entries in sorted(by_employee.items())
        ]
        for outcomes in await asyncio.gather(*tasks):
            result.outcomes.extend(outcomes)

        result.outcomes.sort(key=lambda o: (o.employee_id, o.period_id))
        result.aborted = abort.is_set()
        logger.info(
            "Batch on %s: %d committed, %d duplicate, %d failed, %d skipped%s",
            config.config_ref,
            result.committed,
            result.count(EntryStatus.DUPLICATE),
            result.failed,
            result.count(EntryStatus.SKIPPED),
            " (aborted)" if result.aborted else "",
        )
        return result

    async def _run_employee(
        self,
        entries: list[PayrollEntry],
        profile: EmployeeProfile,
        config: TaxYearConfig,
        semaphore: asyncio.Semaphore,
        abort: asyncio.Event,
    ) -> list[EntryOutcome]:
        outcomes: list[EntryOutcome] = []
        for index, entry in enumerate(entries):
            async with semaphore:
                if abort.is_set():
                    outcome = None
                else:
                    outcome = await self._process_entry(entry, profile, config)

            if outcome is None:
                outcomes.extend(_skipped(entries[index:], "Batch aborted"))
                break
            outcomes.append(outcome)
            if outcome.status == EntryStatus.FAILED:
                reason = f"Earlier period {entry.period.period_id} failed"
                outcomes.extend(_skipped(entries[index + 1 :], reason))
                break
        return outcomes

    async def _process_entry(
        self,
        entry: PayrollEntry,
        profile: EmployeeProfile,
        config: TaxYearConfig,
    ) -> EntryOutcome:
        employee_id, period_id = entry.employee_id, entry.period.period_id
        try:
            breakdown = self.calculator.calculate(entry, profile, config)
            async with self.session_factory() as session:
                commit = await CommitService(session).record_and_accumulate(entry, breakdown)
                await session.commit()
        except DuplicateError as e:
            return EntryOutcome(
                employee_id=employee_id,
                period_id=period_id,
                status=EntryStatus.DUPLICATE,
                audit_entry_id=e.existing_entry_id,
                error_code=e.code,
                error=str(e),
            )
        except PayeEngineError as e:
            logger.warning("Payroll entry %s/%s failed: %s", employee_id, period_id, e)
            return _failed(entry, e.code, str(e))
        except Exception as e:
            logger.exception("Unexpected error processing %s/%s", employee_id, period_id)
            return _failed(entry, "INTERNAL_ERROR", str(e))

        return EntryOutcome(
            employee_id=employee_id,
            period_id=period_id,
            status=EntryStatus.COMMITTED,
            calculation_id=breakdown.calculation_id,
            audit_entry_id=commit.audit_entry_id,
            paye=breakdown.paye,
            net_pay=breakdown.net_pay,
        )

    @staticmethod
    async def _committed_keys(
        session: AsyncSession, entries: Sequence[PayrollEntry]
    ) -> dict[tuple[str, str], UUID]:
        keys = {(e.employee_id, e.period.period_id) for e in entries}
        if not keys:
            return {}
        stmt = select(
            AuditLogEntry.employee_id, AuditLogEntry.period_id, AuditLogEntry.audit_entry_id
        ).where(
            AuditLogEntry.revision == 0,
            AuditLogEntry.employee_id.in_(sorted({employee_id for employee_id, _ in keys})),
        )
        rows = (await session.execute(stmt)).all()
        return {
            (employee_id, period_id): entry_id
            for employee_id, period_id, entry_id in rows
            if (employee_id, period_id) in keys
        }


def _failed(entry: PayrollEntry, code: str, message: str) -> EntryOutcome:
    return EntryOutcome(
        employee_id=entry.employee_id,
        period_id=entry.period.period_id,
        status=EntryStatus.FAILED,
        error_code=code,
        error=message,
    )


def _skipped(entries: Sequence[PayrollEntry], reason: str) -> list[EntryOutcome]:
    return [
        EntryOutcome(
            employee_id=e.employee_id,
            period_id=e.period.period_id,
            status=EntryStatus.SKIPPED,
            error=reason,
        )
        for e in entries
    ]
