"""Integration tests for atomic audit + YTD commits.

These verify:
1. A committed calculation appears in the audit trail and YTD exactly once
2. A second commit for the same (employee, period) raises DuplicateError
3. Corrections append a revision and a signed YTD delta
4. Audit and ledger rows cannot be updated or deleted through the ORM
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from paye_engine.errors import CalculationError, DuplicateError, ImmutableRecordError
from paye_engine.models import AuditLogEntry, YTDLedgerEntry
from paye_engine.services.audit_trail import AuditTrailRecorder, compute_entry_hash
from paye_engine.services.commit_service import CommitService
from paye_engine.services.ytd_accumulator import YTDAccumulator

pytestmark = pytest.mark.asyncio


class TestRecordAndAccumulate:
    async def test_commit_writes_audit_and_ytd(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        breakdown = calculator.calculate(entry, profile, sars_2025)

        result = await CommitService(session).record_and_accumulate(entry, breakdown)
        await session.commit()

        audit = await AuditTrailRecorder(session).find("EMP001", "2025-03")
        assert audit is not None
        assert audit.audit_entry_id == result.audit_entry_id
        assert audit.calculation_id == breakdown.calculation_id
        assert audit.revision == 0
        assert audit.filing_period == "2025-03"
        assert audit.config_ref == "2025/2026#v1"
        assert audit.config_fingerprint == sars_2025.fingerprint
        assert audit.paye == Decimal("4783.08")
        assert audit.breakdown_snapshot["paye"] == "4783.08"
        assert audit.input_snapshot["gross_salary"] == "30000"
        assert audit.entry_hash == compute_entry_hash(audit)

        ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.paye == Decimal("4783.08")
        assert ytd.gross == Decimal("30000.00")
        assert ytd.uif_employee == Decimal("177.12")
        assert ytd.sdl == Decimal("300.00")
        assert ytd.periods_processed == 1

    async def test_duplicate_commit_rejected_with_single_ytd_contribution(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        breakdown = calculator.calculate(entry, profile, sars_2025)
        service = CommitService(session)
        first = await service.record_and_accumulate(entry, breakdown)
        await session.commit()

        with pytest.raises(DuplicateError) as exc_info:
            await service.record_and_accumulate(entry, breakdown)

        assert exc_info.value.existing_entry_id == first.audit_entry_id
        assert exc_info.value.to_dict()["code"] == "DUPLICATE_CALCULATION"
        ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.paye == Decimal("4783.08")
        assert ytd.periods_processed == 1

    async def test_racing_commit_translated_to_duplicate(
        self, session_factory, calculator, sars_2025, profile, make_entry
    ):
        """A commit that loses the unique-constraint race leaves nothing behind."""
        entry = make_entry("EMP001", 2025, 3, "30000")
        breakdown = calculator.calculate(entry, profile, sars_2025)

        async with session_factory() as winner:
            await CommitService(winner).record_and_accumulate(entry, breakdown)
            await winner.commit()

        async with session_factory() as loser:
            service = CommitService(loser)
            audit_row = service.audit.build_entry(entry, breakdown)
            ledger_row = service.ytd.build_entry(audit_row)
            with pytest.raises(DuplicateError) as exc_info:
                await service._write(entry, audit_row, ledger_row)
            assert exc_info.value.existing_entry_id is not None

        async with session_factory() as check:
            ytd = await YTDAccumulator(check).get_ytd("EMP001", "2025/2026")
            assert ytd.periods_processed == 1

    async def test_failed_ledger_write_leaves_no_audit_entry(
        self, session_factory, calculator, sars_2025, profile, make_entry
    ):
        """The audit row is flushed first; a ledger failure must roll it back."""
        entry = make_entry("EMP001", 2025, 3, "30000")
        breakdown = calculator.calculate(entry, profile, sars_2025)

        async with session_factory() as session:
            service = CommitService(session)
            audit_row = service.audit.build_entry(entry, breakdown)
            ledger_row = service.ytd.build_entry(audit_row)
            ledger_row.paye = None
            with pytest.raises(IntegrityError):
                await service._write(entry, audit_row, ledger_row)
            await session.commit()

        async with session_factory() as check:
            assert await AuditTrailRecorder(check).by_employee("EMP001") == []
            ytd = await YTDAccumulator(check).get_ytd("EMP001", "2025/2026")
            assert ytd.periods_processed == 0

    async def test_ytd_accumulates_across_periods(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        service = CommitService(session)
        for month in (3, 4, 5):
            entry = make_entry("EMP001", 2025, month, "30000")
            await service.record_and_accumulate(
                entry, calculator.calculate(entry, profile, sars_2025)
            )
        await session.commit()

        ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")

        assert ytd.periods_processed == 3
        assert ytd.paye == Decimal("14349.24")
        assert ytd.gross == Decimal("90000.00")


class TestCorrections:
    async def test_correction_appends_revision_and_delta(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        service = CommitService(session)
        original_entry = make_entry("EMP001", 2025, 3, "30000")
        original = await service.record_and_accumulate(
            original_entry, calculator.calculate(original_entry, profile, sars_2025)
        )

        corrected_entry = make_entry("EMP001", 2025, 3, "32000")
        corrected = calculator.calculate(corrected_entry, profile, sars_2025)
        result = await service.record_correction(
            original.audit_entry_id, corrected_entry, corrected, "Late salary increase"
        )
        await session.commit()

        assert result.revision == 1
        recorder = AuditTrailRecorder(session)
        history = await recorder.by_employee("EMP001")
        assert [h.revision for h in history] == [0, 1]
        assert history[1].corrects_entry_id == original.audit_entry_id
        assert history[1].correction_reason == "Late salary increase"

        effective = await recorder.effective_entries(tax_year="2025/2026")
        assert [e.audit_entry_id for e in effective] == [result.audit_entry_id]

        ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.paye == corrected.paye
        assert ytd.gross == Decimal("32000.00")
        assert ytd.periods_processed == 1

    async def test_second_correction_deltas_against_latest(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        service = CommitService(session)
        entry = make_entry("EMP001", 2025, 3, "30000")
        original = await service.record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )
        for gross in ("32000", "31000"):
            revised = make_entry("EMP001", 2025, 3, gross)
            await service.record_correction(
                original.audit_entry_id,
                revised,
                calculator.calculate(revised, profile, sars_2025),
                "Payroll adjustment",
            )
        await session.commit()

        final = calculator.calculate(
            make_entry("EMP001", 2025, 3, "31000"), profile, sars_2025
        )
        ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.paye == final.paye
        assert ytd.gross == Decimal("31000.00")
        latest = await AuditTrailRecorder(session).find("EMP001", "2025-03")
        assert latest.revision == 2

    async def test_correction_without_latest_revision_rejected(
        self, session, calculator, sars_2025, profile, make_entry, monkeypatch
    ):
        service = CommitService(session)
        entry = make_entry("EMP001", 2025, 3, "30000")
        original = await service.record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )

        async def find_nothing(*args, **kwargs):
            return None

        monkeypatch.setattr(service.audit, "find", find_nothing)
        revised = make_entry("EMP001", 2025, 3, "32000")
        with pytest.raises(CalculationError, match="No committed entry") as exc_info:
            await service.record_correction(
                original.audit_entry_id,
                revised,
                calculator.calculate(revised, profile, sars_2025),
                "Payroll adjustment",
            )

        assert exc_info.value.to_dict()["field"] == "original_entry_id"


class TestImmutability:
    async def test_audit_entry_cannot_be_updated(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        await CommitService(session).record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )
        await session.commit()

        audit = await AuditTrailRecorder(session).find("EMP001", "2025-03")
        audit.paye = Decimal("1.00")
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    async def test_audit_entry_cannot_be_deleted(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        result = await CommitService(session).record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )
        await session.commit()

        audit = await session.get(AuditLogEntry, result.audit_entry_id)
        await session.delete(audit)
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    async def test_ytd_ledger_cannot_be_updated(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        result = await CommitService(session).record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )
        await session.commit()

        ledger = await session.get(YTDLedgerEntry, result.ytd_entry_id)
        ledger.paye = Decimal("0")
        with pytest.raises(ImmutableRecordError):
            await session.flush()
