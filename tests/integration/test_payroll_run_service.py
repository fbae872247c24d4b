"""Integration tests for batch processing.

These verify:
1. A valid batch commits every entry once
2. Re-running a committed batch reports duplicates and changes nothing
3. A validation error rejects the whole batch before anything commits
4. A failed entry skips that employee's later periods but not other employees
5. Setting the abort event skips everything not yet started
"""

import asyncio
from decimal import Decimal

import pytest

from paye_engine.calculators.tax_calculator import TaxCalculator
from paye_engine.calculators.types import EmployeeProfile
from paye_engine.errors import CalculationError, ValidationError
from paye_engine.services.audit_trail import AuditTrailRecorder
from paye_engine.services.payroll_run_service import EntryStatus, PayrollRunService
from paye_engine.services.ytd_accumulator import YTDAccumulator

pytestmark = pytest.mark.asyncio


class FailingCalculator(TaxCalculator):
    """Fails one (employee, period) so the batch has something to skip."""

    def __init__(self, employee_id, period_id):
        super().__init__(engine_version="test")
        self.fail_on = (employee_id, period_id)

    def calculate(self, entry, profile, config):
        if (entry.employee_id, entry.period.period_id) == self.fail_on:
            raise CalculationError(
                "Simulated failure",
                employee_id=entry.employee_id,
                period_id=entry.period.period_id,
            )
        return super().calculate(entry, profile, config)


@pytest.fixture
def employees(profile):
    return {
        "EMP001": profile,
        "EMP002": EmployeeProfile(
            employee_id="EMP002", tax_number="9876543210", full_name="Sipho Dlamini"
        ),
    }


@pytest.fixture
def batch(make_entry):
    return [
        make_entry("EMP002", 2025, 4, "12000"),
        make_entry("EMP001", 2025, 4, "30000"),
        make_entry("EMP001", 2025, 3, "30000"),
        make_entry("EMP002", 2025, 3, "12000"),
    ]


class TestProcessBatch:
    async def test_commits_every_entry(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        service = PayrollRunService(session_factory, calculator)

        result = await service.process_batch(batch, employees, sars_2025, concurrency=1)

        assert result.config_ref == "2025/2026#v1"
        assert result.committed == 4
        assert result.aborted is False
        assert [(o.employee_id, o.period_id) for o in result.outcomes] == [
            ("EMP001", "2025-03"),
            ("EMP001", "2025-04"),
            ("EMP002", "2025-03"),
            ("EMP002", "2025-04"),
        ]
        assert result.outcomes[0].paye == Decimal("4783.08")
        async with session_factory() as session:
            ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.paye == Decimal("9566.16")
        assert ytd.periods_processed == 2

    async def test_concurrent_run_matches_sequential(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        result = await PayrollRunService(session_factory, calculator).process_batch(
            batch, employees, sars_2025, concurrency=4
        )

        assert result.committed == 4
        async with session_factory() as session:
            entries = await AuditTrailRecorder(session).by_tax_year("2025/2026")
        assert len(entries) == 4

    async def test_rerun_reports_duplicates(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        service = PayrollRunService(session_factory, calculator)
        first = await service.process_batch(batch, employees, sars_2025, concurrency=2)

        second = await service.process_batch(batch, employees, sars_2025, concurrency=2)

        assert second.count(EntryStatus.DUPLICATE) == 4
        assert second.committed == 0
        assert [o.audit_entry_id for o in second.outcomes] == [
            o.audit_entry_id for o in first.outcomes
        ]
        async with session_factory() as session:
            ytd = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")
        assert ytd.periods_processed == 2

    async def test_rerun_with_new_period_commits_only_the_new_one(
        self, session_factory, calculator, sars_2025, employees, batch, make_entry
    ):
        service = PayrollRunService(session_factory, calculator)
        await service.process_batch(batch, employees, sars_2025)

        extended = batch + [make_entry("EMP001", 2025, 5, "30000")]
        result = await service.process_batch(extended, employees, sars_2025)

        assert result.committed == 1
        assert result.count(EntryStatus.DUPLICATE) == 4

    async def test_validation_error_rejects_batch(
        self, session_factory, calculator, sars_2025, employees, batch, make_entry
    ):
        bad = batch + [make_entry("EMP999", 2025, 3, "30000")]

        with pytest.raises(ValidationError) as exc_info:
            await PayrollRunService(session_factory, calculator).process_batch(
                bad, employees, sars_2025
            )

        assert exc_info.value.issues[0].employee_id == "EMP999"
        async with session_factory() as session:
            assert await AuditTrailRecorder(session).by_tax_year("2025/2026") == []

    async def test_failure_skips_later_periods_of_that_employee(
        self, session_factory, sars_2025, employees, batch
    ):
        service = PayrollRunService(session_factory, FailingCalculator("EMP001", "2025-03"))

        result = await service.process_batch(batch, employees, sars_2025, concurrency=2)

        statuses = {(o.employee_id, o.period_id): o.status for o in result.outcomes}
        assert statuses == {
            ("EMP001", "2025-03"): EntryStatus.FAILED,
            ("EMP001", "2025-04"): EntryStatus.SKIPPED,
            ("EMP002", "2025-03"): EntryStatus.COMMITTED,
            ("EMP002", "2025-04"): EntryStatus.COMMITTED,
        }
        failed = result.outcomes[0]
        assert failed.error_code == "CALCULATION_ERROR"
        assert result.to_dict()["counts"] == {
            "committed": 2,
            "duplicate": 0,
            "failed": 1,
            "skipped": 1,
        }

    async def test_abort_skips_remaining_entries(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        abort = asyncio.Event()
        abort.set()

        result = await PayrollRunService(session_factory, calculator).process_batch(
            batch, employees, sars_2025, abort=abort
        )

        assert result.aborted is True
        assert result.count(EntryStatus.SKIPPED) == 4
        assert all(o.error == "Batch aborted" for o in result.outcomes)

    async def test_warnings_reported_with_result(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        result = await PayrollRunService(session_factory, calculator).process_batch(
            batch, employees, sars_2025
        )

        warned = {(w["employee_id"], w["field"]) for w in result.to_dict()["warnings"]}
        assert warned == {("EMP002", "date_of_birth")}


class TestValidateOnly:
    async def test_validate_sees_committed_history(
        self, session_factory, calculator, sars_2025, employees, batch
    ):
        service = PayrollRunService(session_factory, calculator)
        await service.process_batch(batch, employees, sars_2025)

        with pytest.raises(ValidationError) as exc_info:
            await service.validate(batch, employees, sars_2025)

        assert {i.field for i in exc_info.value.issues} == {"period"}
