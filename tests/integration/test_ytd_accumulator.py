"""Integration tests for YTD totals read from the ledger."""

from decimal import Decimal

import pytest

from paye_engine.calculators.types import EmployeeProfile
from paye_engine.services.commit_service import CommitService
from paye_engine.services.ytd_accumulator import YTDAccumulator

pytestmark = pytest.mark.asyncio


async def _commit(session, calculator, config, profile, entries):
    service = CommitService(session)
    for entry in entries:
        await service.record_and_accumulate(entry, calculator.calculate(entry, profile, config))
    await session.commit()


class TestYTDAccumulator:
    async def test_unknown_employee_gets_zero_record(self, session):
        record = await YTDAccumulator(session).get_ytd("NOBODY", "2025/2026")

        assert record.periods_processed == 0
        assert all(value == Decimal("0") for value in record.amounts().values())

    async def test_tax_years_kept_apart(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        await _commit(
            session, calculator, sars_2025, profile, [make_entry("EMP001", 2025, 3, "30000")]
        )

        accumulator = YTDAccumulator(session)
        assert (await accumulator.get_ytd("EMP001", "2025/2026")).periods_processed == 1
        assert (await accumulator.get_ytd("EMP001", "2024/2025")).periods_processed == 0

    async def test_irregular_income_and_deductions_accumulate(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        entries = [
            make_entry("EMP001", 2025, 3, "30000", pre_tax_deductions=Decimal("2000")),
            make_entry(
                "EMP001",
                2025,
                4,
                "30000",
                irregular_income=Decimal("10000"),
                pre_tax_deductions=Decimal("2000"),
            ),
        ]
        await _commit(session, calculator, sars_2025, profile, entries)

        record = await YTDAccumulator(session).get_ytd("EMP001", "2025/2026")

        assert record.periods_processed == 2
        assert record.gross == Decimal("70000.00")
        assert record.regular_income == Decimal("60000.00")
        assert record.irregular_income == Decimal("10000.00")
        assert record.retirement == Decimal("4000.00")
        assert record.to_dict()["gross"] == "70000.00"

    async def test_list_for_tax_year_sorted_by_employee(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        await _commit(
            session,
            calculator,
            sars_2025,
            profile,
            [make_entry("EMP001", 2025, 3, "30000")],
        )
        other = EmployeeProfile(employee_id="EMP000")
        await _commit(
            session, calculator, sars_2025, other, [make_entry("EMP000", 2025, 3, "7000")]
        )

        records = await YTDAccumulator(session).list_for_tax_year("2025/2026")

        assert [r.employee_id for r in records] == ["EMP000", "EMP001"]
        assert records[0].paye == Decimal("0.00")
        assert records[0].uif_employee == Decimal("70.00")
