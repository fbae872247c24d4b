"""Integration tests for EMP201, EMP501 and IRP5 generation.

Reports read committed data only, so every test commits through
CommitService first.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from paye_engine.calculators.types import EmployeeProfile
from paye_engine.errors import ReportDataError
from paye_engine.models import AuditLogEntry
from paye_engine.services.audit_trail import AuditTrailRecorder
from paye_engine.services.commit_service import CommitService
from paye_engine.services.reports import ReportGenerator

pytestmark = pytest.mark.asyncio


@pytest.fixture
def casual():
    """No date of birth or tax number; earns below the tax threshold."""
    return EmployeeProfile(employee_id="EMP002")


@pytest.fixture
def commit_march(session, calculator, sars_2025, profile, casual, make_entry):
    async def _commit():
        service = CommitService(session)
        for entry, who in (
            (make_entry("EMP001", 2025, 3, "30000"), profile),
            (make_entry("EMP002", 2025, 3, "7000"), casual),
        ):
            await service.record_and_accumulate(entry, calculator.calculate(entry, who, sars_2025))
        await session.commit()

    return _commit


class TestEmp201:
    async def test_monthly_totals(self, session, commit_march):
        await commit_march()

        report = await ReportGenerator(session).generate_emp201("2025-03")

        assert report.tax_year == "2025/2026"
        assert report.employee_count == 2
        assert report.gross_remuneration == Decimal("37000.00")
        assert report.paye == Decimal("4783.08")
        assert report.uif_employee == Decimal("247.12")
        assert report.uif_employer == Decimal("247.12")
        assert report.uif_total == Decimal("494.24")
        assert report.sdl == Decimal("370.00")
        assert report.total_due == Decimal("5647.32")
        assert report.period_end == date(2025, 3, 31)
        assert report.due_date == date(2025, 4, 7)
        assert report.is_nil is False

    async def test_month_without_data_is_nil_return(self, session, commit_march):
        await commit_march()

        report = await ReportGenerator(session).generate_emp201("2025-04")

        assert report.is_nil
        assert report.total_due == Decimal("0.00")

    async def test_december_due_in_january(self, session):
        report = await ReportGenerator(session).generate_emp201("2025-12")

        assert report.due_date == date(2026, 1, 7)
        assert report.tax_year == "2025/2026"

    async def test_correction_replaces_declared_figures(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        service = CommitService(session)
        entry = make_entry("EMP001", 2025, 3, "30000")
        original = await service.record_and_accumulate(
            entry, calculator.calculate(entry, profile, sars_2025)
        )
        revised = make_entry("EMP001", 2025, 3, "32000")
        corrected = calculator.calculate(revised, profile, sars_2025)
        await service.record_correction(
            original.audit_entry_id, revised, corrected, "Late salary increase"
        )
        await session.commit()

        report = await ReportGenerator(session).generate_emp201("2025-03")

        assert report.employee_count == 1
        assert report.paye == corrected.paye
        assert report.gross_remuneration == Decimal("32000.00")

    async def test_csv_export(self, session, commit_march):
        await commit_march()

        text = (await ReportGenerator(session).generate_emp201("2025-03")).to_csv()

        lines = text.splitlines()
        assert lines[0] == "EMP201 - Monthly Employer Declaration"
        assert "Total PAYE,4783.08" in lines
        assert "Total Amount Due,5647.32" in lines
        assert "Due Date,2025-04-07" in lines

    @pytest.mark.parametrize("filing_period", ["2025-13", "March", "2025/03"])
    async def test_invalid_filing_period(self, session, filing_period):
        with pytest.raises(ReportDataError):
            await ReportGenerator(session).generate_emp201(filing_period)


class TestEmp501:
    async def test_balanced_reconciliation(self, session, commit_march, profile, casual):
        await commit_march()

        report = await ReportGenerator(session).generate_emp501(
            "2025/2026", {"EMP001": profile, "EMP002": casual}
        )

        assert report.balanced
        assert report.findings == ()
        assert [m.filing_period for m in report.monthly] == ["2025-03"]
        assert report.declared_totals["paye"] == Decimal("4783.08")
        assert report.ytd_totals["paye"] == Decimal("4783.08")
        assert set(report.variance.values()) == {Decimal("0.00")}
        assert [line.employee_id for line in report.employees] == ["EMP001", "EMP002"]
        assert report.employees[0].full_name == "Thandi Nkosi"
        assert report.employees[1].tax_number is None
        assert (report.period_start, report.period_end) == (date(2025, 3, 1), date(2026, 2, 28))

    async def test_rerun_is_identical(self, session, commit_march):
        await commit_march()
        generator = ReportGenerator(session)

        first = await generator.generate_emp501("2025/2026")
        second = await generator.generate_emp501("2025/2026")

        assert first.to_dict() == second.to_dict()
        assert first.to_csv() == second.to_csv()

    async def test_empty_year_is_balanced(self, session):
        report = await ReportGenerator(session).generate_emp501("2024/2025")

        assert report.balanced
        assert report.monthly == ()
        assert report.employees == ()

    async def test_tampered_audit_entry_surfaces_as_variance(
        self, session_factory, calculator, sars_2025, profile, make_entry
    ):
        entry = make_entry("EMP001", 2025, 3, "30000")
        async with session_factory() as session:
            result = await CommitService(session).record_and_accumulate(
                entry, calculator.calculate(entry, profile, sars_2025)
            )
            await session.commit()

        # Bypass the ORM guards the way a direct SQL edit would
        async with session_factory() as session:
            conn = await session.connection()
            await conn.execute(
                update(AuditLogEntry.__table__)
                .where(AuditLogEntry.__table__.c.audit_entry_id == result.audit_entry_id)
                .values(paye=Decimal("1.00"))
            )
            await session.commit()

        async with session_factory() as session:
            report = await ReportGenerator(session).generate_emp501("2025/2026")
            tampered = await AuditTrailRecorder(session).verify_integrity()

        assert not report.balanced
        assert report.variance["paye"] == Decimal("-4782.08")
        scopes = {(f.measure, f.employee_id) for f in report.findings}
        assert scopes == {("paye", None), ("paye", "EMP001")}
        assert "employer totals" in report.findings[0].describe()
        assert tampered == [result.audit_entry_id]

    async def test_csv_export(self, session, commit_march, profile):
        await commit_march()

        text = (await ReportGenerator(session).generate_emp501(
            "2025/2026", {"EMP001": profile}
        )).to_csv()

        lines = text.splitlines()
        assert lines[0] == "EMP501 - Annual Employer Reconciliation"
        assert lines[4].startswith("EMP001,Thandi Nkosi,0123456789,30000.00")
        assert lines[-1] == "Balanced,yes"

    async def test_invalid_tax_year(self, session):
        with pytest.raises(ReportDataError):
            await ReportGenerator(session).generate_emp501("2025")


class TestIrp5:
    async def test_certificate(
        self, session, calculator, sars_2025, profile, make_entry
    ):
        service = CommitService(session)
        for month, bonus in ((3, "0"), (4, "10000")):
            entry = make_entry(
                "EMP001", 2025, month, "30000", irregular_income=Decimal(bonus)
            )
            await service.record_and_accumulate(
                entry, calculator.calculate(entry, profile, sars_2025)
            )
        await session.commit()

        certificate = await ReportGenerator(session).generate_irp5(
            "EMP001", "2025/2026", profile
        )

        assert certificate.certificate_number == "20252026-EMP001"
        assert certificate.full_name == "Thandi Nkosi"
        assert certificate.date_of_birth == date(1985, 6, 15)
        assert certificate.gross_remuneration == Decimal("70000.00")
        assert certificate.regular_income == Decimal("60000.00")
        assert certificate.irregular_income == Decimal("10000.00")
        assert certificate.periods_processed == 2
        assert certificate.to_dict()["period_end"] == "2026-02-28"

    async def test_without_profile(self, session, commit_march):
        await commit_march()

        certificate = await ReportGenerator(session).generate_irp5("EMP002", "2025/2026")

        assert certificate.full_name is None
        assert certificate.paye == Decimal("0.00")
        assert certificate.uif_employee == Decimal("70.00")

    async def test_no_history(self, session):
        with pytest.raises(ReportDataError, match="No payroll history"):
            await ReportGenerator(session).generate_irp5("EMP404", "2025/2026")
