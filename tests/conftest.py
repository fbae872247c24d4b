"""Pytest fixtures for PAYE engine tests."""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal
from typing import Any, Callable

import pytest

from paye_engine.calculators.tax_calculator import TaxCalculator
from paye_engine.calculators.types import (
    EmployeeProfile,
    PayPeriod,
    PayrollEntry,
    RebateTable,
    TaxYearConfig,
)
from paye_engine.tax_tables import sars_config


def month_period(year: int, month: int) -> PayPeriod:
    last_day = calendar.monthrange(year, month)[1]
    return PayPeriod(f"{year}-{month:02d}", date(year, month, 1), date(year, month, last_day))


@pytest.fixture
def worked_config() -> TaxYearConfig:
    """Two brackets (10% to 50,000 then 20%), no rebates, credits, UIF or SDL."""
    return TaxYearConfig(
        tax_year="2025/2026",
        version=1,
        effective_start=date(2025, 3, 1),
        effective_end=date(2026, 2, 28),
        brackets=TaxYearConfig.build_brackets([0, 50000], ["0.10", "0.20"]),
        rebates=RebateTable(primary=Decimal("0")),
    )


@pytest.fixture
def sars_2025() -> TaxYearConfig:
    return sars_config("2025/2026")


@pytest.fixture
def calculator() -> TaxCalculator:
    return TaxCalculator(engine_version="test")


@pytest.fixture
def profile() -> EmployeeProfile:
    """A 40-year-old employee with no medical scheme."""
    return EmployeeProfile(
        employee_id="EMP001",
        date_of_birth=date(1985, 6, 15),
        tax_number="0123456789",
        full_name="Thandi Nkosi",
    )


@pytest.fixture
def make_period() -> Callable[[int, int], PayPeriod]:
    return month_period


@pytest.fixture
def make_entry() -> Callable[..., PayrollEntry]:
    """Build a monthly entry: make_entry("EMP001", 2025, 3, "30000", irregular_income=...)."""

    def _make(
        employee_id: str, year: int, month: int, gross: Any, **kwargs: Any
    ) -> PayrollEntry:
        return PayrollEntry(
            employee_id=employee_id,
            period=month_period(year, month),
            gross_salary=Decimal(str(gross)),
            **kwargs,
        )

    return _make
