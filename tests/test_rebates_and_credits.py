"""Unit tests for rebates and medical scheme fees tax credits."""

from decimal import Decimal

import pytest

from paye_engine.calculators.medical_credits import MedicalCreditCalculator
from paye_engine.calculators.rebates import RebateCalculator
from paye_engine.errors import CalculationError
from paye_engine.tax_tables import SARS_MEDICAL_CREDITS, SARS_REBATES


class TestRebates:
    """Test age-tiered rebates."""

    @pytest.mark.parametrize(
        ("age", "tiers", "available"),
        [
            (None, ("primary",), Decimal("17235")),
            (40, ("primary",), Decimal("17235")),
            (64, ("primary",), Decimal("17235")),
            (65, ("primary", "secondary"), Decimal("26679")),
            (74, ("primary", "secondary"), Decimal("26679")),
            (75, ("primary", "secondary", "tertiary"), Decimal("29824")),
        ],
    )
    def test_tiers_are_additive_with_age(self, age, tiers, available):
        result = RebateCalculator().apply(Decimal("100000"), age, SARS_REBATES)
        assert result.tiers == tiers
        assert result.available == available
        assert result.tax_after_rebate == Decimal("100000") - available

    def test_never_below_zero(self):
        result = RebateCalculator().apply(Decimal("5000"), 80, SARS_REBATES)
        assert result.tax_after_rebate == Decimal("0")
        assert result.applied == Decimal("5000")

    def test_more_rebate_never_increases_tax(self):
        calc = RebateCalculator()
        for gross in (Decimal("0"), Decimal("20000"), Decimal("40000")):
            young = calc.apply(gross, 30, SARS_REBATES).tax_after_rebate
            older = calc.apply(gross, 76, SARS_REBATES).tax_after_rebate
            assert older <= young


class TestMedicalCredits:
    """Test medical credit units (main member counts as the first unit)."""

    @pytest.mark.parametrize(
        ("members", "monthly"),
        [
            (0, Decimal("0")),
            (1, Decimal("364")),
            (2, Decimal("728")),
            (3, Decimal("974")),
            (5, Decimal("1466")),
        ],
    )
    def test_monthly_credit(self, members, monthly):
        assert MedicalCreditCalculator().monthly_credit(members, SARS_MEDICAL_CREDITS) == monthly

    def test_annualised_and_floored(self):
        result = MedicalCreditCalculator().apply(Decimal("5000"), 2, SARS_MEDICAL_CREDITS)
        assert result.annual_credit == Decimal("8736")
        assert result.applied == Decimal("5000")
        assert result.tax_after_credit == Decimal("0")

    def test_applied_in_full_when_tax_covers_it(self):
        result = MedicalCreditCalculator().apply(Decimal("57397"), 1, SARS_MEDICAL_CREDITS)
        assert result.applied == Decimal("4368")
        assert result.tax_after_credit == Decimal("53029")

    def test_negative_members_rejected(self):
        with pytest.raises(CalculationError):
            MedicalCreditCalculator().monthly_credit(-1, SARS_MEDICAL_CREDITS)
