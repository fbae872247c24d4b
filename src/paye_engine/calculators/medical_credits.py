"""Medical scheme fees tax credits."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from paye_engine.calculators.money import ZERO
from paye_engine.calculators.types import MedicalCreditTable
from paye_engine.errors import CalculationError

MONTHS_IN_YEAR = 12


@dataclass(frozen=True)
class MedicalCreditResult:
    """Outcome of applying medical credits to tax after rebates."""

    monthly_credit: Decimal
    annual_credit: Decimal
    applied: Decimal
    tax_after_credit: Decimal


class MedicalCreditCalculator:
    """Converts scheme membership into a flat credit against tax.

    members counts the main member as the first unit:
        0 -> no credit
        1 -> main member
        2 -> main member + first dependent
        n -> main member + first dependent + (n - 2) additional dependents
    Published credits are monthly; they are annualised before being set off
    against annual tax.
    """

    def monthly_credit(self, members: int, table: MedicalCreditTable) -> Decimal:
        if members < 0:
            raise CalculationError(
                f"Medical scheme members cannot be negative: {members}",
                field="medical_scheme_members",
            )
        if members == 0:
            return ZERO
        credit = table.main_member
        if members >= 2:
            credit += table.first_dependent
        credit += table.additional_dependent * max(0, members - 2)
        return credit

    def apply(
        self, tax_after_rebate: Decimal, members: int, table: MedicalCreditTable
    ) -> MedicalCreditResult:
        monthly = self.monthly_credit(members, table)
        annual = monthly * MONTHS_IN_YEAR
        applied = min(annual, max(tax_after_rebate, ZERO))
        return MedicalCreditResult(
            monthly_credit=monthly,
            annual_credit=annual,
            applied=applied,
            tax_after_credit=max(ZERO, tax_after_rebate - annual),
        )
