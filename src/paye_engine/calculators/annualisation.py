"""Period <-> annual conversion for PAYE."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from paye_engine.calculators.money import ZERO
from paye_engine.calculators.types import PayFrequency, PayrollEntry


@dataclass(frozen=True)
class AnnualisedTax:
    """Annual figures and their per-period charge (unrounded)."""

    annualised_income: Decimal  # regular income x periods per year
    annual_taxable_income: Decimal  # annualised regular + irregular
    regular_annual_tax: Decimal
    total_annual_tax: Decimal
    regular_period_tax: Decimal  # regular annual tax / periods per year
    irregular_tax: Decimal  # charged in full this period


class AnnualisationEngine:
    """Single source of truth for period <-> annual conversion.

    Regular income (salary + fringe benefits - pre-tax deductions) is
    annualised by the number of periods per year. Irregular income is added
    to the annualised regular figure once; only the tax increment it causes
    is charged, in the period it is paid, so a once-off bonus is never
    projected across the year.
    """

    def periods_per_year(self, frequency: PayFrequency) -> int:
        return PayFrequency(frequency).periods_per_year

    def regular_taxable(self, entry: PayrollEntry) -> Decimal:
        taxable = entry.gross_salary + entry.fringe_benefits - entry.pre_tax_deductions
        return max(ZERO, taxable)

    def annualise(self, amount: Decimal, frequency: PayFrequency) -> Decimal:
        return amount * self.periods_per_year(frequency)

    def deannualise(self, amount: Decimal, frequency: PayFrequency) -> Decimal:
        return amount / self.periods_per_year(frequency)

    def period_tax(
        self,
        entry: PayrollEntry,
        annual_tax: Callable[[Decimal], Decimal],
    ) -> AnnualisedTax:
        """Compute the period's PAYE components.

        Args:
            entry: The payroll entry
            annual_tax: Maps an annual income to net annual tax (after
                rebates and credits)
        """
        annualised = self.annualise(self.regular_taxable(entry), entry.frequency)
        regular_annual_tax = annual_tax(annualised)

        if entry.irregular_income > 0:
            combined = annualised + entry.irregular_income
            total_annual_tax = annual_tax(combined)
        else:
            combined = annualised
            total_annual_tax = regular_annual_tax

        return AnnualisedTax(
            annualised_income=annualised,
            annual_taxable_income=combined,
            regular_annual_tax=regular_annual_tax,
            total_annual_tax=total_annual_tax,
            regular_period_tax=self.deannualise(regular_annual_tax, entry.frequency),
            irregular_tax=max(ZERO, total_annual_tax - regular_annual_tax),
        )
