"""Progressive bracket tax on annual income."""

from __future__ import annotations

from decimal import Decimal

from paye_engine.calculators.money import round_money
from paye_engine.calculators.types import TaxBracket, TaxYearConfig
from paye_engine.errors import CalculationError


class TaxBracketEngine:
    """Applies a tax year's progressive brackets to an annual figure.

    tax = cumulative_tax(b) + rate(b) * (income - lower_bound(b))

    An income exactly on a boundary falls in the upper bracket; because
    cumulative tax continues across joints the result is the same either way.
    Only annual figures are accepted here; the annualisation engine does the
    period conversion.
    """

    def find_bracket(self, annual_income: Decimal, config: TaxYearConfig) -> TaxBracket:
        """Return the bracket whose range contains annual_income."""
        if annual_income < 0:
            raise CalculationError(
                f"Annual income cannot be negative: {annual_income}",
                field="annual_income",
            )
        for bracket in config.brackets:
            if bracket.contains(annual_income):
                return bracket
        # Unreachable for a validated config (first bracket starts at 0, top is open)
        raise CalculationError(
            f"No bracket in {config.config_ref} covers income {annual_income}",
            field="annual_income",
        )

    def annual_tax(self, annual_income: Decimal, config: TaxYearConfig) -> Decimal:
        """Gross annual tax before rebates and credits, unrounded."""
        bracket = self.find_bracket(annual_income, config)
        return bracket.cumulative_tax + bracket.rate * (annual_income - bracket.lower_bound)

    def gross_tax(self, annual_income: Decimal, config: TaxYearConfig) -> Decimal:
        """Gross annual tax before rebates and credits, rounded to cents for reporting."""
        return round_money(self.annual_tax(annual_income, config))
