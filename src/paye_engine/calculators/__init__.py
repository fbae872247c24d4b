"""PAYE calculation engine."""

from paye_engine.calculators.annualisation import AnnualisationEngine
from paye_engine.calculators.bracket_engine import TaxBracketEngine
from paye_engine.calculators.medical_credits import MedicalCreditCalculator
from paye_engine.calculators.rebates import RebateCalculator
from paye_engine.calculators.tax_calculator import TaxCalculator
from paye_engine.calculators.tax_year import tax_year_bounds, tax_year_label
from paye_engine.calculators.types import (
    CalculationBreakdown,
    EmployeeProfile,
    MedicalCreditTable,
    PayFrequency,
    PayPeriod,
    PayrollEntry,
    RebateTable,
    TaxBracket,
    TaxYearConfig,
)

__all__ = [
    "AnnualisationEngine",
    "CalculationBreakdown",
    "EmployeeProfile",
    "MedicalCreditCalculator",
    "MedicalCreditTable",
    "PayFrequency",
    "PayPeriod",
    "PayrollEntry",
    "RebateCalculator",
    "RebateTable",
    "TaxBracket",
    "TaxBracketEngine",
    "TaxCalculator",
    "TaxYearConfig",
    "tax_year_bounds",
    "tax_year_label",
]
