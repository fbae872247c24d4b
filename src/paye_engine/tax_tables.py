"""Official SARS tables for the tax years the engine ships with.

Published through TaxYearConfigRepository by scripts/seed_tax_tables.py.
Brackets, rebates and medical credits were unchanged between 2024/2025 and
2025/2026.
"""

from __future__ import annotations

from decimal import Decimal

from paye_engine.calculators.tax_year import tax_year_bounds
from paye_engine.calculators.types import MedicalCreditTable, RebateTable, TaxYearConfig

SARS_LOWER_BOUNDS = (0, 237100, 370500, 512800, 673000, 857900, 1817000)
SARS_RATES = ("0.18", "0.26", "0.31", "0.36", "0.39", "0.41", "0.45")

SARS_REBATES = RebateTable(
    primary=Decimal("17235"),
    secondary=Decimal("9444"),
    tertiary=Decimal("3145"),
    secondary_age=65,
    tertiary_age=75,
)

SARS_MEDICAL_CREDITS = MedicalCreditTable(
    main_member=Decimal("364"),
    first_dependent=Decimal("364"),
    additional_dependent=Decimal("246"),
)

UIF_RATE = Decimal("0.01")
UIF_MONTHLY_CEILING = Decimal("17712")  # R177.12 maximum monthly contribution
SDL_RATE = Decimal("0.01")

SUPPORTED_TAX_YEARS = ("2024/2025", "2025/2026")


def sars_config(tax_year: str, version: int = 1) -> TaxYearConfig:
    """Build the SARS tables for a supported tax year."""
    if tax_year not in SUPPORTED_TAX_YEARS:
        raise ValueError(
            f"No SARS tables bundled for {tax_year}; "
            f"supported: {', '.join(SUPPORTED_TAX_YEARS)}"
        )
    start, end = tax_year_bounds(tax_year)
    return TaxYearConfig(
        tax_year=tax_year,
        version=version,
        effective_start=start,
        effective_end=end,
        brackets=TaxYearConfig.build_brackets(SARS_LOWER_BOUNDS, SARS_RATES),
        rebates=SARS_REBATES,
        uif_rate=UIF_RATE,
        uif_monthly_ceiling=UIF_MONTHLY_CEILING,
        sdl_rate=SDL_RATE,
        medical_credits=SARS_MEDICAL_CREDITS,
    )
