"""PAYE, UIF and SDL calculation for one employee-period."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from uuid import UUID

from paye_engine.calculators.annualisation import AnnualisationEngine
from paye_engine.calculators.bracket_engine import TaxBracketEngine
from paye_engine.calculators.medical_credits import MONTHS_IN_YEAR, MedicalCreditCalculator
from paye_engine.calculators.money import ZERO, canonical_decimal, round_money
from paye_engine.calculators.rebates import RebateCalculator
from paye_engine.calculators.types import (
    CalculationBreakdown,
    EmployeeProfile,
    PayrollEntry,
    TaxYearConfig,
)
from paye_engine.config import get_settings
from paye_engine.errors import CalculationError, ConfigurationError


class TaxCalculator:
    """Calculates statutory deductions for one payroll entry.

    Pipeline (stable order):
    1) Resolve employee age at the tax year's reference date
    2) Annualise regular taxable income (salary + fringe - pre-tax deductions)
    3) Gross annual tax from brackets
    4) Subtract age-tiered rebates (floor 0)
    5) Subtract medical credits (floor 0)
    6) De-annualise regular tax; add the irregular increment in full
    7) UIF on capped remuneration, SDL on remuneration
    8) Net pay

    ``calculate`` is pure: the same entry, profile and config always yield
    the same breakdown, including its calculation_id.
    """

    def __init__(self, engine_version: str | None = None):
        self.engine_version = engine_version or get_settings().engine_version
        self.brackets = TaxBracketEngine()
        self.rebates = RebateCalculator()
        self.medical_credits = MedicalCreditCalculator()
        self.annualisation = AnnualisationEngine()

    def calculate(
        self,
        entry: PayrollEntry,
        profile: EmployeeProfile,
        config: TaxYearConfig,
    ) -> CalculationBreakdown:
        """Calculate one employee's deductions for one period.

        Raises:
            CalculationError: If entry and profile disagree or inputs are invalid
            ConfigurationError: If the config does not cover the pay period
        """
        period_id = entry.period.period_id
        if entry.employee_id != profile.employee_id:
            raise CalculationError(
                f"Entry is for employee {entry.employee_id} but profile is for "
                f"{profile.employee_id}",
                employee_id=entry.employee_id,
                period_id=period_id,
                field="employee_id",
            )
        if not config.covers(entry.period.end):
            raise ConfigurationError(
                f"Tax tables {config.config_ref} ({config.effective_start} to "
                f"{config.effective_end}) do not cover period {period_id} "
                f"ending {entry.period.end}",
                employee_id=entry.employee_id,
                period_id=period_id,
                field="period",
            )

        try:
            return self._calculate(entry, profile, config)
        except CalculationError as e:
            if e.employee_id is None:
                e.employee_id = entry.employee_id
                e.period_id = period_id
            raise

    def net_annual_tax(
        self,
        annual_income: Decimal,
        age: int | None,
        medical_members: int,
        config: TaxYearConfig,
    ) -> Decimal:
        """Annual tax after rebates and medical credits, unrounded."""
        gross = self.brackets.annual_tax(annual_income, config)
        after_rebate = self.rebates.apply(gross, age, config.rebates).tax_after_rebate
        return self.medical_credits.apply(
            after_rebate, medical_members, config.medical_credits
        ).tax_after_credit

    def _calculate(
        self,
        entry: PayrollEntry,
        profile: EmployeeProfile,
        config: TaxYearConfig,
    ) -> CalculationBreakdown:
        steps: list[str] = []
        frequency = entry.frequency
        periods = self.annualisation.periods_per_year(frequency)

        age = profile.age_at(config.reference_date)
        members = profile.medical_scheme_members
        steps.append(
            f"Tax tables {config.config_ref}; employee age at "
            f"{config.reference_date}: {age if age is not None else 'unknown'}"
        )

        regular = self.annualisation.regular_taxable(entry)
        steps.append(
            f"Regular taxable: R{entry.gross_salary} + R{entry.fringe_benefits} (fringe) "
            f"- R{entry.pre_tax_deductions} (pre-tax) = R{regular}"
        )

        annualised = self.annualisation.period_tax(
            entry, lambda income: self.net_annual_tax(income, age, members, config)
        )
        steps.append(
            f"Annualised income: R{regular} x {periods} = R{annualised.annualised_income}"
        )
        if entry.irregular_income > 0:
            steps.append(
                f"Irregular income R{entry.irregular_income} added once: "
                f"R{annualised.annual_taxable_income}"
            )

        # Figures for the full annual taxable income, for the breakdown
        combined = annualised.annual_taxable_income
        bracket = self.brackets.find_bracket(combined, config)
        exact_gross_tax = self.brackets.annual_tax(combined, config)
        gross_tax = round_money(exact_gross_tax)
        rebate = self.rebates.apply(exact_gross_tax, age, config.rebates)
        medical = self.medical_credits.apply(
            rebate.tax_after_rebate, members, config.medical_credits
        )
        steps.append(
            f"Tax bracket from R{bracket.lower_bound} at {bracket.rate}: "
            f"R{bracket.cumulative_tax} + {bracket.rate} x "
            f"(R{combined} - R{bracket.lower_bound}) = R{gross_tax}"
        )
        steps.append(f"Rebates ({', '.join(rebate.tiers)}): R{rebate.applied}")
        steps.append(
            f"Medical credits: R{medical.monthly_credit} x {MONTHS_IN_YEAR} "
            f"= R{medical.annual_credit}, applied R{medical.applied}"
        )

        if profile.paye_override is not None:
            paye = round_money(profile.paye_override)
            regular_paye = paye
            irregular_paye = ZERO
            steps.append(f"PAYE directive override applied: R{paye}")
        else:
            paye = round_money(annualised.regular_period_tax + annualised.irregular_tax)
            regular_paye = round_money(annualised.regular_period_tax)
            irregular_paye = paye - regular_paye
            steps.append(
                f"PAYE: R{round_money(annualised.regular_annual_tax)} / {periods} "
                f"+ R{round_money(annualised.irregular_tax)} (irregular) = R{paye}"
            )

        remuneration = entry.gross_remuneration
        uif = self._uif(remuneration, profile, config, periods)
        sdl = round_money(remuneration * config.sdl_rate)
        net = round_money(remuneration - paye - uif - entry.pre_tax_deductions)
        steps.append(f"UIF: R{uif} (employee), R{uif} (employer); SDL: R{sdl}")
        steps.append(f"Net pay: R{net}")

        return CalculationBreakdown(
            calculation_id=self._generate_calculation_id(entry, profile, age, config),
            employee_id=entry.employee_id,
            period_id=entry.period.period_id,
            tax_year=config.tax_year,
            config_ref=config.config_ref,
            config_fingerprint=config.fingerprint,
            frequency=frequency,
            periods_per_year=periods,
            employee_age=age,
            regular_taxable=round_money(regular),
            irregular_income=round_money(entry.irregular_income),
            fringe_benefits=round_money(entry.fringe_benefits),
            pre_tax_deductions=round_money(entry.pre_tax_deductions),
            annualised_income=round_money(annualised.annualised_income),
            annual_taxable_income=round_money(combined),
            bracket_lower_bound=bracket.lower_bound,
            bracket_rate=bracket.rate,
            gross_tax=gross_tax,
            rebate=round_money(rebate.applied),
            rebate_tiers=rebate.tiers,
            medical_credit=round_money(medical.applied),
            annual_tax=round_money(medical.tax_after_credit),
            regular_paye=regular_paye,
            irregular_paye=irregular_paye,
            paye=paye,
            paye_override_applied=profile.paye_override is not None,
            gross_remuneration=round_money(remuneration),
            uif_employee=uif,
            uif_employer=uif,
            sdl=sdl,
            net_pay=net,
            steps=tuple(steps),
        )

    def _uif(
        self,
        remuneration: Decimal,
        profile: EmployeeProfile,
        config: TaxYearConfig,
        periods: int,
    ) -> Decimal:
        """UIF contribution for one side (employee and employer pay the same)."""
        if profile.uif_exempt or config.uif_rate == 0:
            return ZERO
        base = remuneration
        if config.uif_monthly_ceiling is not None:
            period_ceiling = config.uif_monthly_ceiling * MONTHS_IN_YEAR / periods
            base = min(base, period_ceiling)
        return round_money(base * config.uif_rate)

    def _generate_calculation_id(
        self,
        entry: PayrollEntry,
        profile: EmployeeProfile,
        age: int | None,
        config: TaxYearConfig,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "entry": entry.to_canonical_dict(),
            "employee_age": age,
            "medical_scheme_members": profile.medical_scheme_members,
            "uif_exempt": profile.uif_exempt,
            "paye_override": (
                canonical_decimal(profile.paye_override)
                if profile.paye_override is not None
                else None
            ),
            "config_ref": config.config_ref,
            "config_fingerprint": config.fingerprint,
            "engine_version": self.engine_version,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])
