"""Type definitions for the calculation pipeline."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

from paye_engine.calculators.money import (
    ZERO,
    canonical_decimal,
    round_money,
    to_decimal,
)
from paye_engine.errors import ConfigurationError


class PayFrequency(str, Enum):
    """Pay frequencies and the number of periods they yield per year."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]


_PERIODS_PER_YEAR = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.SEMIMONTHLY: 24,
    PayFrequency.MONTHLY: 12,
}


def _coerce_decimals(obj: Any, *names: str) -> None:
    """Normalise numeric fields of a frozen dataclass to Decimal (None kept)."""
    for name in names:
        value = getattr(obj, name)
        if value is not None:
            object.__setattr__(obj, name, to_decimal(value))


# ===== Tax tables =====


@dataclass(frozen=True)
class TaxBracket:
    """Tax bracket for progressive taxation."""

    lower_bound: Decimal
    upper_bound: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.18 for 18%
    cumulative_tax: Decimal = ZERO  # Tax due on income up to lower_bound

    def __post_init__(self) -> None:
        _coerce_decimals(self, "lower_bound", "upper_bound", "rate", "cumulative_tax")

    def contains(self, income: Decimal) -> bool:
        """Lower bound inclusive, upper bound exclusive."""
        if income < self.lower_bound:
            return False
        return self.upper_bound is None or income < self.upper_bound


@dataclass(frozen=True)
class RebateTable:
    """Annual age-tiered rebates."""

    primary: Decimal
    secondary: Decimal = ZERO
    tertiary: Decimal = ZERO
    secondary_age: int = 65
    tertiary_age: int = 75

    def __post_init__(self) -> None:
        _coerce_decimals(self, "primary", "secondary", "tertiary")


@dataclass(frozen=True)
class MedicalCreditTable:
    """Monthly medical scheme fees tax credits."""

    main_member: Decimal = ZERO
    first_dependent: Decimal = ZERO
    additional_dependent: Decimal = ZERO

    def __post_init__(self) -> None:
        _coerce_decimals(self, "main_member", "first_dependent", "additional_dependent")


@dataclass(frozen=True)
class TaxYearConfig:
    """Published, immutable tax tables for one tax year version.

    Once published a config is never mutated; a rule correction is a new
    version. Calculations and audit entries reference ``config_ref``.
    """

    tax_year: str
    version: int
    effective_start: date
    effective_end: date
    brackets: tuple[TaxBracket, ...]
    rebates: RebateTable = field(default_factory=lambda: RebateTable(primary=ZERO))
    uif_rate: Decimal = ZERO
    uif_monthly_ceiling: Decimal | None = None
    sdl_rate: Decimal = ZERO
    medical_credits: MedicalCreditTable = field(default_factory=MedicalCreditTable)

    def __post_init__(self) -> None:
        object.__setattr__(self, "brackets", tuple(self.brackets))
        _coerce_decimals(self, "uif_rate", "uif_monthly_ceiling", "sdl_rate")
        self._validate()

    @property
    def config_ref(self) -> str:
        return f"{self.tax_year}#v{self.version}"

    @property
    def reference_date(self) -> date:
        """Date at which employee age is assessed for rebates."""
        return self.effective_end

    @property
    def fingerprint(self) -> str:
        json_str = json.dumps(self.to_payload(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def covers(self, day: date) -> bool:
        return self.effective_start <= day <= self.effective_end

    @staticmethod
    def build_brackets(
        lower_bounds: Sequence[Any], rates: Sequence[Any]
    ) -> tuple[TaxBracket, ...]:
        """Build contiguous brackets, deriving cumulative tax at each joint.

        lower_bounds must start at 0; the last bracket is open-ended.
        """
        if len(lower_bounds) != len(rates) or not lower_bounds:
            raise ConfigurationError(
                "lower_bounds and rates must be non-empty and the same length",
                field="brackets",
            )
        bounds = [to_decimal(b) for b in lower_bounds]
        rate_values = [to_decimal(r) for r in rates]

        brackets: list[TaxBracket] = []
        cumulative = ZERO
        for i, (lower, rate) in enumerate(zip(bounds, rate_values)):
            upper = bounds[i + 1] if i + 1 < len(bounds) else None
            brackets.append(
                TaxBracket(
                    lower_bound=lower,
                    upper_bound=upper,
                    rate=rate,
                    cumulative_tax=cumulative,
                )
            )
            if upper is not None:
                cumulative = cumulative + rate * (upper - lower)
        return tuple(brackets)

    def _validate(self) -> None:
        if self.effective_end < self.effective_start:
            raise ConfigurationError(
                f"Tax year {self.tax_year}: effective_end precedes effective_start",
                field="effective_end",
            )
        if self.version < 1:
            raise ConfigurationError(
                f"Tax year {self.tax_year}: version must be >= 1", field="version"
            )
        if not self.brackets:
            raise ConfigurationError(
                f"Tax year {self.tax_year} has no brackets", field="brackets"
            )
        if self.brackets[0].lower_bound != 0:
            raise ConfigurationError(
                f"Tax year {self.tax_year}: first bracket must start at 0",
                field="brackets",
            )

        last = len(self.brackets) - 1
        for i, bracket in enumerate(self.brackets):
            if bracket.rate < 0 or bracket.rate > 1:
                raise ConfigurationError(
                    f"Bracket {i} rate {bracket.rate} outside [0, 1]", field="brackets"
                )
            if i == last:
                if bracket.upper_bound is not None:
                    raise ConfigurationError(
                        "Top bracket must be open-ended", field="brackets"
                    )
                continue

            nxt = self.brackets[i + 1]
            if bracket.upper_bound is None:
                raise ConfigurationError(
                    f"Only the top bracket may be open-ended (bracket {i})",
                    field="brackets",
                )
            if bracket.upper_bound <= bracket.lower_bound:
                raise ConfigurationError(
                    f"Bracket {i} upper bound must exceed its lower bound",
                    field="brackets",
                )
            if bracket.upper_bound != nxt.lower_bound:
                raise ConfigurationError(
                    f"Brackets {i} and {i + 1} are not contiguous "
                    f"({bracket.upper_bound} != {nxt.lower_bound})",
                    field="brackets",
                )
            if nxt.rate < bracket.rate:
                raise ConfigurationError(
                    f"Bracket {i + 1} rate decreases", field="brackets"
                )
            expected = bracket.cumulative_tax + bracket.rate * (
                bracket.upper_bound - bracket.lower_bound
            )
            if round_money(expected) != round_money(nxt.cumulative_tax):
                raise ConfigurationError(
                    f"Bracket {i + 1} cumulative tax {nxt.cumulative_tax} "
                    f"does not continue bracket {i} (expected {expected})",
                    field="brackets",
                )

        for name, value in (("uif_rate", self.uif_rate), ("sdl_rate", self.sdl_rate)):
            if value < 0 or value > 1:
                raise ConfigurationError(f"{name} outside [0, 1]", field=name)
        if self.uif_monthly_ceiling is not None and self.uif_monthly_ceiling < 0:
            raise ConfigurationError(
                "uif_monthly_ceiling must be non-negative", field="uif_monthly_ceiling"
            )
        for name in ("primary", "secondary", "tertiary"):
            if getattr(self.rebates, name) < 0:
                raise ConfigurationError(f"Rebate {name} is negative", field="rebates")
        for name in ("main_member", "first_dependent", "additional_dependent"):
            if getattr(self.medical_credits, name) < 0:
                raise ConfigurationError(
                    f"Medical credit {name} is negative", field="medical_credits"
                )

    def to_payload(self) -> dict[str, Any]:
        """Return canonical JSON payload (used for storage and fingerprinting)."""
        return {
            "tax_year": self.tax_year,
            "version": self.version,
            "effective_start": self.effective_start.isoformat(),
            "effective_end": self.effective_end.isoformat(),
            "brackets": [
                {
                    "lower": canonical_decimal(b.lower_bound),
                    "upper": (
                        canonical_decimal(b.upper_bound)
                        if b.upper_bound is not None
                        else None
                    ),
                    "rate": canonical_decimal(b.rate),
                    "cumulative": canonical_decimal(b.cumulative_tax),
                }
                for b in self.brackets
            ],
            "rebates": {
                "primary": canonical_decimal(self.rebates.primary),
                "secondary": canonical_decimal(self.rebates.secondary),
                "tertiary": canonical_decimal(self.rebates.tertiary),
                "secondary_age": self.rebates.secondary_age,
                "tertiary_age": self.rebates.tertiary_age,
            },
            "uif": {
                "rate": canonical_decimal(self.uif_rate),
                "monthly_ceiling": (
                    canonical_decimal(self.uif_monthly_ceiling)
                    if self.uif_monthly_ceiling is not None
                    else None
                ),
            },
            "sdl": {"rate": canonical_decimal(self.sdl_rate)},
            "medical_credits": {
                "main_member": canonical_decimal(self.medical_credits.main_member),
                "first_dependent": canonical_decimal(self.medical_credits.first_dependent),
                "additional_dependent": canonical_decimal(
                    self.medical_credits.additional_dependent
                ),
            },
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TaxYearConfig:
        """Parse a stored payload back into a config."""
        try:
            brackets = tuple(
                TaxBracket(
                    lower_bound=to_decimal(b["lower"]),
                    upper_bound=(
                        to_decimal(b["upper"]) if b.get("upper") is not None else None
                    ),
                    rate=to_decimal(b["rate"]),
                    cumulative_tax=to_decimal(b.get("cumulative", 0)),
                )
                for b in payload["brackets"]
            )
            rebates = payload.get("rebates", {})
            uif = payload.get("uif", {})
            credits = payload.get("medical_credits", {})
            ceiling = uif.get("monthly_ceiling")
            return cls(
                tax_year=payload["tax_year"],
                version=int(payload.get("version", 1)),
                effective_start=date.fromisoformat(payload["effective_start"]),
                effective_end=date.fromisoformat(payload["effective_end"]),
                brackets=brackets,
                rebates=RebateTable(
                    primary=to_decimal(rebates.get("primary", 0)),
                    secondary=to_decimal(rebates.get("secondary", 0)),
                    tertiary=to_decimal(rebates.get("tertiary", 0)),
                    secondary_age=int(rebates.get("secondary_age", 65)),
                    tertiary_age=int(rebates.get("tertiary_age", 75)),
                ),
                uif_rate=to_decimal(uif.get("rate", 0)),
                uif_monthly_ceiling=to_decimal(ceiling) if ceiling is not None else None,
                sdl_rate=to_decimal(payload.get("sdl", {}).get("rate", 0)),
                medical_credits=MedicalCreditTable(
                    main_member=to_decimal(credits.get("main_member", 0)),
                    first_dependent=to_decimal(credits.get("first_dependent", 0)),
                    additional_dependent=to_decimal(credits.get("additional_dependent", 0)),
                ),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ConfigurationError(f"Malformed tax year payload: {e}") from e


# ===== Payroll inputs =====


@dataclass(frozen=True)
class EmployeeProfile:
    """Read-only employee facts supplied by the employee master."""

    employee_id: str
    date_of_birth: date | None = None
    medical_scheme_members: int = 0  # main member counts as the first unit
    tax_number: str | None = None
    uif_exempt: bool = False
    paye_override: Decimal | None = None  # tax directive, per period
    full_name: str | None = None

    def __post_init__(self) -> None:
        _coerce_decimals(self, "paye_override")

    def age_at(self, day: date) -> int | None:
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        before_birthday = (day.month, day.day) < (dob.month, dob.day)
        return day.year - dob.year - int(before_birthday)


@dataclass(frozen=True)
class PayPeriod:
    """A pay period (inclusive date range)."""

    period_id: str
    start: date
    end: date

    @property
    def filing_period(self) -> str:
        """The EMP201 month this period is declared in (YYYY-MM)."""
        return f"{self.end.year:04d}-{self.end.month:02d}"

    def overlaps(self, other: PayPeriod) -> bool:
        return self.start <= other.end and other.start <= self.end


@dataclass(frozen=True)
class PayrollEntry:
    """One employee's pay for one period."""

    employee_id: str
    period: PayPeriod
    gross_salary: Decimal
    irregular_income: Decimal = ZERO  # bonuses and other once-off payments
    fringe_benefits: Decimal = ZERO  # taxable value, not paid in cash
    pre_tax_deductions: Decimal = ZERO  # retirement fund contributions
    frequency: PayFrequency = PayFrequency.MONTHLY

    def __post_init__(self) -> None:
        _coerce_decimals(
            self,
            "gross_salary",
            "irregular_income",
            "fringe_benefits",
            "pre_tax_deductions",
        )
        object.__setattr__(self, "frequency", PayFrequency(self.frequency))

    @property
    def gross_remuneration(self) -> Decimal:
        """Cash remuneration for the period (UIF and SDL base)."""
        return self.gross_salary + self.irregular_income

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "employee_id": self.employee_id,
            "period_id": self.period.period_id,
            "period_start": self.period.start.isoformat(),
            "period_end": self.period.end.isoformat(),
            "gross_salary": canonical_decimal(self.gross_salary),
            "irregular_income": canonical_decimal(self.irregular_income),
            "fringe_benefits": canonical_decimal(self.fringe_benefits),
            "pre_tax_deductions": canonical_decimal(self.pre_tax_deductions),
            "frequency": self.frequency.value,
        }


# ===== Results =====


@dataclass(frozen=True)
class CalculationBreakdown:
    """Full, reproducible result of one employee-period calculation."""

    calculation_id: UUID
    employee_id: str
    period_id: str
    tax_year: str
    config_ref: str
    config_fingerprint: str
    frequency: PayFrequency
    periods_per_year: int
    employee_age: int | None

    # Period figures
    regular_taxable: Decimal
    irregular_income: Decimal
    fringe_benefits: Decimal
    pre_tax_deductions: Decimal

    # Annual figures
    annualised_income: Decimal
    annual_taxable_income: Decimal
    bracket_lower_bound: Decimal
    bracket_rate: Decimal
    gross_tax: Decimal
    rebate: Decimal
    rebate_tiers: tuple[str, ...]
    medical_credit: Decimal
    annual_tax: Decimal

    # Period deductions
    regular_paye: Decimal
    irregular_paye: Decimal
    paye: Decimal
    paye_override_applied: bool
    gross_remuneration: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    net_pay: Decimal

    steps: tuple[str, ...] = ()

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing and audit snapshots."""
        return {
            "calculation_id": str(self.calculation_id),
            "employee_id": self.employee_id,
            "period_id": self.period_id,
            "tax_year": self.tax_year,
            "config_ref": self.config_ref,
            "config_fingerprint": self.config_fingerprint,
            "frequency": self.frequency.value,
            "periods_per_year": self.periods_per_year,
            "employee_age": self.employee_age,
            "regular_taxable": str(self.regular_taxable),
            "irregular_income": str(self.irregular_income),
            "fringe_benefits": str(self.fringe_benefits),
            "pre_tax_deductions": str(self.pre_tax_deductions),
            "annualised_income": str(self.annualised_income),
            "annual_taxable_income": str(self.annual_taxable_income),
            "bracket_lower_bound": str(self.bracket_lower_bound),
            "bracket_rate": str(self.bracket_rate),
            "gross_tax": str(self.gross_tax),
            "rebate": str(self.rebate),
            "rebate_tiers": list(self.rebate_tiers),
            "medical_credit": str(self.medical_credit),
            "annual_tax": str(self.annual_tax),
            "regular_paye": str(self.regular_paye),
            "irregular_paye": str(self.irregular_paye),
            "paye": str(self.paye),
            "paye_override_applied": self.paye_override_applied,
            "gross_remuneration": str(self.gross_remuneration),
            "uif_employee": str(self.uif_employee),
            "uif_employer": str(self.uif_employer),
            "sdl": str(self.sdl),
            "net_pay": str(self.net_pay),
            "steps": list(self.steps),
        }
