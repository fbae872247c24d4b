"""Age-tiered tax rebates."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from paye_engine.calculators.money import ZERO
from paye_engine.calculators.types import RebateTable


@dataclass(frozen=True)
class RebateResult:
    """Outcome of applying rebates to gross tax."""

    available: Decimal  # sum of qualifying tiers
    applied: Decimal  # never more than the gross tax
    tiers: tuple[str, ...]
    tax_after_rebate: Decimal


class RebateCalculator:
    """Primary rebate for everyone; secondary and tertiary stack with age."""

    def qualifying_tiers(
        self, age: int | None, table: RebateTable
    ) -> list[tuple[str, Decimal]]:
        tiers = [("primary", table.primary)]
        if age is None:
            return tiers
        if age >= table.secondary_age:
            tiers.append(("secondary", table.secondary))
        if age >= table.tertiary_age:
            tiers.append(("tertiary", table.tertiary))
        return tiers

    def apply(self, gross_tax: Decimal, age: int | None, table: RebateTable) -> RebateResult:
        tiers = self.qualifying_tiers(age, table)
        available = sum((amount for _, amount in tiers), ZERO)
        applied = min(available, max(gross_tax, ZERO))
        return RebateResult(
            available=available,
            applied=applied,
            tiers=tuple(name for name, _ in tiers),
            tax_after_rebate=max(ZERO, gross_tax - available),
        )
