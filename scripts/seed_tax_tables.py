"""Seed script for SARS tax tables.

Run with:
    python scripts/seed_tax_tables.py
    python scripts/seed_tax_tables.py 2025/2026

This publishes the bundled SARS tables (brackets, rebates, medical credits,
UIF and SDL) as version 1 of each supported tax year. Re-running is safe.
"""

from __future__ import annotations

import asyncio
import sys

from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.database import dispose_db, get_session
from paye_engine.services.config_service import TaxYearConfigRepository
from paye_engine.tax_tables import SUPPORTED_TAX_YEARS, sars_config


async def seed_tax_year(session: AsyncSession, tax_year: str) -> None:
    config = sars_config(tax_year)
    row, is_new = await TaxYearConfigRepository(session).publish(config)
    if is_new:
        print(f"Published {row.config_ref} ({row.effective_start} to {row.effective_end})")
    else:
        print(f"{row.config_ref} already published, skipping...")


async def main(tax_years: list[str]) -> None:
    """Run seed script."""
    print("Seeding SARS tax tables...")

    async with get_session() as session:
        for tax_year in tax_years:
            await seed_tax_year(session, tax_year)
    await dispose_db()

    print("\nDone! Tax tables seeded successfully.")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:] or list(SUPPORTED_TAX_YEARS)))
