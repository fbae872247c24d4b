"""Published tax year configuration store."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.calculators.types import TaxYearConfig
from paye_engine.errors import ConfigurationError
from paye_engine.models import TaxYearConfigVersion

logger = logging.getLogger(__name__)


class TaxYearConfigRepository:
    """Stores and resolves immutable, versioned tax tables.

    A published (tax_year, version) never changes. Publishing the identical
    tables again is a no-op; publishing different tables under an existing
    version is refused and must go out as a new version.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def publish(self, config: TaxYearConfig) -> tuple[TaxYearConfigVersion, bool]:
        """Publish a config version.

        Returns:
            (row, is_new) where is_new is False if the identical version
            was already published.

        Raises:
            ConfigurationError: If the version exists with different tables
        """
        existing = await self._get_row(config.tax_year, config.version)
        if existing is not None:
            return self._check_republish(existing, config), False

        row = TaxYearConfigVersion.from_config(config)
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            existing = await self._get_row(config.tax_year, config.version)
            if existing is None:
                raise
            return self._check_republish(existing, config), False

        logger.info(
            "Published tax tables %s (%s to %s, fingerprint %s)",
            config.config_ref,
            config.effective_start,
            config.effective_end,
            config.fingerprint,
        )
        return row, True

    async def get(self, tax_year: str, version: int | None = None) -> TaxYearConfig:
        """Get a tax year's tables; latest version when version is None."""
        if version is None:
            stmt = (
                select(TaxYearConfigVersion)
                .where(TaxYearConfigVersion.tax_year == tax_year)
                .order_by(TaxYearConfigVersion.version.desc())
                .limit(1)
            )
            row = (await self.session.execute(stmt)).scalar_one_or_none()
        else:
            row = await self._get_row(tax_year, version)

        if row is None:
            suffix = f" version {version}" if version is not None else ""
            raise ConfigurationError(
                f"No tax tables published for {tax_year}{suffix}", field="tax_year"
            )
        return row.to_config()

    async def get_by_ref(self, config_ref: str) -> TaxYearConfig:
        """Get the exact tables an audit entry references ("2025/2026#v1")."""
        tax_year, sep, version = config_ref.partition("#v")
        if not sep or not version.isdigit():
            raise ConfigurationError(
                f"Invalid config reference {config_ref!r}", field="config_ref"
            )
        return await self.get(tax_year, int(version))

    async def resolve_for(self, day: date) -> TaxYearConfig:
        """Latest published version whose effective range covers ``day``.

        Raises:
            ConfigurationError: If no published tables cover the date
        """
        stmt = (
            select(TaxYearConfigVersion)
            .where(TaxYearConfigVersion.effective_start <= day)
            .where(TaxYearConfigVersion.effective_end >= day)
            .order_by(
                TaxYearConfigVersion.effective_start.desc(),
                TaxYearConfigVersion.version.desc(),
            )
            .limit(1)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise ConfigurationError(
                f"No published tax tables cover {day.isoformat()}", field="period"
            )
        return row.to_config()

    async def list_versions(self, tax_year: str | None = None) -> list[TaxYearConfigVersion]:
        stmt = select(TaxYearConfigVersion).order_by(
            TaxYearConfigVersion.effective_start, TaxYearConfigVersion.version
        )
        if tax_year is not None:
            stmt = stmt.where(TaxYearConfigVersion.tax_year == tax_year)
        return list((await self.session.execute(stmt)).scalars().all())

    async def _get_row(self, tax_year: str, version: int) -> TaxYearConfigVersion | None:
        stmt = select(TaxYearConfigVersion).where(
            TaxYearConfigVersion.tax_year == tax_year,
            TaxYearConfigVersion.version == version,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def _check_republish(
        existing: TaxYearConfigVersion, config: TaxYearConfig
    ) -> TaxYearConfigVersion:
        if existing.fingerprint != config.fingerprint:
            raise ConfigurationError(
                f"Tax tables {config.config_ref} are already published with "
                f"different content; publish a new version instead",
                field="version",
            )
        return existing
