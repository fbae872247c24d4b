"""Published tax year configuration versions."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from paye_engine.calculators.types import TaxYearConfig
from paye_engine.models.base import Base, TimestampMixin


class TaxYearConfigVersion(Base, TimestampMixin):
    """Immutable, effective-dated tax tables.

    payload_json holds TaxYearConfig.to_payload(); fingerprint is the hash of
    that payload so audit entries can prove which tables they used.
    """

    __tablename__ = "tax_year_config"

    config_version_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tax_year: Mapped[str] = mapped_column(String(16), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_start: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end: Mapped[date] = mapped_column(Date, nullable=False)
    payload_json: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("tax_year", "version", name="tax_year_config_year_version_unique"),
        CheckConstraint(
            "effective_end >= effective_start", name="tax_year_config_dates_check"
        ),
    )

    @property
    def config_ref(self) -> str:
        return f"{self.tax_year}#v{self.version}"

    def to_config(self) -> TaxYearConfig:
        return TaxYearConfig.from_payload(self.payload_json)

    @classmethod
    def from_config(cls, config: TaxYearConfig) -> TaxYearConfigVersion:
        return cls(
            tax_year=config.tax_year,
            version=config.version,
            effective_start=config.effective_start,
            effective_end=config.effective_end,
            payload_json=config.to_payload(),
            fingerprint=config.fingerprint,
        )
