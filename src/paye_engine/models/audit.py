"""Append-only audit trail of calculations."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from paye_engine.errors import ImmutableRecordError
from paye_engine.models.base import Base, utcnow


class AuditLogEntry(Base):
    """One committed calculation (revision 0) or correction (revision n).

    Rows are write-once. A second revision-0 row for the same
    (employee_id, period_id) violates the unique constraint, which is what
    serialises concurrent commits for one key.
    """

    __tablename__ = "audit_log_entry"

    audit_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    filing_period: Mapped[str] = mapped_column(String(7), nullable=False)
    tax_year: Mapped[str] = mapped_column(String(16), nullable=False)

    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    corrects_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("audit_log_entry.audit_entry_id"), nullable=True
    )
    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    config_ref: Mapped[str] = mapped_column(String(32), nullable=False)
    config_fingerprint: Mapped[str] = mapped_column(String(32), nullable=False)
    input_snapshot: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    breakdown_snapshot: Mapped[dict[str, Any]] = mapped_column(nullable=False)

    # Period amounts (reports read these)
    gross_remuneration: Mapped[Decimal] = mapped_column(nullable=False)
    regular_income: Mapped[Decimal] = mapped_column(nullable=False)
    irregular_income: Mapped[Decimal] = mapped_column(nullable=False)
    fringe_benefits: Mapped[Decimal] = mapped_column(nullable=False)
    pre_tax_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_income: Mapped[Decimal] = mapped_column(nullable=False)
    medical_credit: Mapped[Decimal] = mapped_column(nullable=False)
    paye: Mapped[Decimal] = mapped_column(nullable=False)
    uif_employee: Mapped[Decimal] = mapped_column(nullable=False)
    uif_employer: Mapped[Decimal] = mapped_column(nullable=False)
    sdl: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)

    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "period_id",
            "revision",
            name="audit_log_entry_employee_period_revision_unique",
        ),
        CheckConstraint("revision >= 0", name="audit_log_entry_revision_check"),
        Index("audit_log_entry_filing_period_idx", "filing_period"),
        Index("audit_log_entry_tax_year_idx", "tax_year", "employee_id"),
        Index("audit_log_entry_config_ref_idx", "config_ref"),
    )

    @property
    def is_correction(self) -> bool:
        return self.revision > 0

    def amounts(self) -> dict[str, Decimal]:
        """Amount columns covered by entry_hash and summed by reports."""
        return {name: getattr(self, name) for name in AUDIT_AMOUNT_FIELDS}


AUDIT_AMOUNT_FIELDS = (
    "gross_remuneration",
    "regular_income",
    "irregular_income",
    "fringe_benefits",
    "pre_tax_deductions",
    "taxable_income",
    "medical_credit",
    "paye",
    "uif_employee",
    "uif_employer",
    "sdl",
    "net_pay",
)


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_audit_update(mapper: Any, connection: Any, target: AuditLogEntry) -> None:
    raise ImmutableRecordError(
        f"Audit entry {target.audit_entry_id} is append-only; record a correction instead"
    )


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_audit_delete(mapper: Any, connection: Any, target: AuditLogEntry) -> None:
    raise ImmutableRecordError(f"Audit entry {target.audit_entry_id} cannot be deleted")
