"""Year-to-date ledger."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from paye_engine.errors import ImmutableRecordError
from paye_engine.models.base import Base, TimestampMixin


class YTDLedgerEntry(Base, TimestampMixin):
    """A delta to an employee's year-to-date totals.

    The YTD record for (employee_id, tax_year) is the sum of its ledger rows.
    An ordinary calculation appends its period figures; a correction appends
    the signed difference and points at the entry it corrects.
    """

    __tablename__ = "ytd_ledger_entry"

    ytd_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tax_year: Mapped[str] = mapped_column(String(16), nullable=False)
    period_id: Mapped[str] = mapped_column(String(64), nullable=False)
    audit_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("audit_log_entry.audit_entry_id"), nullable=False
    )
    corrects_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("audit_log_entry.audit_entry_id"), nullable=True
    )

    gross: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_income: Mapped[Decimal] = mapped_column(nullable=False)
    regular_income: Mapped[Decimal] = mapped_column(nullable=False)
    irregular_income: Mapped[Decimal] = mapped_column(nullable=False)
    fringe_benefits: Mapped[Decimal] = mapped_column(nullable=False)
    retirement: Mapped[Decimal] = mapped_column(nullable=False)
    medical_credits: Mapped[Decimal] = mapped_column(nullable=False)
    paye: Mapped[Decimal] = mapped_column(nullable=False)
    uif_employee: Mapped[Decimal] = mapped_column(nullable=False)
    uif_employer: Mapped[Decimal] = mapped_column(nullable=False)
    sdl: Mapped[Decimal] = mapped_column(nullable=False)
    periods: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("audit_entry_id", name="ytd_ledger_entry_audit_unique"),
        Index("ytd_ledger_entry_key_idx", "employee_id", "tax_year"),
    )


YTD_AMOUNT_FIELDS = (
    "gross",
    "taxable_income",
    "regular_income",
    "irregular_income",
    "fringe_benefits",
    "retirement",
    "medical_credits",
    "paye",
    "uif_employee",
    "uif_employer",
    "sdl",
)


@event.listens_for(YTDLedgerEntry, "before_update")
def _refuse_ledger_update(mapper: Any, connection: Any, target: YTDLedgerEntry) -> None:
    raise ImmutableRecordError(f"YTD ledger entry {target.ytd_entry_id} is append-only")


@event.listens_for(YTDLedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper: Any, connection: Any, target: YTDLedgerEntry) -> None:
    raise ImmutableRecordError(f"YTD ledger entry {target.ytd_entry_id} cannot be deleted")
