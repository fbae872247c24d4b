"""ORM models."""

from paye_engine.models.audit import AUDIT_AMOUNT_FIELDS, AuditLogEntry
from paye_engine.models.base import Base, TimestampMixin
from paye_engine.models.tax_config import TaxYearConfigVersion
from paye_engine.models.ytd import YTD_AMOUNT_FIELDS, YTDLedgerEntry

__all__ = [
    "AUDIT_AMOUNT_FIELDS",
    "AuditLogEntry",
    "Base",
    "TaxYearConfigVersion",
    "TimestampMixin",
    "YTD_AMOUNT_FIELDS",
    "YTDLedgerEntry",
]
