"""Persistence-backed services: config store, audit trail, YTD, reports, batches."""

from paye_engine.services.audit_trail import AuditTrailRecorder, compute_entry_hash
from paye_engine.services.commit_service import CommitResult, CommitService
from paye_engine.services.config_service import TaxYearConfigRepository
from paye_engine.services.payroll_run_service import (
    BatchResult,
    EntryOutcome,
    EntryStatus,
    PayrollRunService,
)
from paye_engine.services.reports import (
    Emp201Report,
    Emp501Report,
    Irp5Report,
    ReconciliationFinding,
    Report,
    ReportGenerator,
)
from paye_engine.services.validation import PayrollValidator, ValidationReport
from paye_engine.services.ytd_accumulator import YTDAccumulator, YTDRecord

__all__ = [
    "AuditTrailRecorder",
    "BatchResult",
    "CommitResult",
    "CommitService",
    "Emp201Report",
    "Emp501Report",
    "EntryOutcome",
    "EntryStatus",
    "Irp5Report",
    "PayrollRunService",
    "PayrollValidator",
    "ReconciliationFinding",
    "Report",
    "ReportGenerator",
    "TaxYearConfigRepository",
    "ValidationReport",
    "YTDAccumulator",
    "YTDRecord",
    "compute_entry_hash",
]
