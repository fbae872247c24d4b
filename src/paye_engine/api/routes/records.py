"""Year-to-date, audit trail and correction endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from paye_engine.api.dependencies import Calculator, DbSession
from paye_engine.api.routes.payroll import resolve_config
from paye_engine.api.schemas import (
    TAX_YEAR_PATTERN,
    AuditEntryResponse,
    AuditListResponse,
    CommitResponse,
    CorrectionRequest,
    ErrorResponse,
    IntegrityResponse,
    YTDResponse,
)
from paye_engine.models import AuditLogEntry
from paye_engine.services.audit_trail import AuditTrailRecorder, latest_revisions
from paye_engine.services.commit_service import CommitService
from paye_engine.services.ytd_accumulator import YTDAccumulator

router = APIRouter(tags=["records"])

TaxYear = Annotated[str, Query(pattern=TAX_YEAR_PATTERN)]


def _audit_response(row: AuditLogEntry, include_snapshot: bool) -> AuditEntryResponse:
    response = AuditEntryResponse.model_validate(row)
    if not include_snapshot:
        response.breakdown_snapshot = None
    return response


@router.get("/ytd/{employee_id}", response_model=YTDResponse)
async def get_ytd(
    db: DbSession,
    employee_id: Annotated[str, Path()],
    tax_year: TaxYear,
) -> YTDResponse:
    """Year-to-date totals; zero for an employee with no history."""
    record = await YTDAccumulator(db).get_ytd(employee_id, tax_year)
    return YTDResponse.model_validate(record.to_dict())


@router.get("/audit", response_model=AuditListResponse)
async def query_audit(
    db: DbSession,
    employee_id: str | None = None,
    period_id: str | None = None,
    tax_year: str | None = None,
    filing_period: str | None = None,
    config_ref: str | None = None,
    effective_only: bool = False,
    include_snapshot: bool = False,
) -> AuditListResponse:
    """Query audit entries; effective_only keeps the latest revision per period."""
    rows = await AuditTrailRecorder(db).query(
        employee_id=employee_id,
        period_id=period_id,
        tax_year=tax_year,
        filing_period=filing_period,
        config_ref=config_ref,
    )
    if effective_only:
        rows = latest_revisions(rows)
    return AuditListResponse(
        items=[_audit_response(row, include_snapshot) for row in rows],
        total=len(rows),
    )


@router.get("/audit/integrity", response_model=IntegrityResponse)
async def verify_audit_integrity(
    db: DbSession,
    tax_year: str | None = None,
) -> IntegrityResponse:
    """Recompute entry hashes and list entries that no longer match."""
    recorder = AuditTrailRecorder(db)
    rows = await recorder.query(tax_year=tax_year)
    tampered = await recorder.verify_integrity(rows)
    return IntegrityResponse(checked=len(rows), tampered=tampered)


@router.get(
    "/audit/{audit_entry_id}",
    response_model=AuditEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_audit_entry(
    db: DbSession,
    audit_entry_id: Annotated[UUID, Path()],
) -> AuditEntryResponse:
    row = await AuditTrailRecorder(db).get(audit_entry_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Audit entry {audit_entry_id} not found",
        )
    return _audit_response(row, include_snapshot=True)


@router.post(
    "/audit/{audit_entry_id}/corrections",
    response_model=CommitResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def record_correction(
    db: DbSession,
    calculator: Calculator,
    audit_entry_id: Annotated[UUID, Path()],
    payload: CorrectionRequest,
) -> CommitResponse:
    """Recalculate a committed period and append a correcting revision."""
    if await AuditTrailRecorder(db).get(audit_entry_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Audit entry {audit_entry_id} not found",
        )

    entry = payload.entry.to_entry()
    config = await resolve_config(db, payload, [entry])
    breakdown = calculator.calculate(entry, payload.employee.to_profile(), config)
    result = await CommitService(db).record_correction(
        audit_entry_id, entry, breakdown, payload.reason
    )
    await db.commit()
    return CommitResponse(
        audit_entry_id=result.audit_entry_id,
        ytd_entry_id=result.ytd_entry_id,
        calculation_id=result.calculation_id,
        employee_id=result.employee_id,
        period_id=result.period_id,
        revision=result.revision,
    )
