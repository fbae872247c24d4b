"""Payroll validation, preview and batch processing endpoints."""

from collections.abc import Sequence

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from paye_engine.api.dependencies import Calculator, DbSession, SessionFactory
from paye_engine.api.schemas import (
    BatchRequest,
    BatchResponse,
    BreakdownResponse,
    ConfigSelector,
    ErrorResponse,
    PreviewRequest,
    ValidationErrorResponse,
    ValidationResponse,
)
from paye_engine.calculators.types import PayrollEntry, TaxYearConfig
from paye_engine.services.config_service import TaxYearConfigRepository
from paye_engine.services.payroll_run_service import PayrollRunService

router = APIRouter(prefix="/payroll", tags=["payroll"])


async def resolve_config(
    db: AsyncSession, selector: ConfigSelector, entries: Sequence[PayrollEntry]
) -> TaxYearConfig:
    """Config named by the request, else the one covering the earliest period end."""
    repo = TaxYearConfigRepository(db)
    if selector.tax_year is not None:
        return await repo.get(selector.tax_year, selector.version)
    return await repo.resolve_for(min(e.period.end for e in entries))


@router.post(
    "/validate",
    response_model=ValidationResponse,
    responses={422: {"model": ValidationErrorResponse}},
)
async def validate_batch(
    db: DbSession, factory: SessionFactory, payload: BatchRequest
) -> ValidationResponse:
    """Validate a batch without calculating or committing anything."""
    entries = [e.to_entry() for e in payload.entries]
    config = await resolve_config(db, payload, entries)
    report = await PayrollRunService(factory).validate(entries, payload.profiles(), config)
    return ValidationResponse(valid=True, **report.to_dict())


@router.post(
    "/preview",
    response_model=BreakdownResponse,
    responses={422: {"model": ErrorResponse}},
)
async def preview_calculation(
    db: DbSession, calculator: Calculator, payload: PreviewRequest
) -> BreakdownResponse:
    """Calculate one entry without committing it."""
    entry = payload.entry.to_entry()
    config = await resolve_config(db, payload, [entry])
    breakdown = calculator.calculate(entry, payload.employee.to_profile(), config)
    return BreakdownResponse.model_validate(breakdown.to_canonical_dict())


@router.post(
    "/batches",
    response_model=BatchResponse,
    responses={422: {"model": ValidationErrorResponse}},
)
async def process_batch(
    db: DbSession,
    factory: SessionFactory,
    calculator: Calculator,
    payload: BatchRequest,
) -> BatchResponse:
    """Validate, calculate and commit a batch.

    Each entry commits independently; the response lists every outcome.
    """
    entries = [e.to_entry() for e in payload.entries]
    config = await resolve_config(db, payload, entries)
    await db.close()

    service = PayrollRunService(factory, calculator)
    result = await service.process_batch(
        entries, payload.profiles(), config, concurrency=payload.concurrency
    )
    return BatchResponse.model_validate(result.to_dict())
