"""Statutory report endpoints (EMP201, EMP501, IRP5)."""

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Path, Query
from fastapi.responses import PlainTextResponse

from paye_engine.api.dependencies import DbSession
from paye_engine.api.schemas import FILING_PERIOD_PATTERN, TAX_YEAR_PATTERN, ErrorResponse
from paye_engine.services.reports import ReportGenerator

router = APIRouter(prefix="/reports", tags=["reports"])

ReportFormat = Literal["json", "csv"]


@router.get("/emp201/{filing_period}", response_model=None)
async def get_emp201(
    db: DbSession,
    filing_period: Annotated[str, Path(pattern=FILING_PERIOD_PATTERN)],
    fmt: Annotated[ReportFormat, Query(alias="format")] = "json",
) -> dict[str, Any] | PlainTextResponse:
    """Monthly employer declaration; a month with no payroll is a nil return."""
    report = await ReportGenerator(db).generate_emp201(filing_period)
    if fmt == "csv":
        return PlainTextResponse(report.to_csv(), media_type="text/csv")
    return report.to_dict()


@router.get("/emp501", response_model=None)
async def get_emp501(
    db: DbSession,
    tax_year: Annotated[str, Query(pattern=TAX_YEAR_PATTERN)],
    fmt: Annotated[ReportFormat, Query(alias="format")] = "json",
) -> dict[str, Any] | PlainTextResponse:
    """Annual reconciliation; variances are reported, not raised."""
    report = await ReportGenerator(db).generate_emp501(tax_year)
    if fmt == "csv":
        return PlainTextResponse(report.to_csv(), media_type="text/csv")
    return report.to_dict()


@router.get(
    "/irp5/{employee_id}",
    response_model=None,
    responses={404: {"model": ErrorResponse}},
)
async def get_irp5(
    db: DbSession,
    employee_id: Annotated[str, Path()],
    tax_year: Annotated[str, Query(pattern=TAX_YEAR_PATTERN)],
) -> dict[str, Any]:
    report = await ReportGenerator(db).generate_irp5(employee_id, tax_year)
    return report.to_dict()
