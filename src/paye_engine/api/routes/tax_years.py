"""Tax year config endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query, status

from paye_engine.api.dependencies import DbSession
from paye_engine.api.schemas import (
    ErrorResponse,
    PublishResponse,
    TaxYearConfigCreate,
    TaxYearConfigResponse,
)
from paye_engine.models import TaxYearConfigVersion
from paye_engine.services.config_service import TaxYearConfigRepository

router = APIRouter(prefix="/tax-years", tags=["tax-years"])


@router.post(
    "",
    response_model=PublishResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def publish_tax_year(db: DbSession, payload: TaxYearConfigCreate) -> PublishResponse:
    """Publish an immutable tax year config version.

    Re-publishing identical tables is a no-op (is_new=false); different
    tables under an existing version are rejected.
    """
    config = payload.to_config()
    row, is_new = await TaxYearConfigRepository(db).publish(config)
    await db.commit()
    return PublishResponse(config=TaxYearConfigResponse.model_validate(row), is_new=is_new)


@router.get("", response_model=list[TaxYearConfigResponse])
async def list_tax_years(
    db: DbSession,
    tax_year: Annotated[str | None, Query()] = None,
) -> list[TaxYearConfigResponse]:
    """List published config versions."""
    rows = await TaxYearConfigRepository(db).list_versions(tax_year)
    return [TaxYearConfigResponse.model_validate(row) for row in rows]


@router.get(
    "/resolve",
    response_model=TaxYearConfigResponse,
    responses={422: {"model": ErrorResponse}},
)
async def resolve_tax_year(
    db: DbSession,
    on: Annotated[date, Query(description="Date the tables must cover")],
) -> TaxYearConfigResponse:
    """Latest published version covering a date."""
    config = await TaxYearConfigRepository(db).resolve_for(on)
    return TaxYearConfigResponse.model_validate(TaxYearConfigVersion.from_config(config))
