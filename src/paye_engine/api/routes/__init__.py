"""API routes."""

from paye_engine.api.routes.health import router as health_router
from paye_engine.api.routes.payroll import router as payroll_router
from paye_engine.api.routes.records import router as records_router
from paye_engine.api.routes.reports import router as reports_router
from paye_engine.api.routes.tax_years import router as tax_years_router

__all__ = [
    "health_router",
    "payroll_router",
    "records_router",
    "reports_router",
    "tax_years_router",
]
