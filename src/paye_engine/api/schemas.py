"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from paye_engine.calculators.types import (
    EmployeeProfile,
    MedicalCreditTable,
    PayFrequency,
    PayPeriod,
    PayrollEntry,
    RebateTable,
    TaxYearConfig,
)

TAX_YEAR_PATTERN = r"^\d{4}/\d{4}$"
FILING_PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


# ============================================================================
# Tax year config schemas
# ============================================================================


class BracketIn(BaseModel):
    """A bracket's lower bound and marginal rate; cumulative tax is derived."""

    lower_bound: Decimal = Field(ge=0)
    rate: Decimal = Field(ge=0, le=1)


class RebatesIn(BaseModel):
    primary: Decimal = Field(ge=0)
    secondary: Decimal = Field(default=Decimal("0"), ge=0)
    tertiary: Decimal = Field(default=Decimal("0"), ge=0)
    secondary_age: int = 65
    tertiary_age: int = 75


class MedicalCreditsIn(BaseModel):
    main_member: Decimal = Field(default=Decimal("0"), ge=0)
    first_dependent: Decimal = Field(default=Decimal("0"), ge=0)
    additional_dependent: Decimal = Field(default=Decimal("0"), ge=0)


class TaxYearConfigCreate(BaseModel):
    """Schema for publishing a tax year config version."""

    tax_year: str = Field(pattern=TAX_YEAR_PATTERN)
    version: int = Field(default=1, ge=1)
    effective_start: date
    effective_end: date
    brackets: list[BracketIn] = Field(min_length=1)
    rebates: RebatesIn
    uif_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    uif_monthly_ceiling: Decimal | None = Field(default=None, ge=0)
    sdl_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    medical_credits: MedicalCreditsIn = Field(default_factory=MedicalCreditsIn)

    def to_config(self) -> TaxYearConfig:
        return TaxYearConfig(
            tax_year=self.tax_year,
            version=self.version,
            effective_start=self.effective_start,
            effective_end=self.effective_end,
            brackets=TaxYearConfig.build_brackets(
                [b.lower_bound for b in self.brackets], [b.rate for b in self.brackets]
            ),
            rebates=RebateTable(**self.rebates.model_dump()),
            uif_rate=self.uif_rate,
            uif_monthly_ceiling=self.uif_monthly_ceiling,
            sdl_rate=self.sdl_rate,
            medical_credits=MedicalCreditTable(**self.medical_credits.model_dump()),
        )


class TaxYearConfigResponse(BaseModel):
    """Schema for a published config version."""

    model_config = ConfigDict(from_attributes=True)

    config_ref: str
    tax_year: str
    version: int
    effective_start: date
    effective_end: date
    fingerprint: str
    payload_json: dict[str, Any]


class PublishResponse(BaseModel):
    config: TaxYearConfigResponse
    is_new: bool


# ============================================================================
# Payroll input schemas
# ============================================================================


class EmployeeIn(BaseModel):
    """Employee facts from the employee master."""

    employee_id: str = Field(min_length=1, max_length=64)
    date_of_birth: date | None = None
    medical_scheme_members: int = 0
    tax_number: str | None = None
    uif_exempt: bool = False
    paye_override: Decimal | None = None
    full_name: str | None = None

    def to_profile(self) -> EmployeeProfile:
        return EmployeeProfile(**self.model_dump())


class PayrollEntryIn(BaseModel):
    """One employee's pay for one period."""

    employee_id: str = Field(min_length=1, max_length=64)
    period_id: str = Field(min_length=1, max_length=64)
    period_start: date
    period_end: date
    gross_salary: Decimal
    irregular_income: Decimal = Decimal("0")
    fringe_benefits: Decimal = Decimal("0")
    pre_tax_deductions: Decimal = Decimal("0")
    frequency: PayFrequency = PayFrequency.MONTHLY

    def to_entry(self) -> PayrollEntry:
        return PayrollEntry(
            employee_id=self.employee_id,
            period=PayPeriod(self.period_id, self.period_start, self.period_end),
            gross_salary=self.gross_salary,
            irregular_income=self.irregular_income,
            fringe_benefits=self.fringe_benefits,
            pre_tax_deductions=self.pre_tax_deductions,
            frequency=self.frequency,
        )


class ConfigSelector(BaseModel):
    """Pick a published config; resolved from the pay period dates when omitted."""

    tax_year: str | None = Field(default=None, pattern=TAX_YEAR_PATTERN)
    version: int | None = Field(default=None, ge=1)


class BatchRequest(ConfigSelector):
    employees: list[EmployeeIn]
    entries: list[PayrollEntryIn] = Field(min_length=1)
    concurrency: int | None = Field(default=None, ge=1)

    def profiles(self) -> dict[str, EmployeeProfile]:
        return {e.employee_id: e.to_profile() for e in self.employees}


class PreviewRequest(ConfigSelector):
    employee: EmployeeIn
    entry: PayrollEntryIn


class CorrectionRequest(ConfigSelector):
    employee: EmployeeIn
    entry: PayrollEntryIn
    reason: str = Field(min_length=1)


# ============================================================================
# Result schemas
# ============================================================================


class IssueResponse(BaseModel):
    employee_id: str
    period_id: str
    field: str
    message: str
    severity: str


class ValidationResponse(BaseModel):
    valid: bool
    entries_checked: int
    employees_checked: int
    warnings: list[IssueResponse]


class BreakdownResponse(BaseModel):
    """Full calculation breakdown."""

    calculation_id: UUID
    employee_id: str
    period_id: str
    tax_year: str
    config_ref: str
    config_fingerprint: str
    frequency: PayFrequency
    periods_per_year: int
    employee_age: int | None
    regular_taxable: Decimal
    irregular_income: Decimal
    fringe_benefits: Decimal
    pre_tax_deductions: Decimal
    annualised_income: Decimal
    annual_taxable_income: Decimal
    bracket_lower_bound: Decimal
    bracket_rate: Decimal
    gross_tax: Decimal
    rebate: Decimal
    rebate_tiers: list[str]
    medical_credit: Decimal
    annual_tax: Decimal
    regular_paye: Decimal
    irregular_paye: Decimal
    paye: Decimal
    paye_override_applied: bool
    gross_remuneration: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    net_pay: Decimal
    steps: list[str]


class OutcomeResponse(BaseModel):
    employee_id: str
    period_id: str
    status: str
    calculation_id: UUID | None = None
    audit_entry_id: UUID | None = None
    paye: Decimal | None = None
    net_pay: Decimal | None = None
    error_code: str | None = None
    error: str | None = None


class BatchResponse(BaseModel):
    config_ref: str
    aborted: bool
    counts: dict[str, int]
    warnings: list[IssueResponse]
    outcomes: list[OutcomeResponse]


class CommitResponse(BaseModel):
    audit_entry_id: UUID
    ytd_entry_id: UUID
    calculation_id: UUID
    employee_id: str
    period_id: str
    revision: int


class YTDResponse(BaseModel):
    employee_id: str
    tax_year: str
    gross: Decimal
    taxable_income: Decimal
    regular_income: Decimal
    irregular_income: Decimal
    fringe_benefits: Decimal
    retirement: Decimal
    medical_credits: Decimal
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    periods_processed: int


class AuditEntryResponse(BaseModel):
    """Schema for an audit entry."""

    model_config = ConfigDict(from_attributes=True)

    audit_entry_id: UUID
    calculation_id: UUID
    recorded_at: datetime
    employee_id: str
    period_id: str
    period_start: date
    period_end: date
    filing_period: str
    tax_year: str
    revision: int
    corrects_entry_id: UUID | None = None
    correction_reason: str | None = None
    config_ref: str
    config_fingerprint: str
    gross_remuneration: Decimal
    regular_income: Decimal
    irregular_income: Decimal
    fringe_benefits: Decimal
    pre_tax_deductions: Decimal
    taxable_income: Decimal
    medical_credit: Decimal
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    net_pay: Decimal
    entry_hash: str
    breakdown_snapshot: dict[str, Any] | None = None


class AuditListResponse(BaseModel):
    items: list[AuditEntryResponse]
    total: int


class IntegrityResponse(BaseModel):
    checked: int
    tampered: list[UUID]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    employee_id: str | None = None
    period_id: str | None = None
    field: str | None = None


class ValidationErrorResponse(ErrorResponse):
    """Schema for a rejected payroll batch."""

    issues: list[IssueResponse]
