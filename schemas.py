import datetime as dt
from decimal import Decimal
from typing import Annotated, ClassVar, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from fx_rates import ExchangeRateService
from models import (
    DailyExpenseCategory,
    ExpenseCategory,
    IncomeType,
    InvestmentCategory,
    InvestmentStatus,
    InvestmentType,
    LedgerStatus,
    VestPeriod,
)


def normalize_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError("Currency code must be three letters")
    return code


CurrencyCode = Annotated[Optional[str], AfterValidator(normalize_currency)]


class IncomeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    pre_tax_amount_cents: Optional[int] = Field(default=None, ge=0)
    post_tax_amount_cents: Optional[int] = Field(default=None, ge=0)
    tax_paid_cents: Optional[int] = Field(default=None, ge=0)
    currency_code: CurrencyCode = None
    type: IncomeType = IncomeType.salary
    units: Optional[float] = Field(default=None, ge=0)
    unit_price_cents: Optional[int] = Field(default=None, ge=0)
    vest_period: Optional[VestPeriod] = None


class ExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    currency_code: CurrencyCode = None
    category: ExpenseCategory = ExpenseCategory.other
    is_recurring: bool = True


class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: InvestmentType
    amount_cents: int = Field(..., ge=0)
    currency_code: CurrencyCode = None
    platform: str = Field(default="", max_length=120)
    category: InvestmentCategory = InvestmentCategory.mutual_fund
    status: InvestmentStatus = InvestmentStatus.active


class IncomeTemplateIn(IncomeIn):
    is_active: bool = True


class ExpenseTemplateIn(ExpenseIn):
    is_active: bool = True


class PatchIn(BaseModel):
    """Partial update: only the keys a caller sent are applied."""

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class IncomePatch(PatchIn):
    non_nullable: ClassVar[tuple[str, ...]] = (
        "name",
        "amount_cents",
        "currency_code",
        "type",
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    pre_tax_amount_cents: Optional[int] = Field(default=None, ge=0)
    post_tax_amount_cents: Optional[int] = Field(default=None, ge=0)
    tax_paid_cents: Optional[int] = Field(default=None, ge=0)
    currency_code: CurrencyCode = None
    type: Optional[IncomeType] = None
    units: Optional[float] = Field(default=None, ge=0)
    unit_price_cents: Optional[int] = Field(default=None, ge=0)
    vest_period: Optional[VestPeriod] = None


class ExpensePatch(PatchIn):
    non_nullable: ClassVar[tuple[str, ...]] = (
        "name",
        "amount_cents",
        "currency_code",
        "category",
        "is_recurring",
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    currency_code: CurrencyCode = None
    category: Optional[ExpenseCategory] = None
    is_recurring: Optional[bool] = None


class InvestmentPatch(PatchIn):
    non_nullable: ClassVar[tuple[str, ...]] = (
        "name",
        "type",
        "amount_cents",
        "currency_code",
        "platform",
        "category",
        "status",
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    type: Optional[InvestmentType] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    currency_code: CurrencyCode = None
    platform: Optional[str] = Field(default=None, max_length=120)
    category: Optional[InvestmentCategory] = None
    status: Optional[InvestmentStatus] = None


class IncomeTemplatePatch(IncomePatch):
    non_nullable: ClassVar[tuple[str, ...]] = IncomePatch.non_nullable + ("is_active",)

    is_active: Optional[bool] = None


class ExpenseTemplatePatch(ExpensePatch):
    non_nullable: ClassVar[tuple[str, ...]] = ExpensePatch.non_nullable + (
        "is_active",
    )

    is_active: Optional[bool] = None


class DailyExpenseIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=200)
    vendor: str = Field(default="", max_length=120)
    category: Optional[str] = Field(default=None, max_length=50)
    date: Optional[dt.date] = None
    currency_code: CurrencyCode = None


class SettingsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_currency: CurrencyCode = None
    exchange_rates: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator("exchange_rates")
    @classmethod
    def _positive_rates(cls, value: dict[str, Decimal]) -> dict[str, Decimal]:
        normalized: dict[str, Decimal] = {}
        for code, rate in value.items():
            # Stored as whole micros.
            if ExchangeRateService.rate_to_micros(rate) <= 0:
                raise ValueError(f"Exchange rate for {code} must be at least 0.000001")
            normalized[normalize_currency(code)] = rate
        return normalized


class LedgerStatusIn(BaseModel):
    status: LedgerStatus
    notes: Optional[str] = Field(default=None, max_length=2000)


# Output models


class LedgerIncomeItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: Optional[int]
    name: str
    amount_cents: int
    pre_tax_amount_cents: Optional[int]
    post_tax_amount_cents: Optional[int]
    tax_paid_cents: Optional[int]
    currency_code: str
    type: IncomeType
    units: Optional[float]
    unit_price_cents: Optional[int]
    vest_period: Optional[VestPeriod]


class LedgerExpenseItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: Optional[int]
    name: str
    amount_cents: int
    currency_code: str
    category: ExpenseCategory
    is_recurring: bool


class LedgerInvestmentItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: Optional[int]
    name: str
    type: InvestmentType
    amount_cents: int
    currency_code: str
    platform: str
    category: InvestmentCategory
    status: InvestmentStatus


class MonthlyLedgerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    month: str
    status: LedgerStatus
    notes: Optional[str]
    incomes: list[LedgerIncomeItemOut]
    expenses: list[LedgerExpenseItemOut]
    investments: list[LedgerInvestmentItemOut]
    created_at: dt.datetime
    updated_at: dt.datetime


class MonthlyLedgerResponse(BaseModel):
    ledger: MonthlyLedgerOut
    daily_expenses_total_cents: int


class DailyExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    amount_cents: int
    description: str
    vendor: str
    category: DailyExpenseCategory
    currency_code: str
