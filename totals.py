from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from fx_rates import ExchangeRateService
from ledger import LedgerService, parse_month
from models import (
    IncomeType,
    InvestmentStatus,
    InvestmentType,
    MonthlyLedger,
    TemplateKind,
)
from services import TemplateService, UserSettingsService, get_current_user_id


@dataclass(frozen=True)
class MonthTotals:
    total_income_cents: int
    total_expenses_cents: int
    total_sips_cents: int
    total_voluntary_investments_cents: int
    daily_expenses_total_cents: int
    remaining_cents: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def income_in_base_cents(
    item, base_currency: str, rate_for: Callable[[str], Decimal]
) -> int:
    # Only vested equity is held in a foreign currency; everything else is face value.
    if item.type == IncomeType.rsu_vesting and item.currency_code != base_currency:
        return ExchangeRateService.apply_rate(
            item.amount_cents, rate_for(item.currency_code)
        )
    return item.amount_cents


def compute_totals(
    incomes: Iterable,
    expenses: Iterable,
    investments: Iterable,
    *,
    daily_expenses_total_cents: int,
    base_currency: str,
    rate_for: Callable[[str], Decimal],
) -> MonthTotals:
    total_income = sum(
        income_in_base_cents(item, base_currency, rate_for) for item in incomes
    )
    total_expenses = sum(item.amount_cents for item in expenses)

    active = [inv for inv in investments if inv.status == InvestmentStatus.active]
    total_sips = sum(
        inv.amount_cents for inv in active if inv.type == InvestmentType.sip
    )
    total_voluntary = sum(
        inv.amount_cents for inv in active if inv.type == InvestmentType.voluntary
    )

    remaining = (
        total_income
        - total_expenses
        - total_sips
        - total_voluntary
        - daily_expenses_total_cents
    )
    return MonthTotals(
        total_income_cents=total_income,
        total_expenses_cents=total_expenses,
        total_sips_cents=total_sips,
        total_voluntary_investments_cents=total_voluntary,
        daily_expenses_total_cents=daily_expenses_total_cents,
        remaining_cents=remaining,
    )


@dataclass(frozen=True)
class EffectiveData:
    month: str
    source: str  # "ledger" | "templates"
    incomes: Sequence
    expenses: Sequence
    investments: Sequence
    ledger: Optional[MonthlyLedger] = None


class TotalsService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _rate_lookup(self) -> Callable[[str], Decimal]:
        fx = ExchangeRateService(self.session, self.user_id)
        cache: dict[str, Decimal] = {}

        def rate_for(code: str) -> Decimal:
            if code not in cache:
                cache[code] = fx.rate_for(code)
            return cache[code]

        return rate_for

    def totals(
        self,
        incomes: Iterable,
        expenses: Iterable,
        investments: Iterable,
        *,
        daily_expenses_total_cents: int,
    ) -> MonthTotals:
        """Totals with exchange rates read live from the user's settings."""
        return compute_totals(
            incomes,
            expenses,
            investments,
            daily_expenses_total_cents=daily_expenses_total_cents,
            base_currency=UserSettingsService(self.session, self.user_id).base_currency(),
            rate_for=self._rate_lookup(),
        )

    def totals_for_ledger(
        self, ledger: MonthlyLedger, daily_expenses_total_cents: int
    ) -> MonthTotals:
        return self.totals(
            ledger.incomes,
            ledger.expenses,
            ledger.investments,
            daily_expenses_total_cents=daily_expenses_total_cents,
        )

    def effective_data(self, month: str) -> EffectiveData:
        """Ledger items once a month is forked, live templates before that."""
        period = parse_month(month)
        ledger = LedgerService(self.session, self.user_id).find(period.slug)
        if ledger is not None:
            return EffectiveData(
                month=period.slug,
                source="ledger",
                incomes=list(ledger.incomes),
                expenses=list(ledger.expenses),
                investments=list(ledger.investments),
                ledger=ledger,
            )
        templates = TemplateService(self.session, self.user_id)
        return EffectiveData(
            month=period.slug,
            source="templates",
            incomes=templates.list_active(TemplateKind.income),
            expenses=templates.list_active(TemplateKind.expense),
            investments=templates.list_active(TemplateKind.investment),
        )

    def month_summary(
        self, month: str, *, today: Optional[date] = None
    ) -> tuple[EffectiveData, MonthTotals]:
        data = self.effective_data(month)
        ledgers = LedgerService(self.session, self.user_id)
        daily = ledgers.daily_total(parse_month(data.month), today=today)
        totals = self.totals(
            data.incomes,
            data.expenses,
            data.investments,
            daily_expenses_total_cents=daily,
        )
        return data, totals
