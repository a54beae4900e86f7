from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from fx_rates import ExchangeRateService
from ledger import LedgerService
from models import (
    ExchangeRate,
    IncomeType,
    InvestmentStatus,
    InvestmentType,
    MonthlyLedger,
    TemplateKind,
)
from schemas import IncomeTemplateIn, InvestmentIn, SettingsIn
from services import TemplateService, UserSettingsService
from totals import TotalsService, compute_totals


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def seed_incomes(session: Session) -> None:
    templates = TemplateService(session, "u1")
    templates.create(
        TemplateKind.income, IncomeTemplateIn(name="Salary", amount_cents=10_000_000)
    )
    templates.create(
        TemplateKind.income,
        IncomeTemplateIn(
            name="RSU vest",
            amount_cents=50_000,
            currency_code="usd",
            type=IncomeType.rsu_vesting,
            units=2.5,
            unit_price_cents=20_000,
        ),
    )


def test_rsu_income_is_converted_at_the_current_rate() -> None:
    with make_session() as session:
        seed_incomes(session)
        UserSettingsService(session, "u1").update(
            SettingsIn(exchange_rates={"USD": Decimal("89")})
        )
        ledgers = LedgerService(session, "u1")
        ledger = ledgers.get_or_create("2025-04").ledger
        assert ledger.incomes[1].currency_code == "USD"

        totals_svc = TotalsService(session, "u1")
        totals = totals_svc.totals_for_ledger(ledger, 0)
        assert totals.total_income_cents == 14_450_000

        UserSettingsService(session, "u1").update(
            SettingsIn(exchange_rates={"usd": Decimal("90")})
        )
        totals = totals_svc.totals_for_ledger(ledger, 0)
        assert totals.total_income_cents == 14_500_000


def test_missing_rate_falls_back_to_default() -> None:
    with make_session() as session:
        seed_incomes(session)
        ledger = LedgerService(session, "u1").get_or_create("2025-04").ledger
        totals = TotalsService(session, "u1").totals_for_ledger(ledger, 0)
        assert totals.total_income_cents == 10_000_000 + 50_000 * 89


def test_only_vested_equity_is_converted() -> None:
    incomes = [
        SimpleNamespace(type=IncomeType.freelance, amount_cents=1_000, currency_code="USD"),
        SimpleNamespace(type=IncomeType.rsu_vesting, amount_cents=1_000, currency_code="INR"),
        SimpleNamespace(type=IncomeType.rsu_vesting, amount_cents=333, currency_code="EUR"),
    ]
    totals = compute_totals(
        incomes,
        [],
        [],
        daily_expenses_total_cents=0,
        base_currency="INR",
        rate_for=lambda code: Decimal("1.5"),
    )
    # 333 * 1.5 = 499.5 rounds half up.
    assert totals.total_income_cents == 1_000 + 1_000 + 500


def test_only_active_investments_count_and_remaining_can_go_negative() -> None:
    investments = [
        SimpleNamespace(type=InvestmentType.sip, amount_cents=1_000_000, status=InvestmentStatus.active),
        SimpleNamespace(type=InvestmentType.sip, amount_cents=400_000, status=InvestmentStatus.paused),
        SimpleNamespace(type=InvestmentType.voluntary, amount_cents=300_000, status=InvestmentStatus.active),
        SimpleNamespace(type=InvestmentType.voluntary, amount_cents=900_000, status=InvestmentStatus.stopped),
    ]
    incomes = [SimpleNamespace(type=IncomeType.salary, amount_cents=1_500_000, currency_code="INR")]
    expenses = [SimpleNamespace(amount_cents=600_000), SimpleNamespace(amount_cents=100_000)]

    totals = compute_totals(
        incomes,
        expenses,
        investments,
        daily_expenses_total_cents=250_000,
        base_currency="INR",
        rate_for=lambda code: Decimal("89"),
    )
    assert totals.total_income_cents == 1_500_000
    assert totals.total_expenses_cents == 700_000
    assert totals.total_sips_cents == 1_000_000
    assert totals.total_voluntary_investments_cents == 300_000
    assert totals.daily_expenses_total_cents == 250_000
    assert totals.remaining_cents == -750_000
    assert totals.as_dict()["remaining_cents"] == -750_000


def test_effective_data_reads_templates_until_a_ledger_exists() -> None:
    with make_session() as session:
        seed_incomes(session)
        TemplateService(session, "u1").create(
            TemplateKind.investment,
            InvestmentIn(name="Index fund", type=InvestmentType.sip, amount_cents=1_000_000),
        )
        totals_svc = TotalsService(session, "u1")

        data, totals = totals_svc.month_summary("2025-04", today=date(2025, 4, 10))
        assert data.source == "templates"
        assert data.ledger is None
        assert totals.total_sips_cents == 1_000_000
        assert session.scalar(select(func.count()).select_from(MonthlyLedger)) == 0

        ledgers = LedgerService(session, "u1")
        fund = ledgers.get_or_create("2025-04").ledger.investments[0]
        ledgers.update_item("2025-04", fund.id, "investments", {"status": "stopped"})

        data, totals = totals_svc.month_summary("2025-04", today=date(2025, 4, 10))
        assert data.source == "ledger"
        assert data.ledger is not None
        assert totals.total_sips_cents == 0
        assert totals.remaining_cents == totals.total_income_cents

        # Other months still follow the templates.
        data, totals = totals_svc.month_summary("2025-05", today=date(2025, 4, 10))
        assert data.source == "templates"
        assert totals.total_sips_cents == 1_000_000


def test_rates_round_trip_through_micros() -> None:
    assert ExchangeRateService.rate_to_micros(Decimal("83.125")) == 83_125_000
    assert ExchangeRateService.micros_to_rate(90_000_000) == Decimal("90")
    assert ExchangeRateService.apply_rate(50_000, Decimal("89")) == 4_450_000


def test_rates_that_round_to_zero_micros_are_refused() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rates = ExchangeRateService(session, "u1")
        with pytest.raises(ValueError, match="0.000001"):
            rates.set_rate("USD", Decimal("0.0000004"))
        assert session.scalar(select(func.count()).select_from(ExchangeRate)) == 0

        smallest = rates.set_rate("usd", Decimal("0.0000005"))
        assert smallest.rate_micros == 1
