from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Union

from pydantic import BaseModel
from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config import get_settings
from fx_rates import ExchangeRateService
from models import (
    DailyExpense,
    DailyExpenseCategory,
    Expense,
    Income,
    Investment,
    InvestmentStatus,
    TemplateKind,
    UserSettings,
)
from periods import local_today
from schemas import (
    DailyExpenseIn,
    ExpenseTemplateIn,
    ExpenseTemplatePatch,
    IncomeTemplateIn,
    IncomeTemplatePatch,
    InvestmentIn,
    InvestmentPatch,
    PatchIn,
    SettingsIn,
)

logger = logging.getLogger(__name__)

Template = Union[Income, Expense, Investment]

TEMPLATE_MODELS: dict[TemplateKind, type] = {
    TemplateKind.income: Income,
    TemplateKind.expense: Expense,
    TemplateKind.investment: Investment,
}

TEMPLATE_SCHEMAS: dict[TemplateKind, tuple[type[BaseModel], type[PatchIn]]] = {
    TemplateKind.income: (IncomeTemplateIn, IncomeTemplatePatch),
    TemplateKind.expense: (ExpenseTemplateIn, ExpenseTemplatePatch),
    TemplateKind.investment: (InvestmentIn, InvestmentPatch),
}


def get_current_user_id() -> str:
    return get_settings().default_user_id


class UserSettingsService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _row(self) -> Optional[UserSettings]:
        return self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )

    def base_currency(self) -> str:
        row = self._row()
        if row:
            return row.base_currency
        return get_settings().base_currency

    def get(self) -> dict[str, object]:
        settings = get_settings()
        rates = ExchangeRateService(self.session, self.user_id).rates()
        return {
            "base_currency": self.base_currency(),
            "exchange_rates": {code: str(rate) for code, rate in rates.items()},
            "default_exchange_rate": str(settings.default_exchange_rate),
        }

    def update(self, data: SettingsIn) -> dict[str, object]:
        if data.base_currency:
            row = self._row()
            if row:
                row.base_currency = data.base_currency
            else:
                self.session.add(
                    UserSettings(user_id=self.user_id, base_currency=data.base_currency)
                )
        fx = ExchangeRateService(self.session, self.user_id)
        for code, rate in data.exchange_rates.items():
            fx.set_rate(code, rate)
        self.session.commit()
        return self.get()


class TemplateService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    @staticmethod
    def _active_clause(kind: TemplateKind):
        if kind == TemplateKind.investment:
            return Investment.status == InvestmentStatus.active
        return TEMPLATE_MODELS[kind].is_active.is_(True)

    def list_active(self, kind: TemplateKind) -> list[Template]:
        model = TEMPLATE_MODELS[kind]
        stmt = (
            select(model)
            .where(model.user_id == self.user_id, self._active_clause(kind))
            .order_by(model.id)
        )
        return self.session.scalars(stmt).all()

    def list_all(self, kind: TemplateKind) -> list[Template]:
        model = TEMPLATE_MODELS[kind]
        stmt = select(model).where(model.user_id == self.user_id).order_by(model.id)
        return self.session.scalars(stmt).all()

    def get(self, kind: TemplateKind, template_id: int) -> Template:
        template = self.find(kind, template_id)
        if template is None:
            raise ValueError("Template not found")
        return template

    def find(self, kind: TemplateKind, template_id: int) -> Optional[Template]:
        template = self.session.get(TEMPLATE_MODELS[kind], template_id)
        if not template or template.user_id != self.user_id:
            return None
        return template

    def create(self, kind: TemplateKind, data: BaseModel) -> Template:
        values = data.model_dump()
        if not values.get("currency_code"):
            values["currency_code"] = UserSettingsService(
                self.session, self.user_id
            ).base_currency()
        template = TEMPLATE_MODELS[kind](user_id=self.user_id, **values)
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

    def update(self, kind: TemplateKind, template_id: int, patch: PatchIn) -> Template:
        template = self.get(kind, template_id)
        for field, value in patch.changes().items():
            setattr(template, field, value)
        self.session.commit()
        self.session.refresh(template)
        return template

    def delete(self, kind: TemplateKind, template_id: int, *, hard: bool = False) -> None:
        template = self.get(kind, template_id)
        if hard:
            self.session.delete(template)
        elif kind == TemplateKind.investment:
            template.status = InvestmentStatus.stopped
        else:
            template.is_active = False
        self.session.commit()
        logger.info(
            f"template_removed: kind={kind.value} id={template_id} hard={hard}"
        )


def normalize_daily_category(raw: Optional[str]) -> DailyExpenseCategory:
    text = (raw or "").strip().lower()
    if not text:
        return DailyExpenseCategory.other
    try:
        return DailyExpenseCategory(text)
    except ValueError:
        pass

    best_distance: Optional[int] = None
    best: list[DailyExpenseCategory] = []
    for category in DailyExpenseCategory:
        dist = int(Levenshtein.distance(text, category.value))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)

    if best_distance is not None and best_distance <= 1 and len(best) == 1:
        return best[0]
    return DailyExpenseCategory.other


class DailyExpenseService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: DailyExpenseIn) -> DailyExpense:
        currency_code = data.currency_code or UserSettingsService(
            self.session, self.user_id
        ).base_currency()
        record = DailyExpense(
            user_id=self.user_id,
            date=data.date or local_today(),
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            vendor=data.vendor.strip(),
            category=normalize_daily_category(data.category),
            currency_code=currency_code,
            is_active=True,
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def delete(self, expense_id: int) -> None:
        record = self.session.get(DailyExpense, expense_id)
        if not record or record.user_id != self.user_id or not record.is_active:
            raise ValueError("Daily expense not found")
        record.is_active = False
        self.session.commit()

    def list_in_range(self, start: date, end: date) -> list[DailyExpense]:
        stmt = (
            select(DailyExpense)
            .where(
                DailyExpense.user_id == self.user_id,
                DailyExpense.is_active.is_(True),
                DailyExpense.date.between(start, end),
            )
            .order_by(DailyExpense.date.desc(), DailyExpense.id.desc())
        )
        return self.session.scalars(stmt).all()

    def sum_in_range(self, start: date, end: date) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(DailyExpense.amount_cents), 0)).where(
                DailyExpense.user_id == self.user_id,
                DailyExpense.is_active.is_(True),
                DailyExpense.date.between(start, end),
            )
        ).scalar_one()
        return int(total or 0)
