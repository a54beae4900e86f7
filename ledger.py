"""Monthly ledgers.

A ledger is forked lazily from the user's active templates the first time a
month is read, then edited independently. Items keep ``source_id`` as a plain
provenance value; nothing follows it automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from config import get_settings
from models import (
    LedgerExpenseItem,
    LedgerIncomeItem,
    LedgerInvestmentItem,
    LedgerSection,
    LedgerStatus,
    MonthlyLedger,
    TemplateKind,
)
from periods import Period, month_to_date, resolve_month
from schemas import (
    ExpenseIn,
    ExpensePatch,
    IncomeIn,
    IncomePatch,
    InvestmentIn,
    InvestmentPatch,
    PatchIn,
)
from services import (
    DailyExpenseService,
    Template,
    TemplateService,
    UserSettingsService,
    get_current_user_id,
)

logger = logging.getLogger(__name__)


class LedgerValidationError(ValueError):
    pass


class LedgerNotFound(ValueError):
    pass


class LedgerItemNotFound(LedgerNotFound):
    pass


class LedgerFinalized(ValueError):
    pass


@dataclass(frozen=True)
class SectionSpec:
    section: LedgerSection
    kind: TemplateKind
    item_model: type
    create_schema: type[BaseModel]
    patch_schema: type[PatchIn]
    copied_fields: tuple[str, ...]


SECTIONS: dict[LedgerSection, SectionSpec] = {
    LedgerSection.incomes: SectionSpec(
        section=LedgerSection.incomes,
        kind=TemplateKind.income,
        item_model=LedgerIncomeItem,
        create_schema=IncomeIn,
        patch_schema=IncomePatch,
        copied_fields=(
            "name",
            "amount_cents",
            "pre_tax_amount_cents",
            "post_tax_amount_cents",
            "tax_paid_cents",
            "currency_code",
            "type",
            "units",
            "unit_price_cents",
            "vest_period",
        ),
    ),
    LedgerSection.expenses: SectionSpec(
        section=LedgerSection.expenses,
        kind=TemplateKind.expense,
        item_model=LedgerExpenseItem,
        create_schema=ExpenseIn,
        patch_schema=ExpensePatch,
        copied_fields=(
            "name",
            "amount_cents",
            "currency_code",
            "category",
            "is_recurring",
        ),
    ),
    LedgerSection.investments: SectionSpec(
        section=LedgerSection.investments,
        kind=TemplateKind.investment,
        item_model=LedgerInvestmentItem,
        create_schema=InvestmentIn,
        patch_schema=InvestmentPatch,
        copied_fields=(
            "name",
            "type",
            "amount_cents",
            "currency_code",
            "platform",
            "category",
            "status",
        ),
    ),
}


def parse_section(value: Any) -> SectionSpec:
    try:
        return SECTIONS[LedgerSection(value)]
    except ValueError as exc:
        raise LedgerValidationError(
            "Valid section is required (incomes, expenses, investments)"
        ) from exc


def parse_month(value: Optional[str]) -> Period:
    try:
        return resolve_month(value)
    except ValueError as exc:
        raise LedgerValidationError(str(exc)) from exc


def _validate(schema: type[BaseModel], data: dict[str, Any]) -> BaseModel:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise LedgerValidationError(str(exc)) from exc


@dataclass
class LedgerView:
    ledger: MonthlyLedger
    daily_expenses_total_cents: int


class LedgerService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[str] = None,
        *,
        enforce_finalized: Optional[bool] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        if enforce_finalized is None:
            enforce_finalized = get_settings().enforce_finalized_ledgers
        self.enforce_finalized = enforce_finalized

    def _load(self, month: str) -> Optional[MonthlyLedger]:
        stmt = (
            select(MonthlyLedger)
            .options(
                selectinload(MonthlyLedger.incomes),
                selectinload(MonthlyLedger.expenses),
                selectinload(MonthlyLedger.investments),
            )
            .where(MonthlyLedger.user_id == self.user_id, MonthlyLedger.month == month)
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def _reload(self, month: str) -> MonthlyLedger:
        # Item rows change through UPDATE/DELETE statements, not the ORM collections.
        self.session.expire_all()
        return self._load(month)

    def find(self, month: str) -> Optional[MonthlyLedger]:
        """Return the forked ledger for ``month`` without forking one."""
        return self._load(parse_month(month).slug)

    def get_or_create(self, month: str, *, today: Optional[date] = None) -> LedgerView:
        period = parse_month(month)
        ledger = self._load(period.slug)
        if ledger is None:
            ledger = self._fork(period.slug)
        return LedgerView(
            ledger=ledger,
            daily_expenses_total_cents=self.daily_total(period, today=today),
        )

    def daily_total(self, period: Period, *, today: Optional[date] = None) -> int:
        window = month_to_date(period, today=today)
        return DailyExpenseService(self.session, self.user_id).sum_in_range(
            window.start, window.end
        )

    def _fork(self, month: str) -> MonthlyLedger:
        templates = TemplateService(self.session, self.user_id)
        ledger = MonthlyLedger(
            user_id=self.user_id, month=month, status=LedgerStatus.draft
        )
        for spec in SECTIONS.values():
            items = getattr(ledger, spec.section.value)
            for template in templates.list_active(spec.kind):
                values = {field: getattr(template, field) for field in spec.copied_fields}
                items.append(spec.item_model(source_id=template.id, **values))
        self.session.add(ledger)
        try:
            self.session.commit()
        except IntegrityError:
            # Another request forked this month first; its ledger is authoritative.
            self.session.rollback()
            winner = self._load(month)
            if winner is None:
                raise
            logger.info(
                f"ledger_fork_conflict: user={self.user_id} month={month} "
                f"ledger_id={winner.id}"
            )
            return winner

        logger.info(
            f"ledger_forked: user={self.user_id} month={month} ledger_id={ledger.id} "
            f"incomes={len(ledger.incomes)} expenses={len(ledger.expenses)} "
            f"investments={len(ledger.investments)}"
        )
        return self._reload(month)

    def _ledger_ref(self, month: str, action: str) -> tuple[int, LedgerStatus]:
        row = self.session.execute(
            select(MonthlyLedger.id, MonthlyLedger.status).where(
                MonthlyLedger.user_id == self.user_id, MonthlyLedger.month == month
            )
        ).first()
        if row is None:
            logger.info(
                f"ledger_not_found: action={action} user={self.user_id} month={month}"
            )
            raise LedgerNotFound("Monthly ledger not found")
        return row[0], row[1]

    def _mutable_ledger_id(self, month: str, action: str) -> int:
        ledger_id, status = self._ledger_ref(month, action)
        if self.enforce_finalized and status == LedgerStatus.finalized:
            raise LedgerFinalized(f"Monthly ledger {month} is finalized")
        return ledger_id

    def _touch(self, ledger_id: int) -> None:
        self.session.execute(
            update(MonthlyLedger)
            .where(MonthlyLedger.id == ledger_id)
            .values(updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

    def add_item(
        self, month: str, section: Any, item_data: dict[str, Any]
    ) -> MonthlyLedger:
        period = parse_month(month)
        spec = parse_section(section)
        if not item_data.get("name") or item_data.get("amount_cents") is None:
            raise LedgerValidationError("Name and amount are required")
        data = _validate(spec.create_schema, item_data)

        ledger_id = self._mutable_ledger_id(period.slug, "add_item")
        values = data.model_dump()
        if not values.get("currency_code"):
            values["currency_code"] = UserSettingsService(
                self.session, self.user_id
            ).base_currency()
        item = spec.item_model(ledger_id=ledger_id, source_id=None, **values)
        self.session.add(item)
        self._touch(ledger_id)
        self.session.commit()
        logger.info(
            f"ledger_item_added: user={self.user_id} month={period.slug} "
            f"section={spec.section.value} item_id={item.id}"
        )
        return self._reload(period.slug)

    def update_item(
        self, month: str, item_id: int, section: Any, patch: dict[str, Any]
    ) -> MonthlyLedger:
        period = parse_month(month)
        spec = parse_section(section)
        changes = _validate(spec.patch_schema, patch).changes()

        ledger_id = self._mutable_ledger_id(period.slug, "update_item")
        model = spec.item_model
        scope = (model.ledger_id == ledger_id, model.id == item_id)
        if changes:
            result = self.session.execute(
                update(model)
                .where(*scope)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            matched = result.rowcount
        else:
            matched = 1 if self.session.scalar(select(model.id).where(*scope)) else 0
        if not matched:
            self.session.rollback()
            logger.info(
                f"ledger_item_not_found: action=update_item user={self.user_id} "
                f"month={period.slug} section={spec.section.value} item_id={item_id}"
            )
            raise LedgerItemNotFound("Ledger item not found")
        if changes:
            self._touch(ledger_id)
        self.session.commit()
        return self._reload(period.slug)

    def remove_item(self, month: str, item_id: int, section: Any) -> MonthlyLedger:
        """Remove one item from one section.

        A missing ledger is an error; a missing item is a no-op that still
        returns the unchanged ledger.
        """
        period = parse_month(month)
        spec = parse_section(section)

        ledger_id = self._mutable_ledger_id(period.slug, "remove_item")
        model = spec.item_model
        result = self.session.execute(
            delete(model)
            .where(model.ledger_id == ledger_id, model.id == item_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            self._touch(ledger_id)
        else:
            logger.debug(
                f"ledger_item_absent: action=remove_item user={self.user_id} "
                f"month={period.slug} section={spec.section.value} item_id={item_id}"
            )
        self.session.commit()
        return self._reload(period.slug)

    def set_status(
        self, month: str, status: LedgerStatus, *, notes: Optional[str] = None
    ) -> MonthlyLedger:
        period = parse_month(month)
        ledger = self._load(period.slug)
        if ledger is None:
            logger.info(
                f"ledger_not_found: action=set_status user={self.user_id} "
                f"month={period.slug}"
            )
            raise LedgerNotFound("Monthly ledger not found")
        ledger.status = status
        if notes is not None:
            ledger.notes = notes
        self.session.commit()
        logger.info(
            f"ledger_status: user={self.user_id} month={period.slug} status={status.value}"
        )
        return self._reload(period.slug)

    def source_of(self, month: str, section: Any, item_id: int) -> Optional[Template]:
        """Resolve an item's provenance to its template, if it still exists."""
        period = parse_month(month)
        spec = parse_section(section)
        ledger_id, _status = self._ledger_ref(period.slug, "source_of")
        model = spec.item_model
        item = self.session.scalar(
            select(model).where(model.ledger_id == ledger_id, model.id == item_id)
        )
        if item is None:
            raise LedgerItemNotFound("Ledger item not found")
        if item.source_id is None:
            return None
        return TemplateService(self.session, self.user_id).find(spec.kind, item.source_id)
