from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, union
from sqlalchemy.orm import Session

from models import (
    DailyExpense,
    Expense,
    Income,
    Investment,
    MonthlyLedger,
    MonthlySnapshot,
    UserSettings,
)
from periods import local_today, month_token, resolve_month
from services import DailyExpenseService, get_current_user_id
from totals import TotalsService

logger = logging.getLogger(__name__)

_HIDDEN_COLUMNS = {"user_id", "ledger_id", "created_at", "updated_at"}


def row_to_dict(row) -> dict[str, object]:
    return {
        column.key: getattr(row, column.key)
        for column in row.__table__.columns
        if column.key not in _HIDDEN_COLUMNS
    }


def known_user_ids(session: Session) -> list[str]:
    stmt = union(
        select(Income.user_id),
        select(Expense.user_id),
        select(Investment.user_id),
        select(MonthlyLedger.user_id),
        select(DailyExpense.user_id),
        select(UserSettings.user_id),
    )
    return sorted(session.scalars(stmt).all())


class DashboardService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def summary(self, *, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        month = month_token(today)
        data, totals = TotalsService(self.session, self.user_id).month_summary(
            month, today=today
        )
        daily = DailyExpenseService(self.session, self.user_id)
        summary = totals.as_dict()
        summary["daily_expenses_today_cents"] = daily.sum_in_range(today, today)
        summary["daily_expenses_this_month_cents"] = totals.daily_expenses_total_cents
        return {
            "month": month,
            "source": data.source,
            "summary": summary,
            "incomes": [row_to_dict(row) for row in data.incomes],
            "expenses": [row_to_dict(row) for row in data.expenses],
            "investments": [row_to_dict(row) for row in data.investments],
        }


class SnapshotService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def record(self, month: str, *, today: Optional[date] = None) -> MonthlySnapshot:
        period = resolve_month(month)
        data, totals = TotalsService(self.session, self.user_id).month_summary(
            period.slug, today=today
        )
        snapshot = self.session.scalar(
            select(MonthlySnapshot).where(
                MonthlySnapshot.user_id == self.user_id,
                MonthlySnapshot.month == period.slug,
            )
        )
        if not snapshot:
            snapshot = MonthlySnapshot(user_id=self.user_id, month=period.slug)
            self.session.add(snapshot)

        snapshot.source = data.source
        for field, value in totals.as_dict().items():
            setattr(snapshot, field, value)
        self.session.commit()
        self.session.refresh(snapshot)
        return snapshot

    def list(self, limit: int = 12) -> list[MonthlySnapshot]:
        stmt = (
            select(MonthlySnapshot)
            .where(MonthlySnapshot.user_id == self.user_id)
            .order_by(MonthlySnapshot.month.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


def snapshot_all_users(session: Session, month: str) -> int:
    count = 0
    for user_id in known_user_ids(session):
        SnapshotService(session, user_id).record(month)
        count += 1
    logger.info(f"snapshot_run: month={month} users={count}")
    return count
