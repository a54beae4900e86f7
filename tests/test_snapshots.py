from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from ledger import LedgerService
from models import ExpenseCategory, TemplateKind
from reports import DashboardService, SnapshotService, known_user_ids, snapshot_all_users
from scheduler import SchedulerManager
from schemas import DailyExpenseIn, ExpenseTemplateIn, IncomeTemplateIn
from services import DailyExpenseService, TemplateService


def seed(session: Session, user_id: str) -> None:
    templates = TemplateService(session, user_id)
    templates.create(
        TemplateKind.income, IncomeTemplateIn(name="Salary", amount_cents=1_000_000)
    )
    templates.create(
        TemplateKind.expense,
        ExpenseTemplateIn(
            name="Rent", amount_cents=400_000, category=ExpenseCategory.housing
        ),
    )


def test_snapshot_is_upserted_per_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session, "u1")
        snapshots = SnapshotService(session, "u1")

        first = snapshots.record("2025-03", today=date(2025, 4, 10))
        assert first.source == "templates"
        assert first.remaining_cents == 600_000

        LedgerService(session, "u1").get_or_create("2025-03")
        LedgerService(session, "u1").add_item(
            "2025-03", "expenses", {"name": "Repairs", "amount_cents": 50_000}
        )
        DailyExpenseService(session, "u1").create(
            DailyExpenseIn(amount_cents=10_000, description="Lunch", date=date(2025, 3, 9))
        )
        second = snapshots.record("2025-03", today=date(2025, 4, 10))
        assert second.id == first.id
        assert second.source == "ledger"
        assert second.total_expenses_cents == 450_000
        assert second.daily_expenses_total_cents == 10_000
        assert second.remaining_cents == 540_000

        snapshots.record("2025-04", today=date(2025, 4, 10))
        assert [s.month for s in snapshots.list()] == ["2025-04", "2025-03"]
        assert [s.month for s in snapshots.list(limit=1)] == ["2025-04"]


def test_snapshot_all_users_covers_every_known_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session, "alice")
        seed(session, "bob")
        LedgerService(session, "carol").get_or_create("2025-01")

        assert known_user_ids(session) == ["alice", "bob", "carol"]
        assert snapshot_all_users(session, "2025-02") == 3
        assert [s.month for s in SnapshotService(session, "carol").list()] == ["2025-02"]


def test_users_with_only_daily_expenses_are_snapshotted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session, "alice")
        DailyExpenseService(session, "dana").create(
            DailyExpenseIn(amount_cents=12_000, description="Coffee", date=date(2025, 2, 4))
        )

        assert known_user_ids(session) == ["alice", "dana"]
        assert snapshot_all_users(session, "2025-02") == 2
        [snapshot] = SnapshotService(session, "dana").list()
        assert snapshot.month == "2025-02"
        assert snapshot.daily_expenses_total_cents == 12_000


def test_dashboard_reports_current_month_without_forking() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session, "u1")
        daily = DailyExpenseService(session, "u1")
        daily.create(DailyExpenseIn(amount_cents=3_000, description="Coffee", date=date(2025, 4, 10)))
        daily.create(DailyExpenseIn(amount_cents=7_000, description="Lunch", date=date(2025, 4, 2)))

        summary = DashboardService(session, "u1").summary(today=date(2025, 4, 10))
        assert summary["month"] == "2025-04"
        assert summary["source"] == "templates"
        assert summary["summary"]["daily_expenses_today_cents"] == 3_000
        assert summary["summary"]["daily_expenses_this_month_cents"] == 10_000
        assert summary["summary"]["remaining_cents"] == 590_000
        assert [row["name"] for row in summary["incomes"]] == ["Salary"]
        assert "user_id" not in summary["incomes"][0]
        assert LedgerService(session, "u1").find("2025-04") is None


def test_scheduler_registers_snapshot_jobs() -> None:
    manager = SchedulerManager()
    manager.start()
    try:
        assert manager.scheduler.get_job("snapshot_daily") is not None
        assert manager.scheduler.get_job("snapshot_month_close") is not None
    finally:
        manager.stop()
    assert not manager.scheduler.running
