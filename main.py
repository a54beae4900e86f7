import logging
from datetime import date
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, get_engine
from ledger import (
    LedgerFinalized,
    LedgerNotFound,
    LedgerService,
    LedgerValidationError,
)
from models import TemplateKind
from periods import local_today, month_to_date, month_token, resolve_month
from reports import DashboardService, SnapshotService, row_to_dict
from scheduler import SchedulerManager
from schemas import (
    DailyExpenseIn,
    DailyExpenseOut,
    LedgerStatusIn,
    MonthlyLedgerOut,
    MonthlyLedgerResponse,
    SettingsIn,
)
from services import (
    TEMPLATE_SCHEMAS,
    DailyExpenseService,
    TemplateService,
    UserSettingsService,
    get_current_user_id,
)
from totals import TotalsService

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Money Tracker")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    # Token verification happens upstream; the gateway forwards the caller id.
    return (x_user_id or "").strip() or get_current_user_id()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if settings.scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(OperationalError)
async def storage_unavailable(request: Request, exc: OperationalError):
    logger.error(f"storage_unavailable: path={request.url.path} error={exc.orig!r}")
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


def ledger_http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, LedgerValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, LedgerNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, LedgerFinalized):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def ledger_service(db: Session, user_id: str) -> LedgerService:
    return LedgerService(db, user_id)


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


# Monthly ledger


@app.get("/api/monthly-ledger", response_model=MonthlyLedgerResponse)
def get_monthly_ledger(
    month: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        view = ledger_service(db, user_id).get_or_create(month)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return MonthlyLedgerResponse(
        ledger=MonthlyLedgerOut.model_validate(view.ledger),
        daily_expenses_total_cents=view.daily_expenses_total_cents,
    )


@app.post(
    "/api/monthly-ledger/{month}/items",
    response_model=MonthlyLedgerOut,
    status_code=201,
)
def add_ledger_item(
    month: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    item_data = dict(payload)
    section = item_data.pop("section", None)
    try:
        ledger = ledger_service(db, user_id).add_item(month, section, item_data)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return MonthlyLedgerOut.model_validate(ledger)


@app.put("/api/monthly-ledger/{month}/items/{item_id}", response_model=MonthlyLedgerOut)
def update_ledger_item(
    month: str,
    item_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    patch = dict(payload)
    section = patch.pop("section", None)
    try:
        ledger = ledger_service(db, user_id).update_item(month, item_id, section, patch)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return MonthlyLedgerOut.model_validate(ledger)


@app.delete(
    "/api/monthly-ledger/{month}/items/{item_id}", response_model=MonthlyLedgerOut
)
def remove_ledger_item(
    month: str,
    item_id: int,
    section: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        ledger = ledger_service(db, user_id).remove_item(month, item_id, section)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return MonthlyLedgerOut.model_validate(ledger)


@app.get("/api/monthly-ledger/{month}/items/{item_id}/source")
def ledger_item_source(
    month: str,
    item_id: int,
    section: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        template = ledger_service(db, user_id).source_of(month, section, item_id)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return {"template": row_to_dict(template) if template else None}


@app.put("/api/monthly-ledger/{month}/status", response_model=MonthlyLedgerOut)
def set_ledger_status(
    month: str,
    data: LedgerStatusIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        ledger = ledger_service(db, user_id).set_status(
            month, data.status, notes=data.notes
        )
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return MonthlyLedgerOut.model_validate(ledger)


@app.get("/api/monthly-ledger/{month}/summary")
def monthly_summary(
    month: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        data, totals = TotalsService(db, user_id).month_summary(month)
    except ValueError as exc:
        raise ledger_http_error(exc) from exc
    return {"month": data.month, "source": data.source, "totals": totals.as_dict()}


# Dashboard and snapshots


@app.get("/api/dashboard")
def dashboard(db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    return DashboardService(db, user_id).summary()


@app.get("/api/snapshots")
def list_snapshots(
    limit: int = Query(default=12, ge=1, le=120),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return [row_to_dict(s) for s in SnapshotService(db, user_id).list(limit)]


@app.post("/api/snapshots", status_code=201)
def create_snapshot(
    month: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        snapshot = SnapshotService(db, user_id).record(
            month or month_token(local_today())
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return row_to_dict(snapshot)


# Templates


@app.get("/api/templates/{kind}")
def list_templates(
    kind: TemplateKind,
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    svc = TemplateService(db, user_id)
    rows = svc.list_active(kind) if active_only else svc.list_all(kind)
    return [row_to_dict(row) for row in rows]


@app.post("/api/templates/{kind}", status_code=201)
def create_template(
    kind: TemplateKind,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    create_schema, _patch_schema = TEMPLATE_SCHEMAS[kind]
    try:
        data = create_schema.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return row_to_dict(TemplateService(db, user_id).create(kind, data))


@app.put("/api/templates/{kind}/{template_id}")
def update_template(
    kind: TemplateKind,
    template_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    _create_schema, patch_schema = TEMPLATE_SCHEMAS[kind]
    try:
        patch = patch_schema.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        template = TemplateService(db, user_id).update(kind, template_id, patch)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return row_to_dict(template)


@app.delete("/api/templates/{kind}/{template_id}")
def delete_template(
    kind: TemplateKind,
    template_id: int,
    hard: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        TemplateService(db, user_id).delete(kind, template_id, hard=hard)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": template_id, "hard": hard}


# Daily expenses


@app.get("/api/daily-expenses", response_model=list[DailyExpenseOut])
def list_daily_expenses(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    if start is None or end is None:
        window = month_to_date(resolve_month(month_token(local_today())))
        start = start or window.start
        end = end or window.end
    if start > end:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    return DailyExpenseService(db, user_id).list_in_range(start, end)


@app.post("/api/daily-expenses", response_model=DailyExpenseOut, status_code=201)
def create_daily_expense(
    data: DailyExpenseIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return DailyExpenseService(db, user_id).create(data)


@app.delete("/api/daily-expenses/{expense_id}")
def delete_daily_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        DailyExpenseService(db, user_id).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": expense_id}


# Settings


@app.get("/api/settings")
def get_user_settings(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return UserSettingsService(db, user_id).get()


@app.put("/api/settings")
def update_user_settings(
    data: SettingsIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return UserSettingsService(db, user_id).update(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
