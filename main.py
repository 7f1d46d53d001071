# main.py (project root)

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from fleetledger.config import settings
from fleetledger.db import Base, engine, get_db
from fleetledger import crud, ledger, models, schemas
from fleetledger.backfill import BackfillMode, DistributedAllocation, PerDayRow
from fleetledger.entitlements import Entitlement, fail_closed, resolve_entitlement
from fleetledger.errors import (
    LedgerError,
    NotFoundError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
)
from fleetledger.financials import DiscretionaryExpenses
from fleetledger.reconciliation import run_reconciliation, submit_backfill

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fleetledger")

# ---------------- App ----------------

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Fleet Ledger", version="1.0.0")
app.add_middleware(SessionMiddleware, secret_key=settings.session_key)


# ---------------- Errors ----------------

_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    StorageReadError: 503,
    StorageWriteError: 503,
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status = _STATUS.get(type(exc), 400)
    body = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.context.get("errors", [exc.message])
    elif status == 503:
        # storage detail stays in the log
        body["message"] = "Something went wrong talking to the database. Please try again."
    return JSONResponse(status_code=status, content=body)


# ---------------- Helpers ----------------

def get_now() -> datetime:
    return datetime.utcnow()


def current_account(request: Request, db: Session = Depends(get_db)) -> models.Account:
    uid = request.session.get("account_id")
    if not uid:
        raise HTTPException(status_code=401, detail="Not logged in")
    try:
        return crud.get_account(db, uid)
    except NotFoundError:
        request.session.pop("account_id", None)
        raise HTTPException(status_code=401, detail="Not logged in")


def current_entitlement(
    account: models.Account = Depends(current_account),
    now: datetime = Depends(get_now),
) -> Entitlement:
    return resolve_entitlement(account, now)


def _entitlement_out(ent: Entitlement) -> schemas.EntitlementOut:
    return schemas.EntitlementOut(
        plan_kind=ent.plan_kind.value,
        limits=schemas.Limits(**ent.limits.as_dict()),
        is_administrative=ent.is_administrative,
        trial_days_remaining=ent.trial_days_remaining,
        subscription_end_date=ent.subscription_end_date,
    )


def _expenses(e: schemas.Expenses) -> DiscretionaryExpenses:
    return DiscretionaryExpenses(toll=e.toll, repair=e.repair, food=e.food, misc=e.misc)


# ---------------- Health ----------------

@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


# ---------------- Auth ----------------

@app.post("/setup", response_model=schemas.Account)
def setup(payload: schemas.Credentials, request: Request, db: Session = Depends(get_db)):
    if crud.get_account_by_email(db, payload.email):
        raise ValidationError("An account with that email already exists")
    acct = crud.create_account(db, payload.email, payload.password)
    request.session["account_id"] = acct.id
    return acct


@app.post("/login", response_model=schemas.Account)
def login(payload: schemas.Credentials, request: Request, db: Session = Depends(get_db)):
    acct = crud.verify_account(db, payload.email, payload.password)
    if not acct:
        raise HTTPException(status_code=400, detail="Invalid credentials.")
    request.session["account_id"] = acct.id
    return acct


@app.get("/logout")
def logout(request: Request):
    request.session.pop("account_id", None)
    return {"ok": True}


# ---------------- Entitlement ----------------

@app.get("/entitlement", response_model=schemas.EntitlementOut)
def entitlement(
    request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    uid = request.session.get("account_id")
    if not uid:
        raise HTTPException(status_code=401, detail="Not logged in")
    try:
        account = crud.get_account(db, uid)
    except (StorageReadError, NotFoundError):
        logger.warning("Could not load account %s; falling back to expired plan", uid)
        return _entitlement_out(fail_closed())
    return _entitlement_out(resolve_entitlement(account, now))


# ---------------- Vehicles ----------------

@app.get("/vehicles", response_model=List[schemas.Vehicle])
def vehicles_list(account: models.Account = Depends(current_account), db: Session = Depends(get_db)):
    return crud.list_vehicles(db, account.id)


@app.post("/vehicles", response_model=schemas.Vehicle, status_code=201)
def vehicles_create(
    payload: schemas.VehicleCreate,
    account: models.Account = Depends(current_account),
    ent: Entitlement = Depends(current_entitlement),
    db: Session = Depends(get_db),
):
    return ledger.create_vehicle(db, account.id, ent, payload.model_dump())


@app.post("/vehicles/{vehicle_id}/deactivate", response_model=schemas.Vehicle)
def vehicles_deactivate(
    vehicle_id: int,
    account: models.Account = Depends(current_account),
    db: Session = Depends(get_db),
):
    return ledger.deactivate_vehicle(db, account.id, vehicle_id)


# ---------------- Entries ----------------

@app.get("/entries", response_model=List[schemas.Entry])
def entries_list(
    account: models.Account = Depends(current_account),
    ent: Entitlement = Depends(current_entitlement),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    return ledger.list_history(db, account.id, ent, now.date())


@app.post("/entries", response_model=schemas.Entry, status_code=201)
def entries_create(
    payload: schemas.EntryCreate,
    account: models.Account = Depends(current_account),
    ent: Entitlement = Depends(current_entitlement),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    return ledger.create_manual_entry(
        db,
        account.id,
        ent,
        now.date(),
        vehicle_id=payload.vehicle_id,
        entry_date=payload.entry_date,
        distance=payload.distance,
        fuel_price=payload.fuel_price,
        expenses=_expenses(payload.expenses),
        notes=payload.notes,
    )


@app.put("/entries/{entry_id}", response_model=schemas.Entry)
def entries_update(
    entry_id: int,
    payload: schemas.EntryUpdate,
    account: models.Account = Depends(current_account),
    ent: Entitlement = Depends(current_entitlement),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    return ledger.update_entry(
        db,
        account.id,
        ent,
        now.date(),
        entry_id,
        distance=payload.distance,
        fuel_price=payload.fuel_price,
        expenses=_expenses(payload.expenses),
        notes=payload.notes,
        vehicle_id=payload.vehicle_id,
    )


@app.delete("/entries/{entry_id}")
def entries_delete(
    entry_id: int,
    account: models.Account = Depends(current_account),
    db: Session = Depends(get_db),
):
    ledger.delete_entry(db, account.id, entry_id)
    return {"ok": True}


# ---------------- Reconciliation ----------------

@app.get("/reconcile", response_model=schemas.ReconcileOut)
def reconcile(
    account: models.Account = Depends(current_account),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    rec = run_reconciliation(db, account.id, now=now)
    c = rec.controller
    return schemas.ReconcileOut(
        state=c.state.value,
        mode=c.mode.value,
        correctable=c.correctable,
        settled_count=c.settled_count,
        settlement_failed=bool(rec.settlement and rec.settlement.settlement_failed),
        message=c.message,
    )


@app.post("/backfill", response_model=schemas.BackfillOut)
def backfill(
    payload: schemas.BackfillIn,
    account: models.Account = Depends(current_account),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    mode = BackfillMode(payload.mode)
    if mode is BackfillMode.PER_DAY:
        inputs = [PerDayRow(r.entry_date, r.vehicle_id, r.distance, r.fuel_price) for r in payload.rows]
    else:
        inputs = [DistributedAllocation(a.vehicle_id, a.total_distance, a.fuel_price) for a in payload.allocations]

    rec = submit_backfill(db, account.id, mode, inputs, now=now)
    c = rec.controller
    out = schemas.BackfillOut(state=c.state.value, saved_count=c.saved_count, message=c.message, error=c.error)
    status = 503 if c.error else 200
    return JSONResponse(status_code=status, content=out.model_dump())


# ---------------- Summary & Settings ----------------

@app.get("/summary")
def summary(
    account: models.Account = Depends(current_account),
    ent: Entitlement = Depends(current_entitlement),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    out = ledger.dashboard_summary(db, account.id, ent, now.date())
    out["currency_symbol"] = account.currency_symbol
    return out


@app.put("/settings/entry-mode", response_model=schemas.Account)
def set_entry_mode(
    payload: schemas.EntryModeIn,
    account: models.Account = Depends(current_account),
    db: Session = Depends(get_db),
):
    return crud.update_account(db, account, entry_mode=payload.entry_mode)
