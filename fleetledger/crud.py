# fleetledger/crud.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional

import bcrypt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetledger import models
from fleetledger.errors import NotFoundError, StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)


def _read_failed(what: str, exc: Exception) -> StorageReadError:
    logger.exception("Failed to load %s", what)
    return StorageReadError(f"Could not load {what}", {"cause": str(exc)})


def _write_failed(db: Session, what: str, exc: Exception) -> StorageWriteError:
    db.rollback()
    logger.exception("Failed to save %s", what)
    return StorageWriteError(f"Could not save {what}", {"cause": str(exc)})


# ---------- PASSWORDS ----------
def bcrypt_hash(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def bcrypt_verify(plain: str, hashed: Optional[str]) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), (hashed or "").encode("utf-8"))
    except ValueError:
        return False


# ---------- ACCOUNT ----------
def get_account(db: Session, account_id: int) -> models.Account:
    try:
        obj = db.get(models.Account, account_id)
    except SQLAlchemyError as exc:
        raise _read_failed("account", exc) from exc
    if not obj:
        raise NotFoundError("Account not found", {"account_id": account_id})
    return obj


def get_account_by_email(db: Session, email: str) -> Optional[models.Account]:
    try:
        return db.query(models.Account).filter(models.Account.email == email.strip().lower()).first()
    except SQLAlchemyError as exc:
        raise _read_failed("account", exc) from exc


def create_account(db: Session, email: str, password: str, created_at: Optional[datetime] = None) -> models.Account:
    obj = models.Account(
        email=email.strip().lower(),
        password_hash=bcrypt_hash(password),
        created_at=created_at or datetime.utcnow(),
    )
    try:
        db.add(obj); db.commit(); db.refresh(obj)
    except SQLAlchemyError as exc:
        raise _write_failed(db, "account", exc) from exc
    return obj


def update_account(db: Session, account: models.Account, **fields) -> models.Account:
    for k, v in fields.items():
        setattr(account, k, v)
    try:
        db.commit(); db.refresh(account)
    except SQLAlchemyError as exc:
        raise _write_failed(db, "account", exc) from exc
    return account


def verify_account(db: Session, email: str, password: str) -> Optional[models.Account]:
    acct = get_account_by_email(db, email)
    if not acct:
        return None
    if bcrypt_verify(password, acct.password_hash):
        return acct
    return None


# ---------- VEHICLE ----------
def list_vehicles(db: Session, account_id: int, active_only: bool = False) -> list[models.Vehicle]:
    q = db.query(models.Vehicle).filter(models.Vehicle.account_id == account_id)
    if active_only:
        q = q.filter(models.Vehicle.is_active.is_(True))
    try:
        # id order is the stable order other callers rely on
        return q.order_by(models.Vehicle.id.asc()).all()
    except SQLAlchemyError as exc:
        raise _read_failed("vehicles", exc) from exc


def list_active_vehicles(db: Session, account_id: int) -> list[models.Vehicle]:
    return list_vehicles(db, account_id, active_only=True)


def get_vehicle(db: Session, account_id: int, vehicle_id: int) -> models.Vehicle:
    try:
        obj = db.get(models.Vehicle, vehicle_id)
    except SQLAlchemyError as exc:
        raise _read_failed("vehicle", exc) from exc
    if not obj or obj.account_id != account_id:
        raise NotFoundError("Vehicle not found", {"vehicle_id": vehicle_id})
    return obj


def create_vehicle(db: Session, account_id: int, data: dict) -> models.Vehicle:
    obj = models.Vehicle(account_id=account_id, **data)
    try:
        db.add(obj); db.commit(); db.refresh(obj)
    except SQLAlchemyError as exc:
        raise _write_failed(db, "vehicle", exc) from exc
    return obj


def update_vehicle(db: Session, vehicle: models.Vehicle, data: dict) -> models.Vehicle:
    for k, v in data.items():
        setattr(vehicle, k, v)
    try:
        db.commit(); db.refresh(vehicle)
    except SQLAlchemyError as exc:
        raise _write_failed(db, "vehicle", exc) from exc
    return vehicle


# ---------- LEDGER ----------
def covered_dates(db: Session, account_id: int, start: date, end: date) -> set[date]:
    """Distinct entry dates already recorded for the account in [start, end]."""
    try:
        rows = (
            db.query(models.LedgerEntry.entry_date)
            .filter(
                models.LedgerEntry.account_id == account_id,
                models.LedgerEntry.entry_date >= start,
                models.LedgerEntry.entry_date <= end,
            )
            .distinct()
            .all()
        )
    except SQLAlchemyError as exc:
        raise _read_failed("ledger dates", exc) from exc
    return {r[0] for r in rows}


def insert_entries(db: Session, rows: Iterable[dict]) -> list[models.LedgerEntry]:
    """Insert all rows in one transaction; nothing is kept if any row fails."""
    objs = [models.LedgerEntry(**row) for row in rows]
    try:
        db.add_all(objs)
        db.commit()
    except SQLAlchemyError as exc:
        raise _write_failed(db, "ledger entries", exc) from exc
    return objs


def get_entry(db: Session, account_id: int, entry_id: int) -> models.LedgerEntry:
    try:
        obj = db.get(models.LedgerEntry, entry_id)
    except SQLAlchemyError as exc:
        raise _read_failed("ledger entry", exc) from exc
    if not obj or obj.account_id != account_id:
        raise NotFoundError("Entry not found", {"entry_id": entry_id})
    return obj


def update_entry(db: Session, entry: models.LedgerEntry, data: dict) -> models.LedgerEntry:
    for k, v in data.items():
        setattr(entry, k, v)
    try:
        db.commit(); db.refresh(entry)
    except SQLAlchemyError as exc:
        raise _write_failed(db, "ledger entry", exc) from exc
    return entry


def delete_entry(db: Session, entry: models.LedgerEntry) -> None:
    try:
        db.delete(entry); db.commit()
    except SQLAlchemyError as exc:
        raise _write_failed(db, "ledger entry", exc) from exc


def list_entries(
    db: Session,
    account_id: int,
    since: Optional[date] = None,
    until: Optional[date] = None,
) -> list[models.LedgerEntry]:
    q = db.query(models.LedgerEntry).filter(models.LedgerEntry.account_id == account_id)
    if since is not None:
        q = q.filter(models.LedgerEntry.entry_date >= since)
    if until is not None:
        q = q.filter(models.LedgerEntry.entry_date <= until)
    try:
        return q.order_by(models.LedgerEntry.entry_date.desc(), models.LedgerEntry.id.desc()).all()
    except SQLAlchemyError as exc:
        raise _read_failed("ledger entries", exc) from exc
