# fleetledger/ledger.py
from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from fleetledger import crud, models
from fleetledger.entitlements import Entitlement
from fleetledger.errors import ValidationError
from fleetledger.financials import DiscretionaryExpenses, derive_financials

logger = logging.getLogger(__name__)


# ---------------- Vehicles ----------------

def create_vehicle(db: Session, account_id: int, entitlement: Entitlement, data: dict) -> models.Vehicle:
    mileage = data.get("mileage_km_per_liter")
    if mileage is None or not math.isfinite(mileage) or mileage <= 0:
        raise ValidationError("Mileage must be greater than zero")
    if data.get("earning_mode", "per_distance") not in models.EARNING_MODES:
        raise ValidationError(f"Unknown earning mode {data.get('earning_mode')!r}")

    active = crud.list_active_vehicles(db, account_id)
    if len(active) >= entitlement.limits.max_vehicles and not entitlement.is_administrative:
        raise ValidationError(
            f"Your {entitlement.plan_kind.value} plan allows {entitlement.limits.max_vehicles} vehicle(s)"
        )
    return crud.create_vehicle(db, account_id, data)


def deactivate_vehicle(db: Session, account_id: int, vehicle_id: int) -> models.Vehicle:
    """Vehicles referenced by ledger rows are never deleted, only switched off."""
    v = crud.get_vehicle(db, account_id, vehicle_id)
    return crud.update_vehicle(db, v, {"is_active": False})


# ---------------- Manual entries ----------------

def correction_floor(entitlement: Entitlement, today: date) -> date:
    return today - timedelta(days=entitlement.limits.correction_window_days)


def _check_entry_date(entitlement: Entitlement, entry_date: date, today: date) -> None:
    if entry_date > today:
        raise ValidationError("Entries cannot be dated in the future")
    floor = correction_floor(entitlement, today)
    if entry_date < floor:
        raise ValidationError(
            f"Your {entitlement.plan_kind.value} plan allows entries up to "
            f"{entitlement.limits.correction_window_days} days back"
        )


def _check_amounts(distance, fuel_price, expenses: DiscretionaryExpenses) -> None:
    if distance is None or not math.isfinite(distance) or distance <= 0:
        raise ValidationError("Please enter kilometers")
    if fuel_price is not None and (not math.isfinite(fuel_price) or fuel_price < 0):
        raise ValidationError("Invalid fuel price")
    for name in ("toll", "repair", "food", "misc"):
        value = getattr(expenses, name)
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"Invalid {name} expense")


def _entry_fields(vehicle: models.Vehicle, distance: float, fuel_price, expenses: DiscretionaryExpenses) -> dict:
    b = derive_financials(vehicle, distance, fuel_price, expenses)
    return {
        "vehicle_id": vehicle.id,
        "distance_travelled": distance,
        "fuel_consumed": b.fuel_consumed,
        "fuel_cost": b.fuel_cost,
        "trip_earnings": b.trip_earnings,
        "toll_expense": expenses.toll,
        "repair_expense": expenses.repair,
        "food_expense": expenses.food,
        "misc_expense": expenses.misc,
        "total_expenses": b.total_expenses,
        "net_profit": b.net_profit,
    }


def create_manual_entry(
    db: Session,
    account_id: int,
    entitlement: Entitlement,
    today: date,
    vehicle_id: Optional[int],
    entry_date: date,
    distance: float,
    fuel_price: Optional[float] = None,
    expenses: Optional[DiscretionaryExpenses] = None,
    notes: str = "",
) -> models.LedgerEntry:
    expenses = expenses or DiscretionaryExpenses()
    if vehicle_id is None:
        raise ValidationError("Please select a vehicle")
    _check_entry_date(entitlement, entry_date, today)
    _check_amounts(distance, fuel_price, expenses)

    vehicle = crud.get_vehicle(db, account_id, vehicle_id)
    if not vehicle.is_active:
        raise ValidationError("Vehicle is no longer active")

    row = _entry_fields(vehicle, distance, fuel_price, expenses)
    row.update(account_id=account_id, entry_date=entry_date, notes=notes or "")
    (entry,) = crud.insert_entries(db, [row])
    logger.info("Account %s logged %.2f km on %s", account_id, distance, entry_date)
    return entry


def update_entry(
    db: Session,
    account_id: int,
    entitlement: Entitlement,
    today: date,
    entry_id: int,
    distance: float,
    fuel_price: Optional[float] = None,
    expenses: Optional[DiscretionaryExpenses] = None,
    notes: Optional[str] = None,
    vehicle_id: Optional[int] = None,
) -> models.LedgerEntry:
    """Re-derive an existing row from new inputs; the last write wins."""
    entry = crud.get_entry(db, account_id, entry_id)
    _check_entry_date(entitlement, entry.entry_date, today)
    expenses = expenses or DiscretionaryExpenses()
    _check_amounts(distance, fuel_price, expenses)

    vehicle = crud.get_vehicle(db, account_id, vehicle_id or entry.vehicle_id)
    data = _entry_fields(vehicle, distance, fuel_price, expenses)
    if notes is not None:
        data["notes"] = notes
    return crud.update_entry(db, entry, data)


def delete_entry(db: Session, account_id: int, entry_id: int) -> None:
    entry = crud.get_entry(db, account_id, entry_id)
    crud.delete_entry(db, entry)


# ---------------- History & summary ----------------

def list_history(db: Session, account_id: int, entitlement: Entitlement, today: date) -> List[models.LedgerEntry]:
    since = today - timedelta(days=entitlement.limits.trip_history_days)
    return crud.list_entries(db, account_id, since=since, until=today)


def summarize_entries(entries, vehicles=()) -> Dict:
    """
    Totals over already-computed rows plus a per-vehicle breakdown.
    Auto-settled zero rows count as days but not as trips.
    """
    names = {v.id: v.name for v in vehicles}
    per_vehicle: Dict[int, Dict] = defaultdict(
        lambda: {"distance": 0.0, "earnings": 0.0, "expenses": 0.0, "net_profit": 0.0, "trips": 0}
    )
    totals = {"distance": 0.0, "earnings": 0.0, "expenses": 0.0, "net_profit": 0.0, "trips": 0, "days": 0}
    days = set()

    for e in entries:
        days.add(e.entry_date)
        bucket = per_vehicle[e.vehicle_id]
        for agg in (totals, bucket):
            agg["distance"] += e.distance_travelled or 0.0
            agg["earnings"] += e.trip_earnings or 0.0
            agg["expenses"] += e.total_expenses or 0.0
            agg["net_profit"] += e.net_profit or 0.0
            if (e.distance_travelled or 0.0) > 0:
                agg["trips"] += 1

    totals["days"] = len(days)
    totals["avg_daily_profit"] = (totals["net_profit"] / len(days)) if days else 0.0
    totals["profit_margin"] = (totals["net_profit"] / totals["earnings"] * 100) if totals["earnings"] else 0.0

    vehicles_out = [
        {"vehicle_id": vid, "name": names.get(vid), **agg}
        for vid, agg in sorted(per_vehicle.items(), key=lambda kv: kv[1]["net_profit"], reverse=True)
    ]
    return {"totals": totals, "vehicles": vehicles_out}


def dashboard_summary(db: Session, account_id: int, entitlement: Entitlement, today: date) -> Dict:
    since = today - timedelta(days=30 * entitlement.limits.dashboard_months)
    entries = crud.list_entries(db, account_id, since=since, until=today)
    vehicles = crud.list_vehicles(db, account_id)
    out = summarize_entries(entries, vehicles)
    out["period"] = {"start": since.isoformat(), "end": today.isoformat()}
    return out
