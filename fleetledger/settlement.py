# fleetledger/settlement.py
"""
Split coverage gaps into the ones a user may still fill in and the ones that
have aged out of the plan's correction window, and write zero rows for the
latter so they stop showing up as missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from fleetledger import crud
from fleetledger.entitlements import EntitlementLimits
from fleetledger.errors import StorageWriteError
from fleetledger.financials import ZERO_BREAKDOWN

logger = logging.getLogger(__name__)

AUTO_SETTLEMENT_NOTE = "Auto-settled: no entry provided within the correction window"


@dataclass
class GapClassification:
    correctable: list[date] = field(default_factory=list)
    auto_settle: list[date] = field(default_factory=list)


@dataclass
class SettlementResult:
    correctable: list[date]
    auto_settle: list[date]
    settled_count: int = 0
    settlement_failed: bool = False

    @property
    def nothing_left(self) -> bool:
        return not self.correctable


def correction_cutoff(today: date, correction_window_days: int) -> date:
    return today - timedelta(days=correction_window_days)


def classify_gaps(gaps: Sequence[date], correction_window_days: int, today: date) -> GapClassification:
    """The cutoff date itself stays correctable."""
    cutoff = correction_cutoff(today, correction_window_days)
    out = GapClassification()
    for d in gaps:
        if d >= cutoff:
            out.correctable.append(d)
        else:
            out.auto_settle.append(d)
    return out


def default_settlement_vehicle(vehicles: Sequence):
    """
    Vehicle that zero rows are booked against: the first active vehicle in
    id order. Any vehicle would do since the rows carry no amounts.
    """
    for v in vehicles:
        if v.is_active:
            return v
    return None


def settlement_row(account_id: int, vehicle_id: int, entry_date: date) -> dict:
    z = ZERO_BREAKDOWN
    return {
        "account_id": account_id,
        "vehicle_id": vehicle_id,
        "entry_date": entry_date,
        "distance_travelled": 0.0,
        "fuel_consumed": z.fuel_consumed,
        "fuel_cost": z.fuel_cost,
        "trip_earnings": z.trip_earnings,
        "toll_expense": 0.0,
        "repair_expense": 0.0,
        "food_expense": 0.0,
        "misc_expense": 0.0,
        "total_expenses": z.total_expenses,
        "net_profit": z.net_profit,
        "notes": AUTO_SETTLEMENT_NOTE,
    }


def classify_and_settle(
    db: Session,
    account,
    gaps: Sequence[date],
    limits: EntitlementLimits,
    today: date,
    vehicles: Optional[Sequence] = None,
) -> SettlementResult:
    """
    Classify ``gaps`` and persist zero rows for every aged-out date.

    ``gaps`` must come from a fresh detector run; passing a stale list can
    book a second row for a date that was settled in the meantime. A failed
    write is logged and reported through ``settlement_failed``; it never
    raises, so the correctable dates can still be presented.
    """
    account_id = account.id
    split = classify_gaps(gaps, limits.correction_window_days, today)
    result = SettlementResult(correctable=split.correctable, auto_settle=split.auto_settle)
    if not split.auto_settle:
        return result

    if vehicles is None:
        vehicles = crud.list_active_vehicles(db, account_id)
    vehicle = default_settlement_vehicle(vehicles)
    if vehicle is None:
        logger.info("Account %s has no active vehicle; skipping settlement of %d dates",
                    account_id, len(split.auto_settle))
        return result

    rows = [settlement_row(account_id, vehicle.id, d) for d in split.auto_settle]
    try:
        crud.insert_entries(db, rows)
    except StorageWriteError as exc:
        logger.warning("Auto-settlement of %d dates for account %s failed: %s",
                       len(rows), account_id, exc.message)
        result.settlement_failed = True
        return result

    result.settled_count = len(rows)
    logger.info("Auto-settled %d dates for account %s", len(rows), account_id)
    return result
