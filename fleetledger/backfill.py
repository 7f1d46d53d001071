# fleetledger/backfill.py
"""
Backfill of correctable gaps.

The controller walks Loading -> Empty | Presenting -> Submitting -> Done | Failed.
Two input modes are supported:

per_day      one row per correctable date, each with its own vehicle,
             distance and fuel price.
distributed  one (vehicle, total distance, fuel price) allocation per vehicle;
             the total is split evenly over every correctable date.

All rows are validated before anything is written, and the whole batch is
inserted in one transaction. A failed insert leaves the controller in Failed;
it never retries on its own.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from fleetledger import crud
from fleetledger.errors import StorageWriteError, ValidationError
from fleetledger.financials import derive_financials, normalize_fuel_price

logger = logging.getLogger(__name__)


class BackfillMode(str, enum.Enum):
    PER_DAY = "per_day"
    DISTRIBUTED = "distributed"


class BackfillState(str, enum.Enum):
    LOADING = "loading"
    EMPTY = "empty"
    PRESENTING = "presenting"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PerDayRow:
    entry_date: date
    vehicle_id: Optional[int]
    distance: Optional[float]
    fuel_price: Optional[float] = None


@dataclass
class DistributedAllocation:
    vehicle_id: Optional[int]
    total_distance: Optional[float]
    fuel_price: Optional[float] = None


def _fmt(d: date) -> str:
    return d.strftime("%d %b %Y")


def _positive(value) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _bad_fuel_price(value) -> bool:
    # absent means "use the default"; present must be a finite non-negative number
    return value is not None and (not math.isfinite(value) or value < 0)


def distribute_distance(total_distance: float, gap_count: int) -> float:
    """Uniform per-day distance for a total spread over ``gap_count`` days."""
    if gap_count < 1:
        raise ValidationError("Nothing to distribute over")
    return total_distance / gap_count


class BackfillController:
    def __init__(
        self,
        db: Session,
        account,
        vehicles: Sequence,
        mode: BackfillMode | str = BackfillMode.PER_DAY,
        on_complete: Optional[Callable[["BackfillController"], None]] = None,
    ):
        self.db = db
        self.account = account
        self.account_id = account.id
        self.vehicles = list(vehicles)
        self.mode = BackfillMode(mode)
        self.on_complete = on_complete

        self.state = BackfillState.LOADING
        self.correctable: list[date] = []
        self.settled_count = 0
        self.message: Optional[str] = None
        self.error: Optional[str] = None
        self.saved_count = 0
        self.skipped = False

    # ---------------- presentation ----------------

    def present(self, correctable: Sequence[date], settled_count: int = 0) -> BackfillState:
        self.correctable = sorted(correctable)
        self.settled_count = settled_count
        if not self.correctable:
            self.state = BackfillState.EMPTY
            self.message = "Nothing left to do."
            if settled_count:
                self.message = f"{settled_count} older entries were automatically settled with zero values."
            self._complete()
        else:
            self.state = BackfillState.PRESENTING
            self.message = None
        return self.state

    def default_rows(self, fuel_price: Optional[float] = None) -> list[PerDayRow]:
        """Blank per-day rows, preselecting the first vehicle."""
        first = self.vehicles[0].id if self.vehicles else None
        price = normalize_fuel_price(fuel_price)
        return [PerDayRow(entry_date=d, vehicle_id=first, distance=None, fuel_price=price)
                for d in self.correctable]

    def available_vehicles(self, chosen: Sequence[int] = ()) -> list:
        """Vehicles still selectable for a new distributed allocation."""
        taken = set(chosen)
        return [v for v in self.vehicles if v.id not in taken]

    # ---------------- validation ----------------

    def _vehicle(self, vehicle_id):
        for v in self.vehicles:
            if v.id == vehicle_id:
                return v
        return None

    def validate_per_day(self, rows: Sequence[PerDayRow]) -> None:
        errors: list[str] = []
        wanted = set(self.correctable)
        seen: set[date] = set()
        for row in rows:
            label = _fmt(row.entry_date)
            if row.entry_date not in wanted:
                errors.append(f"{label} is not a missing date that can still be corrected")
            elif row.entry_date in seen:
                errors.append(f"{label} appears more than once")
            seen.add(row.entry_date)
            if row.vehicle_id is None:
                errors.append(f"Please select a vehicle for {label}")
            elif self._vehicle(row.vehicle_id) is None:
                errors.append(f"Unknown vehicle for {label}")
            if not _positive(row.distance):
                errors.append(f"Please enter kilometers for {label}")
            if _bad_fuel_price(row.fuel_price):
                errors.append(f"Invalid fuel price for {label}")
        for d in sorted(wanted - seen):
            errors.append(f"Missing row for {_fmt(d)}")
        if errors:
            raise ValidationError(errors[0], {"errors": errors})

    def validate_distributed(self, allocations: Sequence[DistributedAllocation]) -> None:
        errors: list[str] = []
        if not allocations:
            errors.append("Add at least one vehicle and its total kilometers")
        chosen: set[int] = set()
        for i, alloc in enumerate(allocations, start=1):
            if alloc.vehicle_id is None:
                errors.append(f"Please select a vehicle for allocation {i}")
            elif self._vehicle(alloc.vehicle_id) is None:
                errors.append(f"Unknown vehicle for allocation {i}")
            elif alloc.vehicle_id in chosen:
                errors.append(f"Vehicle {alloc.vehicle_id} is used more than once")
            else:
                chosen.add(alloc.vehicle_id)
            if not _positive(alloc.total_distance):
                errors.append(f"Please enter total kilometers for allocation {i}")
            if _bad_fuel_price(alloc.fuel_price):
                errors.append(f"Invalid fuel price for allocation {i}")
        if errors:
            raise ValidationError(errors[0], {"errors": errors})

    # ---------------- row building ----------------

    def _row(self, entry_date: date, vehicle, distance: float, fuel_price) -> dict:
        b = derive_financials(vehicle, distance, fuel_price)
        return {
            "account_id": self.account_id,
            "vehicle_id": vehicle.id,
            "entry_date": entry_date,
            "distance_travelled": distance,
            "fuel_consumed": b.fuel_consumed,
            "fuel_cost": b.fuel_cost,
            "trip_earnings": b.trip_earnings,
            "toll_expense": 0.0,
            "repair_expense": 0.0,
            "food_expense": 0.0,
            "misc_expense": 0.0,
            "total_expenses": b.total_expenses,
            "net_profit": b.net_profit,
            "notes": "",
        }

    def build_rows(self, inputs: Sequence) -> list[dict]:
        """Validate ``inputs`` for the current mode and derive ledger rows."""
        if self.mode is BackfillMode.PER_DAY:
            self.validate_per_day(inputs)
            return [self._row(r.entry_date, self._vehicle(r.vehicle_id), r.distance, r.fuel_price)
                    for r in sorted(inputs, key=lambda r: r.entry_date)]

        self.validate_distributed(inputs)
        out: list[dict] = []
        for alloc in inputs:
            vehicle = self._vehicle(alloc.vehicle_id)
            per_day = distribute_distance(alloc.total_distance, len(self.correctable))
            out.extend(self._row(d, vehicle, per_day, alloc.fuel_price) for d in self.correctable)
        return out

    # ---------------- transitions ----------------

    def submit(self, inputs: Sequence) -> bool:
        """
        Validate and persist a batch. ValidationError propagates and leaves
        the form presented; a storage failure returns False in state Failed.
        """
        if self.state not in (BackfillState.PRESENTING, BackfillState.FAILED):
            raise ValidationError(f"Cannot submit while {self.state.value}")

        rows = self.build_rows(inputs)

        self.state = BackfillState.SUBMITTING
        try:
            crud.insert_entries(self.db, rows)
        except StorageWriteError as exc:
            self.state = BackfillState.FAILED
            self.error = exc.message
            logger.warning("Backfill of %d rows for account %s failed", len(rows), self.account_id)
            return False

        self.saved_count = len(rows)
        self.state = BackfillState.DONE
        self.error = None
        self.message = f"Saved {len(rows)} missing entries"
        logger.info("Backfilled %d rows (%s) for account %s", len(rows), self.mode.value, self.account_id)
        self._complete()
        return True

    def skip(self) -> None:
        """Dismiss the form; the gaps stay uncovered for the next pass."""
        self.skipped = True
        self.state = BackfillState.DONE
        self._complete()

    def _complete(self) -> None:
        if self.on_complete is not None:
            self.on_complete(self)
