# fleetledger/financials.py
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Optional

from fleetledger.config import settings

# Monthly overheads are spread over a flat 30-day month
DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class DiscretionaryExpenses:
    toll: float = 0.0
    repair: float = 0.0
    food: float = 0.0
    misc: float = 0.0

    @property
    def total(self) -> float:
        return self.toll + self.repair + self.food + self.misc


@dataclass(frozen=True)
class FinancialBreakdown:
    fuel_consumed: float
    fuel_cost: float
    trip_earnings: float
    amortized_fixed_costs: float
    discretionary_expenses: float
    total_expenses: float
    net_profit: float

    def as_dict(self) -> dict:
        return asdict(self)


ZERO_BREAKDOWN = FinancialBreakdown(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


def normalize_fuel_price(value) -> float:
    """Coerce a fuel price; anything missing, unparsable, non-finite or negative becomes the default."""
    try:
        price = float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        price = None
    if price is None or not math.isfinite(price) or price < 0:
        return settings.default_fuel_price
    return price


def trip_earnings_for(vehicle, distance: float) -> float:
    if vehicle.earning_mode == "per_distance":
        return distance * (vehicle.earning_rate or 0.0)
    # per_trip and custom both pay a flat rate per day's trip
    return vehicle.earning_rate or 0.0


def amortized_fixed_costs_for(vehicle) -> float:
    monthly = (
        (vehicle.monthly_loan_payment or 0.0)
        + (vehicle.monthly_driver_salary or 0.0)
        + (vehicle.monthly_maintenance_budget or 0.0)
    )
    return monthly / DAYS_PER_MONTH


def derive_financials(
    vehicle,
    distance: float,
    fuel_price=None,
    expenses: Optional[DiscretionaryExpenses] = None,
) -> FinancialBreakdown:
    """
    Full cost/earnings/profit breakdown for one ledger row.

    No rounding is applied. The vehicle's mileage is assumed positive;
    vehicle creation rejects zero mileage.
    """
    price = normalize_fuel_price(fuel_price)
    discretionary = (expenses or DiscretionaryExpenses()).total

    fuel_consumed = distance / vehicle.mileage_km_per_liter
    fuel_cost = fuel_consumed * price
    earnings = trip_earnings_for(vehicle, distance)
    fixed = amortized_fixed_costs_for(vehicle)

    total_expenses = fuel_cost + fixed + discretionary
    return FinancialBreakdown(
        fuel_consumed=fuel_consumed,
        fuel_cost=fuel_cost,
        trip_earnings=earnings,
        amortized_fixed_costs=fixed,
        discretionary_expenses=discretionary,
        total_expenses=total_expenses,
        net_profit=earnings - total_expenses,
    )
