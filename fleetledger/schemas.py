# fleetledger/schemas.py
from __future__ import annotations

from datetime import datetime, date
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

EarningMode = Literal["per_distance", "per_trip", "custom"]
EntryMode = Literal["per_day", "distributed"]


# ---------- Auth ----------
class Credentials(BaseModel):
    email: str
    password: str


class Account(BaseModel):
    id: int
    email: str
    created_at: datetime
    plan_kind: Optional[str] = None
    subscription_end_date: Optional[datetime] = None
    currency_symbol: Optional[str] = None
    entry_mode: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# ---------- Entitlement ----------
class Limits(BaseModel):
    max_vehicles: int
    trip_history_days: int
    dashboard_months: int
    correction_window_days: int
    ai_chat_enabled: bool
    ai_chat_daily_limit: int
    reports_export_enabled: bool


class EntitlementOut(BaseModel):
    plan_kind: str
    limits: Limits
    is_administrative: bool
    trial_days_remaining: int
    subscription_end_date: Optional[datetime] = None


# ---------- Vehicle ----------
class VehicleCreate(BaseModel):
    name: str
    vehicle_type: Optional[str] = None
    mileage_km_per_liter: float
    earning_mode: EarningMode = "per_distance"
    earning_rate: float = 0.0
    monthly_loan_payment: float = 0.0
    monthly_driver_salary: float = 0.0
    monthly_maintenance_budget: float = 0.0


class Vehicle(VehicleCreate):
    id: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


# ---------- Ledger ----------
class Expenses(BaseModel):
    toll: float = 0.0
    repair: float = 0.0
    food: float = 0.0
    misc: float = 0.0


class EntryCreate(BaseModel):
    vehicle_id: Optional[int] = None
    entry_date: date
    distance: float
    fuel_price: Optional[float] = None
    expenses: Expenses = Field(default_factory=Expenses)
    notes: str = ""


class EntryUpdate(BaseModel):
    distance: float
    vehicle_id: Optional[int] = None
    fuel_price: Optional[float] = None
    expenses: Expenses = Field(default_factory=Expenses)
    notes: Optional[str] = None


class Entry(BaseModel):
    id: int
    vehicle_id: int
    entry_date: date
    distance_travelled: float
    fuel_consumed: float
    fuel_cost: float
    trip_earnings: float
    toll_expense: float = 0.0
    repair_expense: float = 0.0
    food_expense: float = 0.0
    misc_expense: float = 0.0
    total_expenses: float
    net_profit: float
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# ---------- Reconciliation / Backfill ----------
class ReconcileOut(BaseModel):
    state: str
    mode: EntryMode
    correctable: List[date]
    settled_count: int = 0
    settlement_failed: bool = False
    message: Optional[str] = None


class PerDayRowIn(BaseModel):
    entry_date: date
    vehicle_id: Optional[int] = None
    distance: Optional[float] = None
    fuel_price: Optional[float] = None


class AllocationIn(BaseModel):
    vehicle_id: Optional[int] = None
    total_distance: Optional[float] = None
    fuel_price: Optional[float] = None


class BackfillIn(BaseModel):
    mode: EntryMode
    rows: List[PerDayRowIn] = Field(default_factory=list)
    allocations: List[AllocationIn] = Field(default_factory=list)


class BackfillOut(BaseModel):
    state: str
    saved_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


class EntryModeIn(BaseModel):
    entry_mode: EntryMode
