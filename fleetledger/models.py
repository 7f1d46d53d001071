# fleetledger/models.py
from __future__ import annotations
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Boolean, Text, Index
from sqlalchemy.orm import relationship
from fleetledger.db import Base
from datetime import datetime


EARNING_MODES = ("per_distance", "per_trip", "custom")


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # subscription state, written by the payment approval flow
    plan_kind = Column(String(20), nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)

    currency_symbol = Column(String(8), default="₹")  # display only
    entry_mode = Column(String(20), default="per_day")  # backfill presentation

    vehicles = relationship("Vehicle", back_populates="account", cascade="all,delete-orphan")
    entries = relationship("LedgerEntry", back_populates="account", cascade="all,delete-orphan")


class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    name = Column(String(200), nullable=False)  # e.g., "Tata Ace", "Innova"
    vehicle_type = Column(String(100))
    mileage_km_per_liter = Column(Float, nullable=False)
    earning_mode = Column(String(20), nullable=False, default="per_distance")
    earning_rate = Column(Float, nullable=False, default=0.0)
    monthly_loan_payment = Column(Float, default=0.0)
    monthly_driver_salary = Column(Float, default=0.0)
    monthly_maintenance_budget = Column(Float, default=0.0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="vehicles")
    entries = relationship("LedgerEntry", back_populates="vehicle")


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    entry_date = Column(Date, nullable=False)
    distance_travelled = Column(Float, nullable=False, default=0.0)
    fuel_consumed = Column(Float, nullable=False, default=0.0)
    fuel_cost = Column(Float, nullable=False, default=0.0)
    trip_earnings = Column(Float, nullable=False, default=0.0)
    toll_expense = Column(Float, default=0.0)
    repair_expense = Column(Float, default=0.0)
    food_expense = Column(Float, default=0.0)
    misc_expense = Column(Float, default=0.0)
    total_expenses = Column(Float, nullable=False, default=0.0)
    net_profit = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="entries")
    vehicle = relationship("Vehicle", back_populates="entries")

    __table_args__ = (
        Index("ix_ledger_entries_account_date", "account_id", "entry_date"),
    )
