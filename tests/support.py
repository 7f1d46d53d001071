from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetledger import models
from fleetledger.db import Base

NOW = datetime(2026, 3, 21, 9, 30)
TODAY = NOW.date()


def make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    return factory


def make_account(db, days_ago: int = 20, email: str = "owner@fleet.test", **fields) -> models.Account:
    acct = models.Account(
        email=email,
        password_hash="x",
        created_at=NOW - timedelta(days=days_ago),
        **fields,
    )
    db.add(acct)
    db.commit()
    db.refresh(acct)
    return acct


def make_vehicle(db, account, name: str = "Tata Ace", **fields) -> models.Vehicle:
    values = {
        "mileage_km_per_liter": 10.0,
        "earning_mode": "per_distance",
        "earning_rate": 15.0,
        "monthly_loan_payment": 0.0,
        "monthly_driver_salary": 0.0,
        "monthly_maintenance_budget": 0.0,
    }
    values.update(fields)
    v = models.Vehicle(account_id=account.id, name=name, **values)
    db.add(v)
    db.commit()
    db.refresh(v)
    return v


def add_entry(db, account, vehicle, entry_date: date, distance: float = 50.0) -> models.LedgerEntry:
    e = models.LedgerEntry(
        account_id=account.id,
        vehicle_id=vehicle.id,
        entry_date=entry_date,
        distance_travelled=distance,
        fuel_consumed=0.0,
        fuel_cost=0.0,
        trip_earnings=0.0,
        total_expenses=0.0,
        net_profit=0.0,
    )
    db.add(e)
    db.commit()
    return e


def days_back(n: int) -> date:
    return TODAY - timedelta(days=n)


def drop_connection_on_insert(engine):
    """
    Make ``engine`` fail the first INSERT and every statement after it, the
    way a server that went away mid-write would. Returns the listener so a
    test can remove it.
    """
    state = {"gone": False}

    def _execute(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT"):
            state["gone"] = True
        if state["gone"]:
            raise OperationalError(statement, parameters, Exception("server has gone away"))

    event.listen(engine, "before_cursor_execute", _execute)
    return _execute
