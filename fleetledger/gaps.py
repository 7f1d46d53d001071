# fleetledger/gaps.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from fleetledger import crud


def each_day(start: date, end: date) -> list[date]:
    """Every calendar date in [start, end], ascending; empty when end < start."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def uncovered_dates(start: date, end: date, covered: Iterable[date]) -> list[date]:
    covered = set(covered)
    return [d for d in each_day(start, end) if d not in covered]


def scan_range(account, today: date, earliest: Optional[date] = None) -> tuple[date, date]:
    """
    Range a gap scan should cover: from account creation (or a later floor)
    through yesterday. Today is never part of it.
    """
    start = account.created_at.date()
    if earliest is not None and earliest > start:
        start = earliest
    return start, today - timedelta(days=1)


def find_coverage_gaps(db: Session, account, start: date, end: date) -> list[date]:
    """
    Dates in [start, end] with no ledger row for the account.

    Coverage is account-wide: a row for any vehicle covers its date.
    """
    if end < start:
        return []
    covered = crud.covered_dates(db, account.id, start, end)
    return uncovered_dates(start, end, covered)
