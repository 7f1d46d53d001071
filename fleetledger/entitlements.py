# fleetledger/entitlements.py
"""
Plan tiers and the limits they grant.

Every screen asks the same question ("what may this account do right now?"),
so the answer is computed in one place from the account's creation date and
stored subscription fields and then handed around as plain data.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from fleetledger.config import settings

logger = logging.getLogger(__name__)


class PlanKind(str, enum.Enum):
    TRIAL = "trial"
    BASIC = "basic"
    STANDARD = "standard"
    ULTRA = "ultra"
    EXPIRED = "expired"


@dataclass(frozen=True)
class EntitlementLimits:
    max_vehicles: int
    trip_history_days: int
    dashboard_months: int
    correction_window_days: int
    ai_chat_enabled: bool
    ai_chat_daily_limit: int
    reports_export_enabled: bool

    def as_dict(self) -> dict:
        return asdict(self)


PLAN_LIMITS: dict[PlanKind, EntitlementLimits] = {
    PlanKind.TRIAL: EntitlementLimits(
        max_vehicles=10,
        trip_history_days=365,
        dashboard_months=6,
        correction_window_days=7,
        ai_chat_enabled=True,
        ai_chat_daily_limit=50,
        reports_export_enabled=True,
    ),
    PlanKind.BASIC: EntitlementLimits(
        max_vehicles=1,
        trip_history_days=10,
        dashboard_months=1,
        correction_window_days=7,
        ai_chat_enabled=False,
        ai_chat_daily_limit=0,
        reports_export_enabled=False,
    ),
    PlanKind.STANDARD: EntitlementLimits(
        max_vehicles=5,
        trip_history_days=90,
        dashboard_months=6,
        correction_window_days=30,
        ai_chat_enabled=True,
        ai_chat_daily_limit=30,
        reports_export_enabled=False,
    ),
    PlanKind.ULTRA: EntitlementLimits(
        max_vehicles=999,
        trip_history_days=9999,
        dashboard_months=60,
        correction_window_days=90,
        ai_chat_enabled=True,
        ai_chat_daily_limit=999,
        reports_export_enabled=True,
    ),
    PlanKind.EXPIRED: EntitlementLimits(
        max_vehicles=0,
        trip_history_days=0,
        dashboard_months=0,
        correction_window_days=0,
        ai_chat_enabled=False,
        ai_chat_daily_limit=0,
        reports_export_enabled=False,
    ),
}

ADMIN_LIMITS = EntitlementLimits(
    max_vehicles=999,
    trip_history_days=9999,
    dashboard_months=60,
    correction_window_days=365,
    ai_chat_enabled=True,
    ai_chat_daily_limit=999,
    reports_export_enabled=True,
)


@dataclass(frozen=True)
class Entitlement:
    plan_kind: PlanKind
    limits: EntitlementLimits
    is_administrative: bool = False
    trial_days_remaining: int = 0
    subscription_end_date: Optional[datetime] = None

    def allows(self, feature: str) -> bool:
        """True when a boolean limit is on or a numeric limit is positive."""
        if self.is_administrative:
            return True
        if self.plan_kind is PlanKind.EXPIRED:
            return False
        value = getattr(self.limits, feature)
        if isinstance(value, bool):
            return value
        return value > 0


def trial_days_remaining(created_at: datetime, now: datetime, trial_days: Optional[int] = None) -> int:
    length = settings.trial_days if trial_days is None else trial_days
    days_since_creation = (now - created_at).days  # floor for positive deltas
    return max(0, length - days_since_creation)


def resolve_entitlement(account, now: Optional[datetime] = None) -> Entitlement:
    """
    Derive the current plan and limits for an account.

    Pure given its inputs; callers load the account. Order of precedence:
    administrative email, unexpired paid subscription, active trial, expired.
    """
    now = now or datetime.utcnow()

    if settings.is_admin_email(account.email):
        return Entitlement(
            plan_kind=PlanKind.ULTRA,
            limits=ADMIN_LIMITS,
            is_administrative=True,
            trial_days_remaining=0,
            subscription_end_date=account.subscription_end_date,
        )

    remaining = trial_days_remaining(account.created_at, now)

    plan = PlanKind.EXPIRED
    end = account.subscription_end_date
    stored = account.plan_kind
    if stored and end is not None and end > now:
        try:
            plan = PlanKind(stored)
        except ValueError:
            logger.warning("Unknown stored plan %r for account %s", stored, account.id)
            plan = PlanKind.TRIAL if remaining > 0 else PlanKind.EXPIRED
    elif remaining > 0:
        plan = PlanKind.TRIAL

    return Entitlement(
        plan_kind=plan,
        limits=PLAN_LIMITS[plan],
        is_administrative=False,
        trial_days_remaining=remaining,
        subscription_end_date=end,
    )


def fail_closed() -> Entitlement:
    """Entitlement used when account data cannot be loaded."""
    return Entitlement(plan_kind=PlanKind.EXPIRED, limits=PLAN_LIMITS[PlanKind.EXPIRED])
