# fleetledger/reconciliation.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from fleetledger import crud
from fleetledger.backfill import BackfillController, BackfillMode, BackfillState
from fleetledger.entitlements import Entitlement, resolve_entitlement
from fleetledger.errors import StorageReadError
from fleetledger.gaps import find_coverage_gaps, scan_range
from fleetledger.settlement import SettlementResult, classify_and_settle

logger = logging.getLogger(__name__)


@dataclass
class Reconciliation:
    entitlement: Entitlement
    controller: BackfillController
    settlement: Optional[SettlementResult] = None


def run_reconciliation(
    db: Session,
    account_id: int,
    now: Optional[datetime] = None,
    mode: Optional[BackfillMode | str] = None,
    on_complete: Optional[Callable[[Optional[BackfillController]], None]] = None,
) -> Reconciliation:
    """
    One full pass: resolve the plan, scan for gaps, settle the aged-out ones,
    then hand what is left to a backfill controller.

    Each step waits for the previous one. A failed settlement write does not
    abort the pass. A storage read failure does: the controller is marked
    Failed, ``on_complete`` fires (with ``None`` when the account itself
    could not be loaded) and the error is re-raised.
    """
    now = now or datetime.utcnow()
    today = now.date()
    controller: Optional[BackfillController] = None

    try:
        account = crud.get_account(db, account_id)
        entitlement = resolve_entitlement(account, now)
        controller = BackfillController(
            db,
            account,
            [],
            mode=mode or account.entry_mode or BackfillMode.PER_DAY,
            on_complete=on_complete,
        )
        controller.vehicles = crud.list_active_vehicles(db, account_id)
        if not controller.vehicles:
            # rows need a vehicle; nothing can be settled or filled yet
            controller.present([])
            return Reconciliation(entitlement=entitlement, controller=controller)

        start, end = scan_range(account, today)
        gaps = find_coverage_gaps(db, account, start, end)
    except StorageReadError as exc:
        logger.warning("Reconciliation for account %s aborted: %s", account_id, exc.message)
        if controller is None:
            if on_complete is not None:
                on_complete(None)
        else:
            controller.state = BackfillState.FAILED
            controller.error = exc.message
            controller._complete()
        raise

    if not gaps:
        controller.present([])
        return Reconciliation(entitlement=entitlement, controller=controller)

    settlement = classify_and_settle(
        db, account, gaps, entitlement.limits, today, vehicles=controller.vehicles
    )
    controller.present(settlement.correctable, settlement.settled_count)
    logger.debug("Account %s: %d gaps, %d correctable, %d settled",
                 account_id, len(gaps), len(settlement.correctable), settlement.settled_count)
    return Reconciliation(entitlement=entitlement, controller=controller, settlement=settlement)


def submit_backfill(
    db: Session,
    account_id: int,
    mode: BackfillMode | str,
    inputs: Sequence,
    now: Optional[datetime] = None,
) -> Reconciliation:
    """
    Re-run reconciliation so the correctable set is current, then submit.

    ValidationError propagates; the returned controller is in Done or Failed
    (or Empty when nothing was left to fill).
    """
    rec = run_reconciliation(db, account_id, now=now, mode=mode)
    if rec.controller.state is BackfillState.PRESENTING:
        rec.controller.submit(inputs)
    return rec
