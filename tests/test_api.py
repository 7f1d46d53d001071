from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import main
from fleetledger import models
from fleetledger.db import get_db
from tests.support import NOW, days_back, make_session


@pytest.fixture()
def client():
    factory = make_session()

    def _get_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[main.get_now] = lambda: NOW
    with TestClient(main.app) as c:
        c.factory = factory
        yield c
    main.app.dependency_overrides.clear()


def _signup(client, email="owner@fleet.test", days_ago=20, **fields):
    r = client.post("/setup", json={"email": email, "password": "hunter22"})
    assert r.status_code == 200
    db = client.factory()
    acct = db.get(models.Account, r.json()["id"])
    acct.created_at = NOW - timedelta(days=days_ago)
    for k, v in fields.items():
        setattr(acct, k, v)
    db.commit()
    db.close()
    return r.json()["id"]


def _vehicle(client, **kw):
    body = {"name": "Ace", "mileage_km_per_liter": 10, "earning_mode": "per_distance", "earning_rate": 15}
    body.update(kw)
    r = client.post("/vehicles", json=body)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_requires_login(client):
    assert client.get("/reconcile").status_code == 401


def test_login_logout(client):
    _signup(client)
    client.get("/logout")
    assert client.get("/vehicles").status_code == 401
    assert client.post("/login", json={"email": "owner@fleet.test", "password": "nope"}).status_code == 400
    assert client.post("/login", json={"email": "Owner@Fleet.test", "password": "hunter22"}).status_code == 200
    assert client.get("/vehicles").status_code == 200


def test_entitlement_trial(client):
    _signup(client, days_ago=3)
    body = client.get("/entitlement").json()
    assert body["plan_kind"] == "trial"
    assert body["trial_days_remaining"] == 12
    assert body["limits"]["correction_window_days"] == 7


def test_zero_mileage_vehicle_rejected(client):
    _signup(client, days_ago=1)
    r = client.post("/vehicles", json={"name": "Bad", "mileage_km_per_liter": 0})
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_reconcile_then_backfill(client):
    _signup(client, plan_kind="basic", subscription_end_date=NOW + timedelta(days=10))
    vid = _vehicle(client)

    rec = client.get("/reconcile").json()
    assert rec["state"] == "presenting"
    assert rec["settled_count"] == 13
    assert len(rec["correctable"]) == 7
    assert rec["correctable"][0] == days_back(7).isoformat()

    rows = [{"entry_date": d, "vehicle_id": vid, "distance": 100, "fuel_price": 100} for d in rec["correctable"]]
    r = client.post("/backfill", json={"mode": "per_day", "rows": rows})
    assert r.status_code == 200
    assert r.json()["state"] == "done"
    assert r.json()["saved_count"] == 7

    assert client.get("/reconcile").json()["state"] == "empty"


def test_backfill_validation_is_all_or_nothing(client):
    _signup(client, plan_kind="basic", subscription_end_date=NOW + timedelta(days=10))
    vid = _vehicle(client)
    rec = client.get("/reconcile").json()
    rows = [{"entry_date": d, "vehicle_id": vid, "distance": 100} for d in rec["correctable"]]
    rows[0]["distance"] = None
    r = client.post("/backfill", json={"mode": "per_day", "rows": rows})
    assert r.status_code == 422
    assert len(r.json()["errors"]) == 1
    assert client.get("/reconcile").json()["correctable"] == rec["correctable"]


def test_distributed_backfill(client):
    _signup(client, days_ago=5)
    a = _vehicle(client, name="A")
    b = _vehicle(client, name="B")
    client.put("/settings/entry-mode", json={"entry_mode": "distributed"})
    rec = client.get("/reconcile").json()
    assert rec["mode"] == "distributed"
    assert len(rec["correctable"]) == 5

    r = client.post(
        "/backfill",
        json={"mode": "distributed", "allocations": [
            {"vehicle_id": a, "total_distance": 500, "fuel_price": 100},
            {"vehicle_id": b, "total_distance": 50},
        ]},
    )
    assert r.json()["saved_count"] == 10
    entries = client.get("/entries").json()
    assert sorted({e["distance_travelled"] for e in entries if e["vehicle_id"] == a}) == [100.0]


def test_manual_entry_and_summary(client):
    _signup(client, days_ago=2)
    vid = _vehicle(client)
    r = client.post("/entries", json={
        "vehicle_id": vid,
        "entry_date": NOW.date().isoformat(),
        "distance": 100,
        "fuel_price": 100,
        "expenses": {"toll": 25},
    })
    assert r.status_code == 201
    entry = r.json()
    assert entry["total_expenses"] == 1025
    assert entry["net_profit"] == 475

    too_old = client.post("/entries", json={
        "vehicle_id": vid, "entry_date": days_back(30).isoformat(), "distance": 10,
    })
    assert too_old.status_code == 422

    r = client.put(f"/entries/{entry['id']}", json={"distance": 50, "fuel_price": 100})
    assert r.json()["net_profit"] == 250

    summary = client.get("/summary").json()
    assert summary["totals"]["trips"] == 1
    assert summary["currency_symbol"] == "₹"

    assert client.delete(f"/entries/{entry['id']}").status_code == 200
    assert client.delete(f"/entries/{entry['id']}").status_code == 404
