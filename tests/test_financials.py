from __future__ import annotations

import random
import unittest
from types import SimpleNamespace as NS

from fleetledger.financials import (
    DiscretionaryExpenses,
    derive_financials,
    normalize_fuel_price,
)


def _vehicle(**kw):
    base = dict(
        mileage_km_per_liter=10.0,
        earning_mode="per_distance",
        earning_rate=15.0,
        monthly_loan_payment=0.0,
        monthly_driver_salary=0.0,
        monthly_maintenance_budget=0.0,
    )
    base.update(kw)
    return NS(**base)


class DeriveFinancialsTests(unittest.TestCase):
    def test_per_distance_scenario(self) -> None:
        b = derive_financials(_vehicle(), 100, 100)
        self.assertEqual(b.fuel_consumed, 10)
        self.assertEqual(b.fuel_cost, 1000)
        self.assertEqual(b.trip_earnings, 1500)
        self.assertEqual(b.total_expenses, 1000)
        self.assertEqual(b.net_profit, 500)

    def test_flat_rate_ignores_distance(self) -> None:
        for mode in ("per_trip", "custom"):
            short = derive_financials(_vehicle(earning_mode=mode, earning_rate=800), 5, 100)
            long = derive_financials(_vehicle(earning_mode=mode, earning_rate=800), 500, 100)
            self.assertEqual(short.trip_earnings, 800)
            self.assertEqual(long.trip_earnings, 800)

    def test_fixed_costs_use_thirty_day_month(self) -> None:
        v = _vehicle(monthly_loan_payment=9000, monthly_driver_salary=15000, monthly_maintenance_budget=3000)
        b = derive_financials(v, 100, 100)
        self.assertAlmostEqual(b.amortized_fixed_costs, 900.0)
        self.assertAlmostEqual(b.total_expenses, 1900.0)
        self.assertAlmostEqual(b.net_profit, -400.0)

    def test_discretionary_expenses_are_added(self) -> None:
        b = derive_financials(_vehicle(), 100, 100, DiscretionaryExpenses(toll=50, food=25.5))
        self.assertAlmostEqual(b.discretionary_expenses, 75.5)
        self.assertAlmostEqual(b.total_expenses, 1075.5)

    def test_no_rounding(self) -> None:
        b = derive_financials(_vehicle(mileage_km_per_liter=3), 10, 100)
        self.assertEqual(b.fuel_consumed, 10 / 3)
        self.assertEqual(b.fuel_cost, (10 / 3) * 100)

    def test_zero_distance(self) -> None:
        b = derive_financials(_vehicle(), 0, 100)
        self.assertEqual(b.fuel_cost, 0)
        self.assertEqual(b.trip_earnings, 0)

    def test_net_profit_identity_holds(self) -> None:
        rng = random.Random(1234)
        for _ in range(500):
            v = _vehicle(
                mileage_km_per_liter=rng.uniform(0.5, 40),
                earning_mode=rng.choice(["per_distance", "per_trip", "custom"]),
                earning_rate=rng.uniform(0, 5000),
                monthly_loan_payment=rng.uniform(0, 50000),
                monthly_driver_salary=rng.uniform(0, 50000),
                monthly_maintenance_budget=rng.uniform(0, 10000),
            )
            b = derive_financials(v, rng.uniform(0, 10000), rng.uniform(0, 1000))
            self.assertEqual(b.net_profit, b.trip_earnings - b.total_expenses)
            self.assertEqual(
                b.total_expenses, b.fuel_cost + b.amortized_fixed_costs + b.discretionary_expenses
            )


class FuelPriceTests(unittest.TestCase):
    def test_missing_or_invalid_prices_default(self) -> None:
        for raw in (None, "", "abc", float("nan"), float("inf"), -5):
            self.assertEqual(normalize_fuel_price(raw), 100.0)

    def test_valid_prices_pass_through(self) -> None:
        self.assertEqual(normalize_fuel_price("96.5"), 96.5)
        self.assertEqual(normalize_fuel_price(0), 0.0)

    def test_engine_applies_default(self) -> None:
        b = derive_financials(_vehicle(), 100, None)
        self.assertEqual(b.fuel_cost, 1000)


if __name__ == "__main__":
    unittest.main()
