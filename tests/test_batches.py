"""Tests for monthly payment and recurring-expense generation."""

import pytest

from agencyhub.batches import expense_key, recurring_templates
from agencyhub.errors import SyncError

PERIOD = "203001"


@pytest.fixture
def clients(engine):
    active = engine.add_client({"clientName": "Active", "status": "פעיל", "monthlyRetainer": 4000})
    paused = engine.add_client({"clientName": "Paused", "status": "מושהה", "monthlyRetainer": 3000})
    free = engine.add_client({"clientName": "Free", "status": "פעיל", "monthlyRetainer": 0})
    return active, paused, free


class TestPayments:
    def test_one_payment_per_active_client_with_retainer(self, fake, engine, clients):
        active, _paused, _free = clients
        assert engine.generate_monthly_payments(PERIOD) == 1

        created = [p for p in engine.store.get("payments") if p["periodMonth"] == PERIOD]
        assert len(created) == 1
        assert created[0]["clientId"] == active["clientId"]
        assert created[0]["amountDue"] == 4000
        assert created[0]["paymentStatus"] == "Unpaid"
        assert len([r for r in fake.tables["payments"] if r["period_month"] == PERIOD]) == 1

    def test_second_run_creates_nothing(self, fake, engine, clients):
        engine.generate_monthly_payments(PERIOD)
        assert engine.generate_monthly_payments(PERIOD) == 0
        assert len([r for r in fake.tables["payments"] if r["period_month"] == PERIOD]) == 1

    def test_generation_logs_activity(self, engine, clients):
        engine.generate_monthly_payments(PERIOD)
        entry = engine.store.get("activities")[0]
        assert entry["actionType"] == "generate"
        assert "01/2030" in entry["description"]

    def test_without_tenant_returns_zero(self, make_engine):
        engine = make_engine(tenant_id="", load=False)
        assert engine.generate_monthly_payments(PERIOD) == 0

    def test_insert_failure_leaves_cache_unchanged(self, fake, engine, clients):
        before = engine.store.snapshot()
        fake.fail_on("payments", "insert")
        with pytest.raises(SyncError):
            engine.generate_monthly_payments(PERIOD)
        assert engine.store.snapshot() == before


class TestExpenses:
    def test_recurring_expense_copied_once(self, fake, engine, clients):
        active = clients[0]
        engine.add_expense({"clientId": active["clientId"], "supplierName": "Google Ads",
                            "amount": 300, "isRecurring": True, "monthKey": "202912",
                            "expenseDate": "2029-12-05"})
        engine.add_expense({"supplierName": "Printer", "amount": 80, "isRecurring": False,
                            "monthKey": "202912"})

        assert engine.generate_monthly_expenses(PERIOD) == 1
        created = [e for e in engine.store.get("expenses") if e["monthKey"] == PERIOD]
        assert len(created) == 1
        assert created[0]["supplierName"] == "Google Ads"
        assert created[0]["amount"] == 300
        assert created[0]["expenseDate"] == "2030-01-01"
        assert created[0]["isRecurring"] is True

        assert engine.generate_monthly_expenses(PERIOD) == 0
        assert len([r for r in fake.tables["expenses"] if r["month_key"] == PERIOD]) == 1

    def test_existing_expense_for_period_counts(self, engine):
        engine.add_expense({"supplierName": "Canva", "amount": 50, "isRecurring": True,
                            "monthKey": "202912"})
        engine.add_expense({"supplierName": "canva ", "amount": 55, "isRecurring": True,
                            "monthKey": PERIOD})
        assert engine.generate_monthly_expenses(PERIOD) == 0


class TestTemplates:
    def test_latest_recurring_per_key(self):
        expenses = [
            {"supplierName": "Meta", "clientId": "c1", "amount": 100, "isRecurring": True, "monthKey": "202910"},
            {"supplierName": "meta", "clientId": "c1", "amount": 150, "isRecurring": True, "monthKey": "202911"},
            {"supplierName": "Meta", "clientId": "c2", "amount": 90, "isRecurring": True, "monthKey": "202911"},
            {"supplierName": "Meta", "clientId": "c1", "amount": 999, "isRecurring": True, "monthKey": PERIOD},
        ]
        templates = recurring_templates(expenses, PERIOD)
        by_key = {expense_key(t): t["amount"] for t in templates}
        assert by_key == {("meta", "c1"): 150, ("meta", "c2"): 90}

    def test_expense_key_normalizes_supplier(self):
        assert expense_key({"supplierName": " Google Ads ", "clientId": None}) == ("google ads", "")
