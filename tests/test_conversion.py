"""Tests for lead → client conversion and its rollback."""

import logging

import pytest

from agencyhub import notify
from agencyhub.codec import get_codec
from agencyhub.conversion import INTELLIGENCE_KINDS, ConversionState, LeadConversion
from agencyhub.entities import LEAD_STATUS_WON
from agencyhub.errors import SyncError

from conftest import TENANT, toast_messages


@pytest.fixture
def lead(engine):
    return engine.add_lead({
        "leadName": "Dana Levi", "businessName": "Levi Bakery", "phone": "050-1234567",
        "status": "נקבעה פגישה", "quotedMonthlyValue": 3500,
        "interestedServices": ["facebook_ads"],
    })


@pytest.fixture
def personality(fake, engine, lead):
    fake.tables["signals_personality"].append({
        "id": "p-1", "lead_id": lead["leadId"], "client_id": None,
        "subject_name": "Dana Levi", "tenant_id": TENANT,
    })
    engine.load_all()
    return engine.store.find("signalsPersonality", "id", "p-1")


class TestConversionSuccess:
    def test_creates_client_and_links_lead(self, fake, engine, lead):
        client = engine.convert_lead_to_client(lead["leadId"], {})

        assert client["clientName"] == "Dana Levi"
        assert client["monthlyRetainer"] == 3500
        assert client["services"] == ["facebook_ads"]
        assert engine.store.find("clients", "clientId", client["clientId"])

        stored_lead = engine.store.find("leads", "leadId", lead["leadId"])
        assert stored_lead["status"] == LEAD_STATUS_WON
        assert stored_lead["relatedClientId"] == client["clientId"]
        remote_lead = fake.tables["leads"][0]
        assert remote_lead["related_client_id"] == client["clientId"]

    def test_overrides_win(self, engine, lead):
        client = engine.convert_lead_to_client(lead["leadId"], {"monthlyRetainer": 4200,
                                                                "billingDay": 10})
        assert client["monthlyRetainer"] == 4200
        assert client["billingDay"] == 10

    def test_personality_rows_follow_the_lead(self, fake, engine, lead, personality):
        client = engine.convert_lead_to_client(lead["leadId"], {})
        cached = engine.store.find("signalsPersonality", "id", "p-1")
        assert cached["clientId"] == client["clientId"]
        assert cached["leadId"] == lead["leadId"]
        assert fake.tables["signals_personality"][0]["client_id"] == client["clientId"]

    def test_remote_only_intelligence_rows_are_rekeyed(self, fake, engine, lead):
        fake.tables["signals_personality"].append({
            "id": "p-late", "lead_id": lead["leadId"], "client_id": None,
            "subject_name": "Dana Levi", "tenant_id": TENANT,
        })
        assert engine.store.get("signalsPersonality") == []

        client = engine.convert_lead_to_client(lead["leadId"], {})
        assert fake.tables["signals_personality"][0]["client_id"] == client["clientId"]
        updated = {table for op, table in fake.calls if op == "update"}
        assert {get_codec(kind).table for kind in INTELLIGENCE_KINDS} <= updated

    def test_first_payment_and_activity(self, engine, lead):
        client = engine.convert_lead_to_client(lead["leadId"], {})
        payments = [p for p in engine.store.get("payments") if p["clientId"] == client["clientId"]]
        assert len(payments) == 1
        assert payments[0]["amountDue"] == 3500
        assert engine.store.get("activities")[0]["actionType"] == "convert"

    def test_state_reaches_linked(self, engine, lead):
        conversion = LeadConversion(engine, lead["leadId"], {})
        conversion.run()
        assert conversion.state == ConversionState.LINKED
        assert conversion.saga.completed == ["create_client", "link_lead"]


class TestConversionGuards:
    def test_unknown_lead(self, engine):
        with pytest.raises(SyncError):
            engine.convert_lead_to_client("missing", {})

    def test_already_converted(self, engine, lead):
        engine.convert_lead_to_client(lead["leadId"], {})
        with pytest.raises(SyncError):
            engine.convert_lead_to_client(lead["leadId"], {})
        assert len(engine.store.get("clients")) == 1


class TestConversionRollback:
    def test_lead_update_failure_removes_client(self, fake, engine, lead, personality):
        before = engine.store.snapshot()
        fake.fail_on("leads", "update")

        conversion = LeadConversion(engine, lead["leadId"], {})
        with pytest.raises(SyncError):
            conversion.run()

        assert conversion.state == ConversionState.ROLLED_BACK
        assert fake.tables["clients"] == []
        assert engine.store.snapshot() == before
        assert fake.tables["signals_personality"][0]["client_id"] is None
        assert notify.MSG_CONVERT_FAILED in toast_messages(engine)

    def test_client_insert_failure_touches_nothing(self, fake, engine, lead):
        before = engine.store.snapshot()
        fake.fail_on("clients", "insert")
        with pytest.raises(SyncError):
            engine.convert_lead_to_client(lead["leadId"], {})
        assert engine.store.snapshot() == before
        assert fake.tables["leads"][0]["related_client_id"] is None

    def test_failed_compensation_is_critical(self, fake, engine, lead, caplog):
        fake.fail_on("leads", "update")
        fake.fail_on("clients", "delete")

        with caplog.at_level(logging.CRITICAL):
            with pytest.raises(SyncError):
                engine.convert_lead_to_client(lead["leadId"], {})

        assert any(r.levelno == logging.CRITICAL for r in caplog.records)
        assert notify.MSG_INCONSISTENT in toast_messages(engine)
        assert engine.store.get("clients") == []
