"""Tests for JSON export and import."""

import json

from agencyhub import config, transfer
from agencyhub.store import CacheStore, collection_names


class TestExport:
    def test_export_is_keyed_by_collection(self, engine):
        engine.add_client({"clientName": "Acme", "monthlyRetainer": 1000})
        data = json.loads(engine.export_data())
        for name in collection_names():
            assert name in data
        assert data["clients"][0]["clientName"] == "Acme"
        assert "settings" in data and "services" in data

    def test_export_keeps_hebrew_readable(self, engine):
        engine.add_lead({"leadName": "דנה"})
        assert "דנה" in engine.export_data()


class TestImport:
    def test_invalid_json_rejected(self, engine):
        before = engine.store.snapshot()
        assert engine.import_data("{not json") is False
        assert engine.store.snapshot() == before

    def test_missing_lists_rejected(self, engine):
        before = engine.store.snapshot()
        assert engine.import_data(json.dumps({"clients": []})) is False
        assert engine.import_data(json.dumps({"clients": {}, "leads": []})) is False
        assert engine.import_data(json.dumps([1, 2])) is False
        assert engine.store.snapshot() == before

    def test_minimal_payload_fills_defaults(self):
        store = CacheStore()
        payload = {"clients": [{"clientId": "c1"}], "leads": []}
        assert transfer.import_data(store, json.dumps(payload)) is True
        assert store.get("clients") == [{"clientId": "c1"}]
        assert store.get("payments") == []
        assert store.get("settings") == config.DEFAULT_SETTINGS
        assert store.get("services") == config.INITIAL_SERVICES

    def test_export_then_import_restores_clients(self, engine, make_engine):
        engine.add_client({"clientName": "Acme", "monthlyRetainer": 1000})
        exported = engine.export_data()

        other = make_engine(tenant_id="", load=False)
        assert other.import_data(exported) is True
        assert other.store.get("clients") == engine.store.get("clients")

    def test_import_logs_activity(self, engine):
        engine.import_data(json.dumps({"clients": [], "leads": []}))
        assert engine.store.get("activities")[0]["actionType"] == "import"

    def test_secret_settings_never_enter_cache(self, engine):
        payload = {"clients": [], "leads": [], "settings": {
            "agencyName": "Imported Agency",
            "geminiApiKey": "sk-live-SECRET",
            "gemini_api_key": "sk-live-SECRET",
            "hasGeminiKey": True,
        }}
        assert engine.import_data(json.dumps(payload)) is True
        settings = engine.store.get("settings")
        assert settings["agencyName"] == "Imported Agency"
        assert settings["hasGeminiKey"] is False
        assert "geminiApiKey" not in settings
        assert "sk-live-SECRET" not in json.dumps(engine.store.snapshot())

    def test_presence_flags_keep_current_values(self):
        store = CacheStore()
        store.set("settings", dict(config.DEFAULT_SETTINGS, hasCanvaKey=True))
        payload = {"clients": [], "leads": [], "settings": {"hasCanvaKey": False}}
        assert transfer.import_data(store, json.dumps(payload)) is True
        assert store.get("settings")["hasCanvaKey"] is True
