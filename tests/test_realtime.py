"""Tests for merging pushed realtime changes into the cache."""

import threading

import pytest

from agencyhub.errors import RemoteError
from agencyhub.realtime import RealtimeListener, parse_payload
from agencyhub.store import CacheStore

from conftest import OTHER_TENANT, TENANT, FakeChannel, FakeSupabase


def insert(row):
    return {"eventType": "INSERT", "new": row, "old": {}}


def update(row):
    return {"eventType": "UPDATE", "new": row, "old": {}}


@pytest.fixture
def listener():
    listener = RealtimeListener(FakeSupabase(), CacheStore(), TENANT)
    yield listener
    listener.stop()


LEAD_ROW = {"lead_id": "l-1", "lead_name": "From webhook", "status": "New", "tenant_id": TENANT}


class TestPayloads:
    def test_flat_shape(self):
        assert parse_payload(insert({"id": 1})) == ("INSERT", {"id": 1}, {})

    def test_realtime_client_shape(self):
        payload = {"data": {"type": "UPDATE", "record": {"id": 1}, "old_record": {"id": 0}}}
        assert parse_payload(payload) == ("UPDATE", {"id": 1}, {"id": 0})


class TestMerge:
    def test_insert_new_lead_prepends(self, listener):
        listener.store.append("leads", {"leadId": "old"})
        assert listener.handle_event("leads", insert(LEAD_ROW))
        leads = listener.store.get("leads")
        assert [l["leadId"] for l in leads] == ["l-1", "old"]
        assert leads[0]["status"] == "חדש"

    def test_insert_for_known_id_is_noop(self, listener):
        listener.handle_event("leads", insert(LEAD_ROW))
        before = listener.store.snapshot()
        assert not listener.handle_event("leads", insert(dict(LEAD_ROW, lead_name="Dup")))
        assert listener.store.snapshot() == before

    def test_update_replaces_known(self, listener):
        listener.handle_event("leads", insert(LEAD_ROW))
        assert listener.handle_event("leads", update(dict(LEAD_ROW, lead_name="Renamed")))
        assert listener.store.find("leads", "leadId", "l-1")["leadName"] == "Renamed"

    def test_update_for_unknown_id_ignored(self, listener):
        assert not listener.handle_event("leads", update(LEAD_ROW))
        assert listener.store.get("leads") == []

    def test_delete_ignored(self, listener):
        listener.handle_event("leads", insert(LEAD_ROW))
        assert not listener.handle_event("leads", {"eventType": "DELETE", "new": {}, "old": LEAD_ROW})
        assert len(listener.store.get("leads")) == 1

    def test_personality_insert(self, listener):
        row = {"id": "p-1", "lead_id": "l-1", "subject_name": "Dana",
               "smart_tags": '["analytical"]', "tenant_id": TENANT}
        listener.handle_event("signals_personality", insert(row))
        stored = listener.store.get("signalsPersonality")[0]
        assert stored["smartTags"] == ["analytical"]

    def test_other_tenant_ignored(self, listener):
        assert not listener.handle_event("leads", insert(dict(LEAD_ROW, tenant_id=OTHER_TENANT)))
        assert listener.store.get("leads") == []

    def test_unwatched_table_ignored(self, listener):
        assert not listener.handle_event("clients", insert({"client_id": "c1"}))


class TestSubscriptions:
    def test_start_subscribes_with_tenant_filter(self, listener):
        listener.start()
        fake = listener.client
        assert listener.subscribed == 2
        for ch in fake.channels:
            assert ch.subscribed
            assert ch.bindings[0]["filter"] == f"tenant_id=eq.{TENANT}"
        assert {ch.bindings[0]["table"] for ch in fake.channels} == {"leads", "signals_personality"}

    def test_channel_callback_reaches_cache(self, listener):
        listener.start()
        leads_channel = next(ch for ch in listener.client.channels
                             if ch.bindings[0]["table"] == "leads")
        leads_channel.emit(insert(LEAD_ROW))
        assert listener.store.contains("leads", "leadId", "l-1")

    def test_events_after_stop_dropped(self, listener):
        listener.start()
        listener.stop()
        assert listener.subscribed == 0
        assert len(listener.client.removed_channels) == 2
        assert not listener.handle_event("leads", insert(LEAD_ROW))
        assert listener.store.get("leads") == []

    def test_no_client_is_noop(self):
        listener = RealtimeListener(None, CacheStore(), TENANT)
        listener.start()
        listener.stop()
        assert listener.subscribed == 0

    def test_failed_subscription_raises_and_leaves_nothing_open(self, listener, monkeypatch):
        open_channel = listener.client.channel

        def sync_only(name):
            if "leads" in name:
                raise NotImplementedError("This feature isn't available in the sync client")
            return open_channel(name)

        monkeypatch.setattr(listener.client, "channel", sync_only)
        with pytest.raises(RemoteError):
            listener.start()
        assert listener.subscribed == 0
        assert len(listener.client.removed_channels) == 1


class AsyncChannel(FakeChannel):
    async def subscribe(self, callback=None):
        self.thread = threading.current_thread()
        if callback:
            callback("SUBSCRIBED", None)
        return super().subscribe(callback)


class AsyncClient:
    def __init__(self):
        self.channels = []
        self.removed_channels = []

    def channel(self, name):
        ch = AsyncChannel(name)
        self.channels.append(ch)
        return ch

    async def remove_channel(self, channel):
        self.removed_channels.append(channel)


class TestAsyncClient:
    def test_factory_client_created_and_subscribed_on_loop(self):
        client = AsyncClient()

        async def factory():
            return client

        listener = RealtimeListener(None, CacheStore(), TENANT, client_factory=factory)
        listener.start()
        assert listener.subscribed == 2
        assert all(ch.subscribed for ch in client.channels)
        assert all(ch.thread is not threading.current_thread() for ch in client.channels)

        leads_channel = next(ch for ch in client.channels if ch.bindings[0]["table"] == "leads")
        leads_channel.emit({"data": {"type": "INSERT", "record": LEAD_ROW}})
        assert listener.store.contains("leads", "leadId", "l-1")

        listener.stop()
        assert len(client.removed_channels) == 2

    def test_unconfigured_factory_raises(self):
        async def factory():
            return None

        listener = RealtimeListener(None, CacheStore(), TENANT, client_factory=factory)
        with pytest.raises(RemoteError):
            listener.start()
        assert listener.subscribed == 0
