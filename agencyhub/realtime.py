"""
Realtime listener: merges pushed row changes into the cache.

Only a few tables are subscribed: records written by external automation
(personality analyses, leads created by webhooks). INSERTs are merged
idempotently (a known id is ignored); UPDATEs replace a known entity and
are otherwise ignored; DELETEs are not handled here.

Supabase only offers realtime on its async client, so the listener owns an
asyncio loop on a daemon thread. Channels are created, subscribed and
removed on that loop; event callbacks run there too and go through the
thread-safe cache store.
"""

import asyncio
import inspect
import logging
import threading

from . import config
from .codec import get_codec
from .errors import RemoteError

log = logging.getLogger("agency.realtime")

# table → entity kind
TABLE_KINDS = {
    "signals_personality": "signals_personality",
    "leads": "lead",
}

INSERT = "INSERT"
UPDATE = "UPDATE"


def parse_payload(payload: dict) -> tuple:
    """
    (event_type, new_row, old_row) from either payload shape:
    {eventType, new, old} or the realtime client's {data: {type, record, old_record}}.
    """
    data = payload.get("data")
    if isinstance(data, dict) and ("record" in data or "type" in data):
        return (str(data.get("type") or "").upper(), data.get("record") or {},
                data.get("old_record") or {})
    event = payload.get("eventType") or payload.get("type") or ""
    return str(event).upper(), payload.get("new") or {}, payload.get("old") or {}


async def _resolve(result):
    if inspect.isawaitable(result):
        return await result
    return result


class RealtimeListener:
    """
    client:          a client with channel()/remove_channel(), sync or async
    client_factory:  coroutine function creating the client on the listener's
                     loop when client is None (see remote.create_async_client)
    """

    def __init__(self, client, store, tenant_id: str = "", tables: tuple = None,
                 client_factory=None, timeout: float = None):
        self.client = client
        self.client_factory = client_factory
        self.store = store
        self.tenant_id = tenant_id
        self.tables = tuple(tables or config.REALTIME_TABLES)
        self.timeout = timeout or config.REALTIME_TIMEOUT_SECONDS
        self._channels: list = []
        self._stopped = False
        self._lock = threading.Lock()
        self._loop = None
        self._thread = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def start(self):
        """
        Subscribe to every configured table for this tenant.
        Raises RemoteError (with no channel left open) if any table fails.
        """
        if self.client is None and self.client_factory is None:
            log.info("Realtime disabled: no Supabase client")
            return
        if self._channels:
            return
        self._stopped = False
        try:
            self._run(self._subscribe_all())
        except RemoteError:
            self.stop()
            raise
        except Exception as e:
            self.stop()
            raise RemoteError("subscribe", "realtime", e) from e

    def stop(self):
        """Remove every channel and stop the loop. Events that still arrive are dropped."""
        self._stopped = True
        if self._loop is None:
            self._channels = []
            return
        try:
            self._run(self._remove_all())
        except Exception as e:
            log.warning("Could not remove realtime channels: %s", e)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=self.timeout)
        if not self._thread.is_alive():
            self._loop.close()
        self._loop = None
        self._thread = None

    @property
    def subscribed(self) -> int:
        return len(self._channels)

    def _run(self, coro):
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._loop.run_forever, daemon=True,
                                            name="AgencyRealtime")
            self._thread.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout=self.timeout)

    async def _subscribe_all(self):
        if self.client is None:
            self.client = await self.client_factory()
            if self.client is None:
                raise RemoteError("subscribe", "realtime", RuntimeError("Supabase is not configured"))
        for table in self.tables:
            try:
                channel = self.client.channel(f"agency-{table}-{self.tenant_id}")
                channel.on_postgres_changes(
                    "*",
                    schema="public",
                    table=table,
                    filter=f"tenant_id=eq.{self.tenant_id}",
                    callback=lambda payload, t=table: self.handle_event(t, payload),
                )
                await _resolve(channel.subscribe(
                    lambda status, err=None, t=table: self._on_status(t, status, err)))
            except Exception as e:
                log.error("Realtime subscription to %s failed: %s", table, e)
                await self._remove_all()
                raise RemoteError("subscribe", table, e) from e
            self._channels.append(channel)
            log.info("Subscribed to realtime changes on %s", table)

    async def _remove_all(self):
        channels, self._channels = self._channels, []
        for channel in channels:
            try:
                await _resolve(self.client.remove_channel(channel))
            except Exception as e:
                log.warning("Could not remove realtime channel: %s", e)

    def _on_status(self, table: str, status, err=None):
        if err is not None:
            log.warning("Realtime channel %s: %s (%s)", table, status, err)
        else:
            log.debug("Realtime channel %s: %s", table, status)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def handle_event(self, table: str, payload: dict) -> bool:
        """Merge one pushed change. Returns True if the cache changed."""
        if self._stopped:
            log.debug("Dropping %s event after stop", table)
            return False
        kind = TABLE_KINDS.get(table)
        if kind is None:
            return False

        event, new_row, _old_row = parse_payload(payload)
        if not new_row:
            return False
        row_tenant = new_row.get("tenant_id")
        if row_tenant and self.tenant_id and row_tenant != self.tenant_id:
            log.warning("Ignoring %s event for another tenant", table)
            return False

        codec = get_codec(kind)
        entity = codec.from_row(new_row)
        entity_id = entity.get(codec.id_field)

        with self._lock:
            if event == INSERT:
                if self.store.contains(codec.collection, codec.id_field, entity_id):
                    log.debug("%s %s already cached: ignoring INSERT", kind, entity_id)
                    return False
                self.store.prepend(codec.collection, entity)
                log.info("Realtime: new %s %s", kind, entity_id)
                return True
            if event == UPDATE:
                changed = self.store.replace(codec.collection, codec.id_field, entity)
                if changed:
                    log.info("Realtime: updated %s %s", kind, entity_id)
                return changed
        return False
