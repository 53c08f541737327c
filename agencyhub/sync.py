"""
Sync engine for Agency Hub.

Write-through CRUD over Supabase with an in-memory cache:

- add:    validate → encode → tenant-stamp → remote insert → cache append
- update: diff watched fields → remote update → cache replace → derived records
- delete: children first (saga) → parent → cache remove

A failed remote call leaves the cache untouched, shows a transient error
and raises SyncError. Activity entries and derived audit records are
best-effort and never fail the primary operation.

Usage:
    from agencyhub.sync import SyncEngine

    engine = SyncEngine(client, tenant_id="...")
    engine.load_all()
    client = engine.add_client({"clientName": "...", "monthlyRetainer": 5000})
"""

import logging
from typing import Optional

from . import activity, batches, config, conversion, settings_store, transfer
from . import notify
from .activity import ActivityLogger
from .background import BackgroundQueue
from .codec import PRESENCE, get_codec
from .detector import detect
from .entities import (
    CLIENT_CHILD_KINDS, LIST_KINDS, NOTE_MANUAL, PAYMENT_PAID, PAYMENT_UNPAID,
)
from .errors import RemoteError, SyncError, TenantNotResolved
from .notify import Notifier
from .realtime import RealtimeListener
from .remote import Remote, create_async_client
from .saga import Saga
from .storage import BlobStorage
from .store import CacheStore
from .tenant import can_read, with_tenant
from .utils import month_key, new_id, now_iso

log = logging.getLogger("agency.sync")

# Failures that mean "the operation did not happen"
WRITE_ERRORS = (RemoteError, TenantNotResolved)

_CREATED_FIELDS = ("createdAt", "addedAt", "changedAt")


class SyncEngine:
    """
    Dependency-injected replacement for the web app's data context.

    client:      a supabase Client (or anything with the same table API)
    tenant_id:   the caller's tenant; reads are refused until it is known
    background:  queue for best-effort side effects
    notifier:    receives transient user-facing messages
    functions:   optional EdgeFunctions client for AI-derived records
    realtime_client: client for realtime channels; by default an async
                 client is created on first start() when client is set
    """

    def __init__(self, client=None, tenant_id: str = None, store: CacheStore = None,
                 background: BackgroundQueue = None, notifier: Notifier = None,
                 functions=None, user_id: str = None, user_name: str = None,
                 realtime_client=None):
        self.client = client
        self.remote = Remote(client)
        self.tenant_id = tenant_id if tenant_id is not None else config.TENANT_ID
        self.store = store or CacheStore()
        self.background = background or BackgroundQueue()
        self.notifier = notifier or Notifier()
        self.functions = functions
        self.user_id = user_id
        self.user_name = user_name
        self.activity = ActivityLogger(self.store, self.remote, self.background,
                                       self.tenant_id, user_id, user_name)
        factory = create_async_client if realtime_client is None and client is not None else None
        self.realtime = RealtimeListener(realtime_client, self.store, self.tenant_id,
                                         client_factory=factory)
        self.storage = BlobStorage(client, self.tenant_id)
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def set_tenant(self, tenant_id: str):
        """Called once identity resolution completes."""
        self.tenant_id = tenant_id
        self.activity.tenant_id = tenant_id
        self.realtime.tenant_id = tenant_id
        self.storage.tenant_id = tenant_id
        log.info("Tenant resolved: %s", tenant_id)

    def start(self):
        """Start background work and realtime subscriptions."""
        self.background.start()
        if can_read(self.tenant_id):
            try:
                self.realtime.start()
            except RemoteError as e:
                log.error("Realtime unavailable: %s", e)
                raise SyncError("Realtime subscription failed", e) from e

    def close(self):
        """Tear down subscriptions and drain best-effort work."""
        if self._closed:
            return
        self._closed = True
        self.realtime.stop()
        self.background.stop()
        log.info("Sync engine closed")

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    def load_all(self) -> bool:
        """
        Fetch every collection for the tenant and replace the cache.
        Returns False (store marked loaded, nothing fetched) while the
        tenant is unknown.
        """
        if not can_read(self.tenant_id):
            self.store.mark_loaded()
            return False

        data = {}
        try:
            for kind in LIST_KINDS:
                codec = get_codec(kind)
                if kind == "activity":
                    rows = self.remote.select(codec.table, self.tenant_id, order="created_at",
                                              desc=True, limit=config.ACTIVITY_LOG_LIMIT)
                else:
                    rows = self.remote.select(codec.table, self.tenant_id)
                data[codec.collection] = [codec.from_row(r) for r in rows]
            data["settings"], data["services"] = settings_store.load_settings(self)
        except WRITE_ERRORS as e:
            self.store.mark_loaded()
            raise self._failed("load_all", e, notify.MSG_LOAD_FAILED) from e

        self.store.load(data)
        log.info("Loaded %d clients, %d leads for tenant %s",
                 len(data["clients"]), len(data["leads"]), self.tenant_id)
        return True

    # ------------------------------------------------------------------
    # Generic CRUD
    # ------------------------------------------------------------------
    def add(self, kind: str, data: dict, log_activity: bool = True) -> dict:
        """Create an entity of `kind`. Raises SyncError if the insert fails."""
        codec = get_codec(kind)
        entity = self._new_entity(codec, data)
        codec.validate(entity)
        try:
            entity = self._insert(codec, entity)
        except WRITE_ERRORS as e:
            raise self._failed(f"add {kind}", e, notify.MSG_SAVE_FAILED) from e
        if log_activity:
            self.activity.log(activity.CREATE, kind, f"נוצר {codec.describe(entity)}",
                              entity.get(codec.id_field))
        return entity

    def update(self, kind: str, entity: dict) -> dict:
        """Persist a changed entity. Raises SyncError if the update fails."""
        codec = get_codec(kind)
        codec.validate(entity)
        entity_id = entity.get(codec.id_field)
        old = self.store.find(codec.collection, codec.id_field, entity_id)
        entity = self._protect(kind, old, entity)
        derived = detect(kind, old, entity)

        try:
            row = with_tenant(codec.to_row(entity), self.tenant_id)
            self.remote.update(codec.table, row,
                               {codec.id_column: entity_id, "tenant_id": row["tenant_id"]})
        except WRITE_ERRORS as e:
            raise self._failed(f"update {kind} {entity_id}", e, notify.MSG_SAVE_FAILED) from e

        updated = codec.from_row(row)
        if not self.store.replace(codec.collection, codec.id_field, updated):
            self.store.append(codec.collection, updated)
        if derived:
            self._record_derived(*derived)
        self.activity.log(activity.UPDATE, kind, f"עודכן {codec.describe(updated)}", entity_id)
        return updated

    def delete(self, kind: str, entity_id: str):
        """Delete one entity. Raises SyncError if the delete fails."""
        if kind == "client":
            return self.delete_client(entity_id)
        codec = get_codec(kind)
        existing = self.store.find(codec.collection, codec.id_field, entity_id) or {}
        try:
            self.remote.delete(codec.table, self._scoped({codec.id_column: entity_id}))
        except WRITE_ERRORS as e:
            raise self._failed(f"delete {kind} {entity_id}", e, notify.MSG_DELETE_FAILED) from e
        self.store.remove(codec.collection, lambda i: i.get(codec.id_field) == entity_id)
        self.activity.log(activity.DELETE, kind, f"נמחק {codec.describe(existing)}", entity_id)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------
    def add_client(self, data: dict) -> dict:
        client = self.add("client", data)
        self._create_first_payment(client, "נוצר אוטומטית עם הקמת לקוח")
        return client

    def update_client(self, client: dict) -> dict:
        return self.update("client", client)

    def delete_client(self, client_id: str):
        """
        Delete a client and its deals, expenses and payments.
        Children go first; if the client delete then fails, the removed child
        rows are re-inserted so nothing is left half-deleted.
        """
        codec = get_codec("client")
        existing = self.store.find(codec.collection, codec.id_field, client_id) or {}
        saga = Saga("delete_client")
        try:
            for kind in CLIENT_CHILD_KINDS:
                self._delete_children(saga, kind, client_id)
            saga.step("delete_client", lambda: self.remote.delete(
                codec.table, self._scoped({codec.id_column: client_id})))
        except WRITE_ERRORS as e:
            if not saga.consistent:
                self.notifier.error(notify.MSG_INCONSISTENT)
            raise self._failed(f"delete client {client_id}", e, notify.MSG_DELETE_FAILED) from e

        def changes(data):
            updated = {codec.collection: [c for c in data[codec.collection]
                                          if c.get("clientId") != client_id]}
            for kind in CLIENT_CHILD_KINDS:
                name = get_codec(kind).collection
                updated[name] = [i for i in data[name] if i.get("clientId") != client_id]
            return updated

        self.store.apply(changes)
        self.activity.log(activity.DELETE, "client", f"נמחק {codec.describe(existing)}", client_id)

    def _delete_children(self, saga: Saga, kind: str, client_id: str):
        child = get_codec(kind)
        cached = [e for e in self.store.get(child.collection) if e.get("clientId") == client_id]
        rows = [with_tenant(child.to_row(e), self.tenant_id) for e in cached]

        def undo(_result):
            if rows:
                self.remote.insert(child.table, rows)

        saga.step(f"delete_{child.table}",
                  lambda: self.remote.delete(child.table, self._scoped({"client_id": client_id})),
                  undo=undo)

    def _create_first_payment(self, client: dict, note: str):
        """Current month's payment for a new client. Best-effort."""
        codec = get_codec("payment")
        payment = self._new_entity(codec, {
            "clientId": client["clientId"],
            "periodMonth": month_key(),
            "amountDue": client.get("monthlyRetainer") or 0,
            "amountPaid": 0,
            "paymentStatus": PAYMENT_UNPAID,
            "notes": note,
        })
        try:
            return self._insert(codec, payment)
        except WRITE_ERRORS as e:
            log.warning("Could not create first payment for client %s: %s",
                        client["clientId"], e)
            return None

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------
    def add_lead(self, data: dict) -> dict:
        return self.add("lead", data)

    def update_lead(self, lead: dict) -> dict:
        return self.update("lead", lead)

    def delete_lead(self, lead_id: str):
        self.delete("lead", lead_id)

    def convert_lead_to_client(self, lead_id: str, client_data: dict) -> dict:
        return conversion.convert_lead_to_client(self, lead_id, client_data)

    # ------------------------------------------------------------------
    # Deals / expenses / payments
    # ------------------------------------------------------------------
    def add_deal(self, data: dict) -> dict:
        return self.add("deal", data)

    def update_deal(self, deal: dict) -> dict:
        return self.update("deal", deal)

    def delete_deal(self, deal_id: str):
        self.delete("deal", deal_id)

    def add_expense(self, data: dict) -> dict:
        return self.add("expense", data)

    def update_expense(self, expense: dict) -> dict:
        return self.update("expense", expense)

    def delete_expense(self, expense_id: str):
        self.delete("expense", expense_id)

    def add_payment(self, data: dict) -> dict:
        return self.add("payment", data)

    def update_payment(self, payment: dict) -> dict:
        return self.update("payment", payment)

    def delete_payment(self, payment_id: str):
        self.delete("payment", payment_id)

    def mark_payment_paid(self, payment_id: str) -> dict:
        payment = self.store.find("payments", "paymentId", payment_id)
        if payment is None:
            raise SyncError(f"Unknown payment {payment_id}")
        payment.update({
            "amountPaid": payment.get("amountDue") or 0,
            "paymentStatus": PAYMENT_PAID,
            "paymentDate": now_iso(),
        })
        return self.update("payment", payment)

    def generate_monthly_payments(self, period: str = None) -> int:
        return batches.generate_monthly_payments(self, period or month_key())

    def generate_monthly_expenses(self, period: str = None) -> int:
        return batches.generate_monthly_expenses(self, period or month_key())

    # ------------------------------------------------------------------
    # Notes (client / lead)
    # ------------------------------------------------------------------
    def add_client_note(self, client_id: str, content: str, created_by: str = "",
                        created_by_name: str = "", note_type: str = NOTE_MANUAL,
                        source_id: str = None) -> dict:
        return self._add_note("client_note", "clientId", client_id, content,
                              created_by, created_by_name, note_type, source_id)

    def add_lead_note(self, lead_id: str, content: str, created_by: str = "",
                      created_by_name: str = "", note_type: str = NOTE_MANUAL,
                      source_id: str = None) -> dict:
        return self._add_note("lead_note", "leadId", lead_id, content,
                              created_by, created_by_name, note_type, source_id)

    def delete_client_note(self, note_id: str):
        self.delete("client_note", note_id)

    def delete_lead_note(self, note_id: str):
        self.delete("lead_note", note_id)

    def _add_note(self, kind: str, parent_field: str, parent_id: str, content: str,
                  created_by: str, created_by_name: str, note_type: str,
                  source_id: Optional[str]) -> dict:
        codec = get_codec(kind)
        if source_id:
            for note in self.store.get(codec.collection):
                if (note.get(parent_field) == parent_id and note.get("sourceId") == source_id
                        and note.get("noteType") == note_type):
                    log.debug("Note for source %s already exists: skipping", source_id)
                    return note
        return self.add(kind, {
            parent_field: parent_id,
            "content": content,
            "noteType": note_type,
            "sourceId": source_id,
            "createdBy": created_by,
            "createdByName": created_by_name,
        })

    # ------------------------------------------------------------------
    # Intelligence records
    # ------------------------------------------------------------------
    def add_call_transcript(self, data: dict) -> dict:
        return self.add("call_transcript", data)

    def delete_call_transcript(self, transcript_id: str):
        self.delete("call_transcript", transcript_id)

    def summarize_transcript(self, transcript_id: str) -> Optional[dict]:
        """
        Ask the summary function for a transcript summary and store it as a
        note on the transcript's client or lead. Re-running is a no-op.
        """
        if self.functions is None:
            raise SyncError("Edge functions are not configured")
        transcript = self.store.find("callTranscripts", "id", transcript_id)
        if transcript is None:
            raise SyncError(f"Unknown transcript {transcript_id}")
        summary = self.functions.generate_summary(
            "transcript_summary", transcript.get("transcript") or transcript.get("summary"))
        if not summary:
            return None
        if transcript.get("clientId"):
            return self.add_client_note(transcript["clientId"], summary, self.user_id or "",
                                        self.user_name or "", "transcript_summary", transcript_id)
        return self.add_lead_note(transcript["leadId"], summary, self.user_id or "",
                                  self.user_name or "", "transcript_summary", transcript_id)

    # ------------------------------------------------------------------
    # Calendar / ideas / knowledge base
    # ------------------------------------------------------------------
    def add_calendar_event(self, data: dict) -> dict:
        return self.add("calendar_event", data)

    def update_calendar_event(self, event: dict) -> dict:
        return self.update("calendar_event", event)

    def delete_calendar_event(self, event_id: str):
        self.delete("calendar_event", event_id)

    def add_idea(self, data: dict) -> dict:
        return self.add("idea", data)

    def update_idea(self, idea: dict) -> dict:
        return self.update("idea", dict(idea, updatedAt=now_iso()))

    def delete_idea(self, idea_id: str):
        self.delete("idea", idea_id)

    def add_knowledge_article(self, data: dict) -> dict:
        return self.add("knowledge_article", data)

    def update_knowledge_article(self, article: dict) -> dict:
        return self.update("knowledge_article", dict(article, updatedAt=now_iso()))

    def delete_knowledge_article(self, article_id: str):
        self.delete("knowledge_article", article_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def update_settings(self, settings: dict) -> dict:
        return settings_store.update_settings(self, settings)

    def update_services(self, services: list) -> list:
        return settings_store.update_services(self, services)

    def update_api_keys(self, **secrets):
        settings_store.update_api_keys(self, **secrets)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------
    def export_data(self) -> str:
        return transfer.export_data(self.store)

    def import_data(self, text: str) -> bool:
        ok = transfer.import_data(self.store, text)
        if ok:
            self.activity.log(activity.IMPORT, "data", "יובאו נתונים מקובץ")
        return ok

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _new_entity(self, codec, data: dict) -> dict:
        entity = {f.name: f.default() for f in codec.fields if f.kind != PRESENCE}
        entity.update(data)
        if codec.id_field:
            entity[codec.id_field] = new_id()
        for name in _CREATED_FIELDS:
            if name in entity and not data.get(name):
                entity[name] = now_iso()
        return entity

    def _insert(self, codec, entity: dict) -> dict:
        """Remote insert, then cache append. Raises on failure, cache untouched."""
        row = with_tenant(codec.to_row(entity), self.tenant_id)
        self.remote.insert(codec.table, row)
        stored = codec.from_row(row)
        self.store.append(codec.collection, stored)
        return stored

    def _scoped(self, filters: dict) -> dict:
        return with_tenant(filters, self.tenant_id)

    def _protect(self, kind: str, old: Optional[dict], entity: dict) -> dict:
        """A lead's relatedClientId, once set, is never cleared."""
        if kind == "lead" and old and old.get("relatedClientId") and not entity.get("relatedClientId"):
            log.warning("Ignoring attempt to clear relatedClientId on lead %s", entity.get("leadId"))
            return dict(entity, relatedClientId=old["relatedClientId"])
        return entity

    def _record_derived(self, kind: str, record: dict):
        """Cache a derived audit record now, persist it best-effort."""
        codec = get_codec(kind)
        self.store.append(codec.collection, record)
        row = with_tenant(codec.to_row(record), self.tenant_id)
        self.background.submit(f"derived:{kind}", lambda: self.remote.insert(codec.table, row))

    def _failed(self, action: str, error: Exception, message: str) -> SyncError:
        log.error("%s failed: %s", action, error)
        self.notifier.error(message)
        return SyncError(message, error)
