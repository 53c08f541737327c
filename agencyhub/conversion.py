"""
Lead → client conversion.

    open → creating → linking → linked
                         └──→ rolled_back

1. creating: insert a client built from the lead plus the caller's overrides
2. linking:  mark the lead won and point relatedClientId at the new client
3. linked:   re-key the lead's intelligence records to the client
             (best-effort), merge everything into the cache in one step
4. rolled_back: the lead update failed, so the new client row is deleted
             again and the original error is raised; the cache never sees
             the client
"""

import logging
from datetime import datetime

from . import activity, notify
from .codec import get_codec
from .entities import CLIENT_STATUS_ACTIVE, LEAD_STATUS_WON
from .errors import RemoteError, SyncError, TenantNotResolved
from .saga import Saga
from .tenant import with_tenant

log = logging.getLogger("agency.conversion")

# Satellite records that follow a lead to its client
INTELLIGENCE_KINDS = (
    "signals_personality",
    "call_transcript",
    "ai_recommendation",
    "whatsapp_message",
    "strategy_plan",
    "competitor_report",
)


class ConversionState:
    OPEN = "open"
    CREATING = "creating"
    LINKING = "linking"
    LINKED = "linked"
    ROLLED_BACK = "rolled_back"


class LeadConversion:
    """One conversion attempt. `state` records how far it got."""

    def __init__(self, engine, lead_id: str, client_data: dict):
        self.engine = engine
        self.lead_id = lead_id
        self.client_data = dict(client_data or {})
        self.state = ConversionState.OPEN
        self.saga = Saga(f"convert_lead:{lead_id}")

    def _enter(self, state: str):
        log.debug("lead %s: %s → %s", self.lead_id, self.state, state)
        self.state = state

    def client_from_lead(self, lead: dict) -> dict:
        base = {
            "clientName": lead.get("leadName", ""),
            "businessName": lead.get("businessName", ""),
            "phone": lead.get("phone", ""),
            "email": lead.get("email", ""),
            "services": list(lead.get("interestedServices") or []),
            "monthlyRetainer": lead.get("quotedMonthlyValue") or 0,
            "status": CLIENT_STATUS_ACTIVE,
            "joinDate": datetime.now().date().isoformat(),
            "notes": lead.get("notes", ""),
            "assignedTo": lead.get("assignedTo"),
        }
        base.update(self.client_data)
        return base

    def run(self) -> dict:
        engine = self.engine
        client_codec = get_codec("client")
        lead_codec = get_codec("lead")

        lead = engine.store.find(lead_codec.collection, "leadId", self.lead_id)
        if lead is None:
            raise SyncError(f"Unknown lead {self.lead_id}")
        if lead.get("relatedClientId"):
            raise SyncError(f"Lead {self.lead_id} was already converted "
                            f"to client {lead['relatedClientId']}")

        client = engine._new_entity(client_codec, self.client_from_lead(lead))
        client_codec.validate(client)
        client_id = client["clientId"]
        won_lead = dict(lead, status=LEAD_STATUS_WON, relatedClientId=client_id)

        try:
            client_row = with_tenant(client_codec.to_row(client), engine.tenant_id)
            lead_row = with_tenant(lead_codec.to_row(won_lead), engine.tenant_id)
            scope = client_row["tenant_id"]

            self._enter(ConversionState.CREATING)
            self.saga.step(
                "create_client",
                lambda: engine.remote.insert(client_codec.table, client_row),
                undo=lambda _r: engine.remote.delete(
                    client_codec.table, {"client_id": client_id, "tenant_id": scope}),
            )
            self._enter(ConversionState.LINKING)
            self.saga.step(
                "link_lead",
                lambda: engine.remote.update(
                    lead_codec.table, lead_row, {"lead_id": self.lead_id, "tenant_id": scope}),
            )
        except (RemoteError, TenantNotResolved) as e:
            if self.state != ConversionState.OPEN:
                self._enter(ConversionState.ROLLED_BACK)
            if not self.saga.consistent:
                log.critical("Lead %s conversion left client %s behind after a failed rollback",
                             self.lead_id, client_id)
                engine.notifier.error(notify.MSG_INCONSISTENT)
            raise engine._failed(f"convert lead {self.lead_id}", e,
                                 notify.MSG_CONVERT_FAILED) from e

        self._enter(ConversionState.LINKED)
        self._reparent(client_id, scope)

        stored_client = client_codec.from_row(client_row)
        stored_lead = lead_codec.from_row(lead_row)
        engine.store.apply(lambda data: self._merge(data, stored_client, stored_lead))

        engine.activity.log(activity.CONVERT, "lead",
                            f"ליד הומר ללקוח: {stored_client.get('clientName', '')}",
                            self.lead_id)
        engine._create_first_payment(stored_client, "נוצר אוטומטית המרה מליד")
        return stored_client

    def _reparent(self, client_id: str, scope: str):
        """
        Best-effort: intelligence rows keyed to the lead also get the client id.
        Every table is updated, including rows written remotely after load.
        """
        engine = self.engine
        for kind in INTELLIGENCE_KINDS:
            codec = get_codec(kind)
            engine.background.submit(
                f"reparent:{codec.table}",
                lambda table=codec.table: engine.remote.update(
                    table, {"client_id": client_id},
                    {"lead_id": self.lead_id, "tenant_id": scope}),
            )

    def _merge(self, data: dict, client: dict, lead: dict) -> dict:
        client_id = client["clientId"]
        changes = {
            "clients": data["clients"] + [client],
            "leads": [lead if l.get("leadId") == self.lead_id else l for l in data["leads"]],
        }
        for kind in INTELLIGENCE_KINDS:
            name = get_codec(kind).collection
            changes[name] = [dict(r, clientId=client_id) if r.get("leadId") == self.lead_id else r
                             for r in data[name]]
        return changes


def convert_lead_to_client(engine, lead_id: str, client_data: dict) -> dict:
    """Run one conversion and return the new client."""
    return LeadConversion(engine, lead_id, client_data).run()
