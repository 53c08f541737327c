"""
Monthly batch generation: recurring expenses and retainer payments.

Both generators read what already exists remotely for the period, compute
a dedup key per candidate and insert only the missing ones in one batch, so
running them again for the same month creates nothing.
"""

import logging

from . import activity, notify
from .codec import get_codec
from .entities import CLIENT_STATUS_ACTIVE, PAYMENT_UNPAID
from .errors import RemoteError, TenantNotResolved
from .tenant import can_read, with_tenant
from .utils import month_name

log = logging.getLogger("agency.batches")


def _first_day(period: str) -> str:
    return f"{period[0:4]}-{period[4:6]}-01"


def _insert_batch(engine, kind: str, entities: list, period: str) -> int:
    codec = get_codec(kind)
    if not entities:
        log.info("%s batch for %s: nothing to create", kind, period)
        return 0
    try:
        rows = [with_tenant(codec.to_row(e), engine.tenant_id) for e in entities]
        engine.remote.insert(codec.table, rows)
    except (RemoteError, TenantNotResolved) as e:
        raise engine._failed(f"generate {kind} for {period}", e, notify.MSG_SAVE_FAILED) from e
    engine.store.extend(codec.collection, [codec.from_row(r) for r in rows])
    log.info("%s batch for %s: created %d", kind, period, len(rows))
    return len(rows)


def _existing(engine, kind: str, period_column: str, period: str) -> list[dict]:
    codec = get_codec(kind)
    try:
        rows = engine.remote.select(codec.table, engine.tenant_id, {period_column: period})
    except RemoteError as e:
        raise engine._failed(f"read {kind} for {period}", e, notify.MSG_LOAD_FAILED) from e
    return [codec.from_row(r) for r in rows]


# ══════════════════════════════════════════════════════════════
# EXPENSES
# ══════════════════════════════════════════════════════════════

def expense_key(expense: dict) -> tuple:
    return ((expense.get("supplierName") or "").strip().lower(), expense.get("clientId") or "")


def recurring_templates(expenses: list, period: str) -> list:
    """Latest recurring expense per (supplier, client) from other months."""
    latest = {}
    for e in sorted(expenses, key=lambda x: x.get("monthKey") or ""):
        if e.get("isRecurring") and e.get("monthKey") != period:
            latest[expense_key(e)] = e
    return list(latest.values())


def generate_monthly_expenses(engine, period: str) -> int:
    """Copy recurring expenses into `period`. Returns the number created."""
    if not can_read(engine.tenant_id):
        return 0
    codec = get_codec("expense")
    present = {expense_key(e) for e in _existing(engine, "expense", "month_key", period)}

    created = []
    for template in recurring_templates(engine.store.get(codec.collection), period):
        if expense_key(template) in present:
            continue
        created.append(engine._new_entity(codec, {
            "clientId": template.get("clientId"),
            "expenseDate": _first_day(period),
            "monthKey": period,
            "supplierName": template.get("supplierName", ""),
            "expenseType": template.get("expenseType", ""),
            "amount": template.get("amount") or 0,
            "notes": "נוצר אוטומטית (הוצאה קבועה)",
            "isRecurring": True,
        }))
        present.add(expense_key(template))

    count = _insert_batch(engine, "expense", created, period)
    if count:
        engine.activity.log(activity.GENERATE, "expense",
                            f"נוצרו {count} הוצאות קבועות לחודש {month_name(period)}")
    return count


# ══════════════════════════════════════════════════════════════
# PAYMENTS
# ══════════════════════════════════════════════════════════════

def generate_monthly_payments(engine, period: str) -> int:
    """One Unpaid payment per active client with a retainer. Returns the number created."""
    if not can_read(engine.tenant_id):
        return 0
    codec = get_codec("payment")
    present = {p.get("clientId") for p in _existing(engine, "payment", "period_month", period)}

    created = []
    for client in engine.store.get("clients"):
        if client.get("status") != CLIENT_STATUS_ACTIVE:
            continue
        if not client.get("monthlyRetainer") or client["clientId"] in present:
            continue
        created.append(engine._new_entity(codec, {
            "clientId": client["clientId"],
            "periodMonth": period,
            "amountDue": client["monthlyRetainer"],
            "amountPaid": 0,
            "paymentStatus": PAYMENT_UNPAID,
            "notes": "נוצר אוטומטית",
        }))
        present.add(client["clientId"])

    count = _insert_batch(engine, "payment", created, period)
    if count:
        engine.activity.log(activity.GENERATE, "payment",
                            f"נוצרו {count} תשלומים לחודש {month_name(period)}")
    return count
