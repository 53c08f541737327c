"""
Derived-event detection: compares the cached and incoming versions of an
entity on its watched fields only and synthesizes at most one audit record.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from .codec import _to_number

# kind → watched fields
WATCHED_FIELDS = {
    "client": ("monthlyRetainer", "supplierCostMonthly"),
}


def changed_fields(kind: str, old: dict, new: dict) -> list:
    """Watched fields whose value differs between old and new."""
    return [f for f in WATCHED_FIELDS.get(kind, ())
            if _num(old.get(f)) != _num(new.get(f))]


def detect_retainer_change(old: Optional[dict], new: dict, now: str = None) -> Optional[dict]:
    """RetainerChange for a client update, or None when neither watched field moved."""
    if not old or not changed_fields("client", old, new):
        return None
    return {
        "id": str(uuid.uuid4()),
        "clientId": new.get("clientId"),
        "oldRetainer": _num(old.get("monthlyRetainer")),
        "newRetainer": _num(new.get("monthlyRetainer")),
        "oldSupplierCost": _num(old.get("supplierCostMonthly")),
        "newSupplierCost": _num(new.get("supplierCostMonthly")),
        "changedAt": now or datetime.now(timezone.utc).isoformat(),
        "notes": "",
    }


def detect(kind: str, old: Optional[dict], new: dict) -> Optional[tuple]:
    """(derived_kind, record) for kinds with watched fields, else None."""
    if kind == "client":
        record = detect_retainer_change(old, new)
        if record:
            return "retainer_change", record
    return None


def _num(value):
    return _to_number(value) if value is not None else 0
