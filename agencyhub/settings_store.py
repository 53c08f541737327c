"""
Settings singleton: exactly one row per tenant, keyed by tenant_id.

Every write is an upsert on tenant_id so two sessions racing to create the
missing row end up with the same single row. API keys are written through
update_api_keys only; the cache keeps nothing but has* presence flags.
"""

import copy
import logging

from . import activity, config, notify
from .codec import encode_json_list, get_codec, parse_json_list
from .entities import SECRET_COLUMNS, SERVICES_COLUMN
from .errors import RemoteError, TenantNotResolved
from .tenant import with_tenant

log = logging.getLogger("agency.settings")

_WRITE_ERRORS = (RemoteError, TenantNotResolved)


def load_settings(engine) -> tuple:
    """(settings, services) for the tenant, creating the default row if missing."""
    codec = get_codec("settings")
    rows = engine.remote.select(codec.table, engine.tenant_id, limit=1)
    if rows:
        row = rows[0]
    else:
        log.info("No settings row for tenant %s: creating defaults", engine.tenant_id)
        row = with_tenant(codec.to_row(config.DEFAULT_SETTINGS), engine.tenant_id)
        row[SERVICES_COLUMN] = encode_json_list(config.INITIAL_SERVICES)
        engine.remote.upsert(codec.table, row, on_conflict="tenant_id")

    settings = codec.from_row(row)
    services = parse_json_list(row.get(SERVICES_COLUMN)) or copy.deepcopy(config.INITIAL_SERVICES)
    return settings, services


def update_settings(engine, settings: dict) -> dict:
    """Save the non-secret settings. Presence flags in the input are ignored."""
    codec = get_codec("settings")
    codec.validate(settings)
    current = engine.store.get("settings")
    try:
        row = with_tenant(codec.to_row(settings), engine.tenant_id)
        engine.remote.upsert(codec.table, row, on_conflict="tenant_id")
    except _WRITE_ERRORS as e:
        raise engine._failed("update settings", e, notify.MSG_SAVE_FAILED) from e

    saved = codec.from_row(row)
    for flag in SECRET_COLUMNS.values():
        saved[flag] = bool(current.get(flag))
    engine.store.set("settings", saved)
    engine.activity.log(activity.SETTINGS, "settings", "הגדרות הסוכנות עודכנו")
    return saved


def update_services(engine, services: list) -> list:
    codec = get_codec("settings")
    try:
        row = with_tenant({SERVICES_COLUMN: encode_json_list(services)}, engine.tenant_id)
        engine.remote.upsert(codec.table, row, on_conflict="tenant_id")
    except _WRITE_ERRORS as e:
        raise engine._failed("update services", e, notify.MSG_SAVE_FAILED) from e
    engine.store.set("services", services)
    engine.activity.log(activity.SETTINGS, "settings", "רשימת השירותים עודכנה")
    return engine.store.get("services")


def update_api_keys(engine, canva_api_key: str = None, gemini_api_key: str = None,
                    signals_webhook_secret: str = None):
    """
    Write only the given secret columns ("" clears a key). The values are
    never cached or returned; the cache only learns which keys are present.
    """
    given = {
        "canva_api_key": canva_api_key,
        "gemini_api_key": gemini_api_key,
        "signals_webhook_secret": signals_webhook_secret,
    }
    values = {col: (val or None) for col, val in given.items() if val is not None}
    if not values:
        return

    codec = get_codec("settings")
    try:
        engine.remote.upsert(codec.table, with_tenant(values, engine.tenant_id),
                             on_conflict="tenant_id")
    except _WRITE_ERRORS as e:
        raise engine._failed("update api keys", e, notify.MSG_SAVE_FAILED) from e

    settings = engine.store.get("settings")
    for col, val in values.items():
        settings[SECRET_COLUMNS[col]] = val is not None
    engine.store.set("settings", settings)
    engine.activity.log(activity.SETTINGS, "settings", "מפתחות API עודכנו")
