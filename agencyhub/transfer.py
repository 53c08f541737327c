"""
JSON import / export of the whole cache.

The file is one flat object whose keys are the cache collection names
("clients", "leads", "retainerHistory", ...). Import requires "clients" and
"leads" to be lists; every other collection defaults to [] when absent.
"""

import copy
import json
import logging

from . import config
from .codec import PRESENCE, get_codec
from .entities import SECRET_COLUMNS
from .store import SERVICES, SETTINGS, collection_names

log = logging.getLogger("agency.transfer")


def export_data(store) -> str:
    return json.dumps(store.snapshot(), ensure_ascii=False, indent=2)


def parse_import(text: str, current_settings: dict = None) -> dict:
    """
    Validate and normalise an export file. Raises ValueError when invalid.

    Only non-secret settings fields are taken from the file. Secret values
    and has*Key flags in it are dropped; the flags keep their current values.
    """
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError(f"Not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("Import file must be a JSON object")
    if not isinstance(parsed.get("clients"), list) or not isinstance(parsed.get("leads"), list):
        raise ValueError("Import file must contain 'clients' and 'leads' lists")

    data = {}
    for name in collection_names():
        value = parsed.get(name)
        data[name] = value if isinstance(value, list) else []
    services = parsed.get(SERVICES)
    data[SERVICES] = services if isinstance(services, list) else copy.deepcopy(config.INITIAL_SERVICES)
    settings = dict(config.DEFAULT_SETTINGS)
    imported = parsed.get(SETTINGS)
    if isinstance(imported, dict):
        settings.update({f.name: imported[f.name] for f in get_codec("settings").fields
                         if f.kind != PRESENCE and f.name in imported})
    current_settings = current_settings or {}
    for flag in SECRET_COLUMNS.values():
        settings[flag] = bool(current_settings.get(flag))
    data[SETTINGS] = settings
    return data


def import_data(store, text: str) -> bool:
    """Replace the cache with an export file. False (cache untouched) if invalid."""
    try:
        data = parse_import(text, store.get(SETTINGS))
    except ValueError as e:
        log.error("Import rejected: %s", e)
        return False
    store.load(data)
    log.info("Imported %d clients, %d leads", len(data["clients"]), len(data["leads"]))
    return True
