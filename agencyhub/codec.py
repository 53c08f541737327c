"""
Codec layer: converts between domain entities and Supabase rows.

Entities are dicts keyed by camelCase field names (the shape the UI and the
export file use). Rows are dicts keyed by snake_case column names.

Instead of one hand-written transform pair per table, every entity type is
described by a list of Field records and encoded/decoded by the same
EntityCodec. The per-entity field maps live in entities.py.

Usage:
    from agencyhub.codec import to_row, from_row

    row = to_row("client", client)
    client = from_row("client", row)
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError

log = logging.getLogger("agency.codec")

# ---------------------------------------------------------------------------
# Field kinds
# ---------------------------------------------------------------------------
TEXT = "text"            # plain string, "" when missing
NUMBER = "number"        # int/float, 0 when missing
INTEGER = "integer"      # int, 0 when missing
BOOLEAN = "boolean"      # bool, False when missing
OPTIONAL = "optional"    # nullable FK / optional text, None when missing
LIST = "list"            # list stored as a JSON-encoded string column
JSON = "json"            # native JSONB column, passed through untouched
STATUS = "status"        # text canonicalized through a legacy-value map
PRESENCE = "presence"    # secret column, decoded to a bool, never written

_DEFAULTS = {
    TEXT: "",
    NUMBER: 0,
    INTEGER: 0,
    BOOLEAN: False,
    OPTIONAL: None,
    LIST: None,          # fresh [] per call
    JSON: None,
    STATUS: "",
    PRESENCE: False,
}

# ---------------------------------------------------------------------------
# Legacy status canonicalization (old English constant → current value)
# ---------------------------------------------------------------------------
CLIENT_STATUS_MAP = {
    "Active": "פעיל",
    "Paused": "מושהה",
    "Leaving": "בתהליך עזיבה",
    "Left": "עזב",
}

LEAD_STATUS_MAP = {
    "New": "חדש",
    "Contacted": "נוצר קשר",
    "Proposal_sent": "נשלחה הצעת מחיר",
    "Meeting_scheduled": "נקבעה פגישה",
    "Pending_decision": "ממתין להחלטה",
    "Won": "נסגר בהצלחה",
    "Lost": "אבוד",
    "Not_relevant": "לא רלוונטי",
}


def migrate_client_status(status: str) -> str:
    """Map a legacy client status to its current value. Unknown values pass through."""
    return CLIENT_STATUS_MAP.get(status, status)


def migrate_lead_status(status: str) -> str:
    """Map a legacy lead status to its current value. Unknown values pass through."""
    return LEAD_STATUS_MAP.get(status, status)


def parse_json_list(value) -> list:
    """
    Decode a list column. Accepts a native list (JSONB) or a JSON string.
    Anything that is not a list after decoding becomes []; bad stored data
    is never surfaced to the caller.
    """
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            log.debug("Unparseable list column, using []: %r", value[:80])
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def encode_json_list(value) -> str:
    """Encode a list the way the web client does (compact, UTF-8 kept)."""
    return json.dumps(list(value or []), ensure_ascii=False, separators=(",", ":"))


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@dataclass(frozen=True)
class Field:
    """One domain field and the column it is stored in."""
    name: str
    column: str
    kind: str = TEXT
    statuses: Optional[dict] = None

    def default(self):
        if self.kind == LIST:
            return []
        return _DEFAULTS[self.kind]


def field(name: str, kind: str = TEXT, column: str = None, statuses: dict = None) -> Field:
    """Shorthand: the column defaults to the snake_case form of the name."""
    return Field(name=name, column=column or snake_case(name), kind=kind, statuses=statuses)


# ---------------------------------------------------------------------------
# Generic codec
# ---------------------------------------------------------------------------

class EntityCodec:
    """
    Schema-driven transform pair for one entity type.

    kind:         registry key ("client", "lead", ...)
    table:        Supabase table name
    collection:   cache collection name (also the export key)
    id_field:     domain id field, None for singletons
    label:        human label used in activity descriptions
    title_field:  domain field that names an instance in descriptions
    money_fields: fields that must never be negative
    parent_fields: owning FK fields (clientId / leadId)
    """

    def __init__(self, kind: str, table: str, collection: str, fields: list,
                 id_field: Optional[str] = "id", label: str = "",
                 title_field: str = "", money_fields: tuple = (),
                 parent_fields: tuple = ()):
        self.kind = kind
        self.table = table
        self.collection = collection
        self.fields = list(fields)
        self.id_field = id_field
        self.label = label or kind
        self.title_field = title_field
        self.money_fields = tuple(money_fields)
        self.parent_fields = tuple(parent_fields)
        self._by_name = {f.name: f for f in self.fields}
        if id_field and id_field not in self._by_name:
            raise ValueError(f"{kind}: id field {id_field} has no column")

    @property
    def id_column(self) -> Optional[str]:
        if not self.id_field:
            return None
        return self._by_name[self.id_field].column

    def column_for(self, name: str) -> str:
        return self._by_name[name].column

    # ------------------------------------------------------------------
    # Row → entity
    # ------------------------------------------------------------------
    def from_row(self, row: dict) -> dict:
        entity = {}
        for f in self.fields:
            entity[f.name] = self._decode(f, row.get(f.column))
        return entity

    def _decode(self, f: Field, value):
        if f.kind == PRESENCE:
            return bool(value)
        if f.kind == LIST:
            return parse_json_list(value)
        if value is None:
            return f.default()
        if f.kind == OPTIONAL:
            return value if value != "" else None
        if f.kind == STATUS:
            return (f.statuses or {}).get(value, value)
        if f.kind == NUMBER:
            return _to_number(value)
        if f.kind == INTEGER:
            return int(_to_number(value))
        if f.kind == BOOLEAN:
            return bool(value)
        return value

    # ------------------------------------------------------------------
    # Entity → row
    # ------------------------------------------------------------------
    def to_row(self, entity: dict) -> dict:
        row = {}
        for f in self.fields:
            if f.kind == PRESENCE:
                continue
            row[f.column] = self._encode(f, entity.get(f.name))
        return row

    def _encode(self, f: Field, value):
        if f.kind == LIST:
            return encode_json_list(value)
        if f.kind == OPTIONAL:
            return value if value not in (None, "") else None
        if f.kind == JSON:
            return value
        if value is None:
            return f.default()
        if f.kind == STATUS:
            return (f.statuses or {}).get(value, value)
        return value

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self, entity: dict):
        """Reject an entity before any remote call is made."""
        for name in self.money_fields:
            value = entity.get(name)
            if value is None:
                continue
            try:
                amount = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{self.kind}.{name} is not a number: {value!r}")
            if amount < 0:
                raise ValidationError(f"{self.kind}.{name} cannot be negative ({value})")

    def describe(self, entity: dict) -> str:
        title = entity.get(self.title_field) if self.title_field else ""
        return f"{self.label}: {title}" if title else self.label


def _to_number(value):
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        log.debug("Non-numeric value in number column, using 0: %r", value)
        return 0
    return int(number) if number.is_integer() else number


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
_REGISTRY: dict = {}


def register(codec: EntityCodec) -> EntityCodec:
    _REGISTRY[codec.kind] = codec
    return codec


def get_codec(kind: str) -> EntityCodec:
    try:
        return _REGISTRY[kind]
    except KeyError:
        raise KeyError(f"No codec registered for entity kind '{kind}'") from None


def all_codecs() -> list:
    return list(_REGISTRY.values())


def to_row(kind: str, entity: dict) -> dict:
    return get_codec(kind).to_row(entity)


def from_row(kind: str, row: dict) -> dict:
    return get_codec(kind).from_row(row)
