"""
Activity / audit log.

Local side is synchronous: the entry is prepended to the cache and the
collection truncated to the most recent ACTIVITY_LOG_LIMIT entries. Remote
side is best-effort through the background queue. A failed insert is
logged as a warning and never reaches the caller.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from . import config
from .codec import get_codec
from .tenant import with_tenant

log = logging.getLogger("agency.activity")

# Action types
CREATE = "create"
UPDATE = "update"
DELETE = "delete"
CONVERT = "convert"
GENERATE = "generate"
IMPORT = "import"
SETTINGS = "settings"


class ActivityLogger:

    def __init__(self, store, remote, background, tenant_id: str = "",
                 user_id: str = None, user_name: str = None):
        self.store = store
        self.remote = remote
        self.background = background
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.user_name = user_name
        self.codec = get_codec("activity")

    def log(self, action_type: str, entity_type: str, description: str,
            entity_id: Optional[str] = None) -> dict:
        entry = {
            "id": str(uuid.uuid4()),
            "actionType": action_type,
            "entityType": entity_type,
            "entityId": entity_id,
            "description": description,
            "userId": self.user_id,
            "userName": self.user_name,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self.store.prepend(self.codec.collection, entry, limit=config.ACTIVITY_LOG_LIMIT)
        log.debug("activity %s/%s: %s", action_type, entity_type, description)

        row = with_tenant(self.codec.to_row(entry), self.tenant_id)
        self.background.submit(
            f"activity:{action_type}:{entity_type}",
            lambda: self.remote.insert(self.codec.table, row),
        )
        return entry
