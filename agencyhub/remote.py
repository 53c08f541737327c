"""
remote.py: Supabase (PostgreSQL) access for Agency Hub.

Provides a lazily-created client plus a thin table wrapper. Unlike a
fire-and-forget client, every wrapper method raises RemoteError on failure:
the sync engine must know a write failed so it can leave the cache alone.

Usage:
    from agencyhub.remote import Remote, get_client

    remote = Remote(get_client())
    rows = remote.select("clients", tenant_id=tenant)
    remote.insert("clients", row)
"""

import logging
from typing import Optional

from . import config
from .errors import RemoteError

log = logging.getLogger("agency.remote")

# ---------------------------------------------------------------------------
# Singleton client, initialised lazily on first use
# ---------------------------------------------------------------------------
_client = None


def get_client():
    """Return the Supabase client, creating it on first call."""
    global _client
    if _client is not None:
        return _client

    if not config.USE_SUPABASE:
        log.info("Supabase not configured: client disabled")
        return None

    from supabase import create_client
    _client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
    log.info("Supabase client initialised: %s", config.SUPABASE_URL)
    return _client


async def create_async_client():
    """
    Async client used only for realtime channels: the sync client has no
    realtime support. Must be awaited on the loop that will own the channels.
    """
    if not config.USE_SUPABASE:
        return None
    from supabase import acreate_client
    client = await acreate_client(config.SUPABASE_URL, config.SUPABASE_KEY)
    log.info("Supabase async client initialised for realtime")
    return client


class Remote:
    """Table operations against an injected Supabase client."""

    def __init__(self, client):
        self.client = client

    def _require_client(self, operation: str, table: str):
        if self.client is None:
            raise RemoteError(operation, table, RuntimeError("Supabase is not configured"))
        return self.client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def select(self, table: str, tenant_id: str = None, filters: dict = None,
               order: str = "", desc: bool = False, limit: int = None) -> list[dict]:
        client = self._require_client("select", table)
        try:
            q = client.table(table).select("*")
            if tenant_id:
                q = q.eq("tenant_id", tenant_id)
            for key, value in (filters or {}).items():
                q = q.eq(key, value)
            if order:
                q = q.order(order, desc=desc)
            if limit:
                q = q.limit(limit)
            resp = q.execute()
            return resp.data or []
        except Exception as e:
            log.error("select(%s): %s", table, e)
            raise RemoteError("select", table, e) from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert(self, table: str, rows) -> list[dict]:
        """Insert one row (dict) or a batch (list of dicts)."""
        client = self._require_client("insert", table)
        try:
            resp = client.table(table).insert(rows).execute()
            return resp.data or []
        except Exception as e:
            log.error("insert(%s): %s", table, e)
            raise RemoteError("insert", table, e) from e

    def update(self, table: str, values: dict, filters: dict) -> list[dict]:
        if not filters:
            raise ValueError(f"update({table}) without filters would touch every row")
        client = self._require_client("update", table)
        try:
            q = client.table(table).update(values)
            for key, value in filters.items():
                q = q.eq(key, value)
            resp = q.execute()
            return resp.data or []
        except Exception as e:
            log.error("update(%s): %s", table, e)
            raise RemoteError("update", table, e) from e

    def delete(self, table: str, filters: dict) -> list[dict]:
        if not filters:
            raise ValueError(f"delete({table}) without filters would touch every row")
        client = self._require_client("delete", table)
        try:
            q = client.table(table).delete()
            for key, value in filters.items():
                q = q.eq(key, value)
            resp = q.execute()
            return resp.data or []
        except Exception as e:
            log.error("delete(%s): %s", table, e)
            raise RemoteError("delete", table, e) from e

    def upsert(self, table: str, row: dict, on_conflict: str = "") -> Optional[dict]:
        client = self._require_client("upsert", table)
        try:
            if on_conflict:
                resp = client.table(table).upsert(row, on_conflict=on_conflict).execute()
            else:
                resp = client.table(table).upsert(row).execute()
            return resp.data[0] if resp.data else None
        except Exception as e:
            log.error("upsert(%s): %s", table, e)
            raise RemoteError("upsert", table, e) from e
