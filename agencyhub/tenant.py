"""
Tenant scoping guard.

Every outbound row is stamped with the caller's tenant id. Reads refuse to
run until a tenant is known so an unscoped query can never return another
tenant's rows.
"""

import logging

from . import config
from .errors import TenantNotResolved

log = logging.getLogger("agency.tenant")


def with_tenant(row: dict, tenant_id: str) -> dict:
    """Return a copy of row carrying tenant_id."""
    if not tenant_id:
        if config.REJECT_UNSCOPED_WRITES:
            raise TenantNotResolved("Refusing to write a row without a tenant id")
        log.error("WRITE WITHOUT TENANT: stamping sentinel %s. Row will be orphaned.",
                  config.SENTINEL_TENANT_ID)
        tenant_id = config.SENTINEL_TENANT_ID
    scoped = dict(row)
    scoped["tenant_id"] = tenant_id
    return scoped


def with_tenant_all(rows: list, tenant_id: str) -> list:
    return [with_tenant(r, tenant_id) for r in rows]


def can_read(tenant_id: str) -> bool:
    """Reads are only allowed once the tenant has been resolved."""
    if not tenant_id:
        log.warning("Tenant not resolved yet: skipping read")
        return False
    return True
