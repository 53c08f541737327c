"""
Blob storage: contracts, call recordings, receipts, knowledge files, logos.

Key patterns (bucket/key):
    contracts/{entityId}/{timestamp}_{filename}
    recordings/{entityId}/{timestamp}_{filename}
    receipts/{timestamp}_{filename}
    knowledge/{timestamp}_{filename}
    logos/{tenantId}/logo_{timestamp}.{ext}

Uploads return a signed URL valid for SIGNED_URL_EXPIRY_SECONDS.
"""

import logging
import mimetypes
import re
from typing import Optional

from . import config
from .errors import RemoteError
from .utils import timestamp_ms

log = logging.getLogger("agency.storage")

CONTRACTS = "contracts"
RECORDINGS = "recordings"
RECEIPTS = "receipts"
KNOWLEDGE = "knowledge"
LOGOS = "logos"


def safe_filename(filename: str) -> str:
    """Strip path parts and characters storage keys do not accept."""
    name = re.split(r"[\\/]", filename or "")[-1]
    name = re.sub(r"[^\w.\-]+", "_", name)
    return name or "file"


class BlobStorage:

    def __init__(self, client, tenant_id: str = ""):
        self.client = client
        self.tenant_id = tenant_id

    def _bucket(self, bucket: str):
        if self.client is None:
            raise RemoteError("storage", bucket, RuntimeError("Supabase is not configured"))
        return self.client.storage.from_(bucket)

    # ------------------------------------------------------------------
    # Key patterns
    # ------------------------------------------------------------------
    @staticmethod
    def entity_key(entity_id: str, filename: str) -> str:
        return f"{entity_id}/{timestamp_ms()}_{safe_filename(filename)}"

    @staticmethod
    def flat_key(filename: str) -> str:
        return f"{timestamp_ms()}_{safe_filename(filename)}"

    def logo_key(self, ext: str) -> str:
        return f"{self.tenant_id}/logo_{timestamp_ms()}.{ext.lstrip('.').lower()}"

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    def upload(self, bucket: str, path: str, data: bytes, content_type: str = None) -> str:
        """Upload and return a signed URL for the new object."""
        content_type = content_type or mimetypes.guess_type(path)[0] or "application/octet-stream"
        try:
            self._bucket(bucket).upload(path, data, {"content-type": content_type, "upsert": "false"})
        except RemoteError:
            raise
        except Exception as e:
            log.error("upload(%s/%s): %s", bucket, path, e)
            raise RemoteError("upload", bucket, e) from e
        log.info("Uploaded %s/%s (%d bytes)", bucket, path, len(data))
        return self.signed_url(bucket, path)

    def upload_contract(self, entity_id: str, filename: str, data: bytes) -> str:
        return self.upload(CONTRACTS, self.entity_key(entity_id, filename), data)

    def upload_recording(self, entity_id: str, filename: str, data: bytes) -> str:
        return self.upload(RECORDINGS, self.entity_key(entity_id, filename), data)

    def upload_receipt(self, filename: str, data: bytes) -> str:
        return self.upload(RECEIPTS, self.flat_key(filename), data)

    def upload_knowledge_file(self, filename: str, data: bytes) -> str:
        return self.upload(KNOWLEDGE, self.flat_key(filename), data)

    def upload_logo(self, ext: str, data: bytes) -> str:
        return self.upload(LOGOS, self.logo_key(ext), data)

    # ------------------------------------------------------------------
    # List / sign / delete
    # ------------------------------------------------------------------
    def list_files(self, bucket: str, prefix: str = "") -> list[dict]:
        try:
            return self._bucket(bucket).list(prefix) or []
        except RemoteError:
            raise
        except Exception as e:
            log.error("list(%s/%s): %s", bucket, prefix, e)
            raise RemoteError("list", bucket, e) from e

    def list_entity_files(self, bucket: str, entity_id: str) -> list[dict]:
        return self.list_files(bucket, entity_id)

    def signed_url(self, bucket: str, path: str, expires_in: int = None) -> Optional[str]:
        expires_in = expires_in or config.SIGNED_URL_EXPIRY_SECONDS
        try:
            resp = self._bucket(bucket).create_signed_url(path, expires_in)
        except RemoteError:
            raise
        except Exception as e:
            log.error("create_signed_url(%s/%s): %s", bucket, path, e)
            raise RemoteError("sign", bucket, e) from e
        if isinstance(resp, dict):
            return resp.get("signedURL") or resp.get("signedUrl")
        return resp

    def delete_file(self, bucket: str, path: str):
        try:
            self._bucket(bucket).remove([path])
        except RemoteError:
            raise
        except Exception as e:
            log.error("remove(%s/%s): %s", bucket, path, e)
            raise RemoteError("delete", bucket, e) from e
        log.info("Deleted %s/%s", bucket, path)
