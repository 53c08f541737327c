"""
HTTP client for the Supabase edge functions (AI summaries, recommendations,
WhatsApp drafts). Handles retries and error wrapping.

Every function answers {"success": true, ...} or {"success": false, "error": "..."}.
"""

import json
import time
import logging
import requests

from . import config
from .errors import FunctionError

log = logging.getLogger("agency.functions")

SUMMARY_TYPES = ("transcript_summary", "recommendation_summary", "proposal_focus")


class EdgeFunctions:
    """Thin wrapper around requests to call {SUPABASE_URL}/functions/v1/<name>."""

    def __init__(self, base_url: str = None, access_token: str = None, timeout: int = None,
                 session: requests.Session = None):
        self.base_url = (base_url or config.SUPABASE_URL).rstrip("/")
        self.timeout = timeout or config.FUNCTION_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": f"AgencyHub/{config.APP_VERSION}",
            "Authorization": f"Bearer {access_token or config.SUPABASE_KEY}",
            "Content-Type": "application/json",
        })

    def url(self, name: str) -> str:
        return f"{self.base_url}/functions/v1/{name}"

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------
    def generate_summary(self, summary_type: str, transcript: str = "", entity_name: str = "",
                         transcript_summary: str = None, additional_context: str = "") -> str:
        """Return the generated summary text ("" when the function produced none)."""
        if summary_type not in SUMMARY_TYPES:
            raise FunctionError(f"Unknown summary type: {summary_type}")
        body = {
            "summaryType": summary_type,
            "entityName": entity_name,
            "transcript": transcript or "",
            "additionalContext": additional_context,
        }
        if transcript_summary:
            body["transcriptSummary"] = transcript_summary
        result = self.invoke("generate-ai-summary", body)
        return (result.get("summary") or "").strip()

    def generate_recommendations(self, entity_type: str, entity_name: str, notes: list = None,
                                 transcripts: list = None, additional_context: str = "") -> str:
        result = self.invoke("ai-recommendations", {
            "entityType": entity_type,
            "entityName": entity_name,
            "notes": notes or [],
            "transcripts": transcripts or [],
            "additionalContext": additional_context,
        })
        return result.get("recommendation") or ""

    def generate_whatsapp_messages(self, client_name: str, purpose: str,
                                   additional_context: str = "") -> list:
        result = self.invoke("generate-whatsapp-messages", {
            "clientName": client_name,
            "purpose": purpose,
            "additionalContext": additional_context,
        })
        return result.get("messages") or []

    # ------------------------------------------------------------------
    # Internal request handler with retries
    # ------------------------------------------------------------------
    def invoke(self, name: str, payload: dict, max_retries: int = None) -> dict:
        """
        POST the payload to one function and return its parsed JSON.
        Network failures are retried with exponential backoff; an error
        reported by the function itself is raised immediately.
        """
        max_retries = max_retries or config.FUNCTION_MAX_RETRIES
        last_error = None

        for attempt in range(max_retries):
            try:
                resp = self.session.post(self.url(name), data=json.dumps(payload),
                                         timeout=self.timeout)
                try:
                    result = resp.json()
                except ValueError:
                    raise FunctionError(f"{name} returned non-JSON (status {resp.status_code})")

                if not isinstance(result, dict):
                    raise FunctionError(f"{name} returned unexpected payload")
                if resp.status_code >= 400 or result.get("success") is False or result.get("error"):
                    raise FunctionError(result.get("error") or f"{name} failed (status {resp.status_code})")
                return result

            except requests.exceptions.Timeout:
                last_error = FunctionError(f"{name} timed out after {self.timeout}s")
                log.warning("Timeout calling %s, attempt %d/%d", name, attempt + 1, max_retries)

            except requests.exceptions.ConnectionError:
                last_error = FunctionError("No internet connection")
                log.warning("Connection error calling %s, attempt %d/%d", name, attempt + 1, max_retries)

            except FunctionError:
                raise  # Don't retry application errors

            except requests.exceptions.RequestException as e:
                last_error = FunctionError(str(e))
                log.warning("Request error calling %s, attempt %d: %s", name, attempt + 1, e)

            # Exponential backoff
            if attempt < max_retries - 1:
                time.sleep(2 ** attempt)

        raise last_error or FunctionError(f"{name} failed after retries")
