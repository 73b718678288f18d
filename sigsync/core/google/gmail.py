"""Gmail settings API: read and write a user's send-as signature."""
from __future__ import annotations
import logging
from typing import Optional
from urllib.parse import quote

import requests

from ..exceptions import GoogleAPIError, SignatureSyncError
from .client import create_client_with_token, REQUEST_TIMEOUT
from .credentials import ServiceAccountCredentials

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"


class GmailSettingsService:
    """Mailbox settings provider backed by the Gmail ``sendAs`` resource.

    Reads use a short-lived token issued for the mailbox owner. Writes use
    the credential handed in by the caller and never keep it.
    """

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        base_url: str = GMAIL_API_BASE,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _send_as_url(self, email: str, send_as: Optional[str] = None) -> str:
        user = quote(email, safe="@")
        alias = quote(send_as or email, safe="@")
        return f"{self.base_url}/users/{user}/settings/sendAs/{alias}"

    def read_signature(self, email: str) -> str:
        """Return the current signature ("" when the send-as entry has none).

        Raises:
            CredentialDenied: If no read token can be issued for the mailbox
            GoogleAPIError: On HTTP error other than 404
        """
        client = create_client_with_token(self.credentials.acquire_read_credential(email), email, timeout=self.timeout)
        try:
            resp = client.get(self._send_as_url(email))
        except GoogleAPIError as e:
            if e.status_code == 404:
                logger.debug("No send-as entry for %s; treating signature as empty", email)
                return ""
            raise
        return (resp.json() or {}).get("signature", "") or ""

    def write_signature(self, email: str, text: str, credential: str) -> None:
        """Replace the signature of ``email``'s primary send-as address.

        Raises:
            GoogleAPIError: On HTTP error
            requests.RequestException: On network failure
        """
        client = create_client_with_token(credential, email, timeout=self.timeout)
        client.patch(self._send_as_url(email), json={"signature": text})
        logger.debug("Signature written for %s", email)

    def check_access(self, email: str) -> bool:
        """Probe Gmail settings access for one mailbox."""
        try:
            self.read_signature(email)
            return True
        except (SignatureSyncError, requests.RequestException) as e:
            logger.warning("Gmail settings access check failed for %s: %s", email, e)
            return False
