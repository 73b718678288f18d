"""Low-level HTTP client for Google Workspace APIs.

Handles authentication, token management, and HTTP operations.
"""
from __future__ import annotations
import time
from typing import Any, Dict, Iterable, Optional

import requests

from ..exceptions import GoogleAPIError
from .credentials import EXPIRY_MARGIN, ServiceAccountCredentials

REQUEST_TIMEOUT = 10


class GoogleClient:
    """HTTP client for Google APIs acting as one impersonated user.

    Features:
    - Automatic token refresh when expired
    - Centralized error handling

    Usage:
        client = GoogleClient(credentials, "admin@example.com", [DIRECTORY_READONLY_SCOPE])
        response = client.get("https://admin.googleapis.com/admin/directory/v1/users", params={...})
    """

    def __init__(
        self,
        credentials: Optional[ServiceAccountCredentials],
        subject: str,
        scopes: Iterable[str] = (),
        timeout: float = REQUEST_TIMEOUT,
    ):
        """Initialize Google client.

        Args:
            credentials: Service account credentials (None for pre-set tokens)
            subject: Email of the user to impersonate
            scopes: OAuth scopes to request
            timeout: Per-request timeout in seconds
        """
        self.credentials = credentials
        self.subject = subject
        self.scopes = list(scopes)
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at: Optional[float] = None

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid token, refreshing if necessary."""
        if self._token and self._token_expires_at and time.time() < self._token_expires_at - EXPIRY_MARGIN:
            return
        if self.credentials is None:
            raise GoogleAPIError(401, "Not authenticated - token expired and no credentials to refresh it", "")
        access = self.credentials.fetch_token(self.subject, self.scopes)
        self._token = access.token
        self._token_expires_at = access.expires_at

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Execute a request with automatic authentication.

        Raises:
            GoogleAPIError: On HTTP error
        """
        self._ensure_authenticated()
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self._token}"
        resp = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        self._handle_error(resp)
        return resp

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        return self.request("GET", url, params=params, **kwargs)

    def patch(self, url: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        return self.request("PATCH", url, json=json, **kwargs)

    def _handle_error(self, resp: requests.Response) -> None:
        """Raise GoogleAPIError for 4xx/5xx responses, using the API's error message when present."""
        if resp.status_code < 400:
            return
        message = resp.text
        try:
            body = resp.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message", message)
        except ValueError:
            pass
        raise GoogleAPIError(resp.status_code, message, resp.url)


def create_client_with_token(token: str, subject: str = "", expires_in: int = 3600, timeout: float = REQUEST_TIMEOUT) -> GoogleClient:
    """Create a client around a token that was acquired elsewhere.

    The client cannot refresh the token; it is meant for one short operation
    such as a single signature write with a per-identity credential.
    """
    client = GoogleClient(None, subject, timeout=timeout)
    client._token = token
    client._token_expires_at = time.time() + expires_in
    return client
