"""Service account credentials with domain-wide delegation.

Access tokens are obtained with the OAuth 2.0 JWT bearer grant (RFC 7523):
an RS256 assertion signed with the service account's private key, naming
the impersonated user as ``sub``.
"""
from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import jwt
import requests

from ..exceptions import ConfigurationError, CredentialDenied

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 3600
REQUEST_TIMEOUT = 10
# Tokens closer than this many seconds to expiry are not handed over
EXPIRY_MARGIN = 60

GMAIL_SETTINGS_SCOPE = "https://www.googleapis.com/auth/gmail.settings.basic"
DIRECTORY_READONLY_SCOPE = "https://www.googleapis.com/auth/admin.directory.user.readonly"
DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"

REQUIRED_KEY_FIELDS = ("client_email", "private_key", "project_id")


@dataclass(frozen=True)
class ServiceAccountKey:
    """Fields of a Google service account JSON key used for signing."""
    client_email: str
    private_key: str
    project_id: str
    private_key_id: str = ""
    client_id: str = ""
    token_uri: str = TOKEN_URI

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ServiceAccountKey":
        """Validate and wrap a parsed JSON key.

        Raises:
            ConfigurationError: If the key is absent or incomplete
        """
        if not data:
            raise ConfigurationError("Service account key not configured")
        missing = [name for name in REQUIRED_KEY_FIELDS if not data.get(name)]
        if missing:
            raise ConfigurationError(f"Service account key is missing required fields: {', '.join(missing)}")
        return cls(
            client_email=data["client_email"],
            private_key=data["private_key"],
            project_id=data["project_id"],
            private_key_id=data.get("private_key_id", ""),
            client_id=data.get("client_id", ""),
            token_uri=data.get("token_uri") or TOKEN_URI,
        )


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float


class ServiceAccountCredentials:
    """Issues access tokens for impersonated users.

    Usage:
        creds = ServiceAccountCredentials(ServiceAccountKey.from_dict(key_json))
        token = creds.acquire_write_credential("alice@example.com")
    """

    def __init__(self, key: ServiceAccountKey, timeout: float = REQUEST_TIMEOUT):
        self.key = key
        self.timeout = timeout
        # Read tokens waiting for the write of the same mailbox, keyed by lowercased email
        self._pending: Dict[str, AccessToken] = {}
        self._lock = threading.Lock()

    def _build_assertion(self, subject: str, scopes: Iterable[str], now: Optional[int] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "iss": self.key.client_email,
            "sub": subject,
            "scope": " ".join(scopes),
            "aud": self.key.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME,
        }
        headers = {"kid": self.key.private_key_id} if self.key.private_key_id else None
        return jwt.encode(payload, self.key.private_key, algorithm="RS256", headers=headers)

    def fetch_token(self, subject: str, scopes: Iterable[str]) -> AccessToken:
        """Exchange a signed assertion for an access token.

        Raises:
            CredentialDenied: If the token endpoint refuses the grant or is unreachable
        """
        scopes = list(scopes)
        try:
            assertion = self._build_assertion(subject, scopes)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise CredentialDenied(subject, f"cannot sign assertion: {e}")

        try:
            resp = requests.post(
                self.key.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CredentialDenied(subject, f"token endpoint unreachable: {e}")

        if resp.status_code != 200:
            raise CredentialDenied(subject, _describe_token_error(resp))

        body = resp.json()
        return AccessToken(
            token=body["access_token"],
            expires_at=time.time() + int(body.get("expires_in", 3600)),
        )

    def acquire_write_credential(self, email: str) -> str:
        """Access token allowed to update ``email``'s Gmail settings.

        The token minted by the preceding read of the same mailbox carries the
        same scope, so it is handed over once instead of requesting a second
        grant. Without a pending read token a fresh one is fetched.
        """
        with self._lock:
            access = self._pending.pop(email.lower(), None)
        if access is None or time.time() >= access.expires_at - EXPIRY_MARGIN:
            access = self.fetch_token(email, [GMAIL_SETTINGS_SCOPE])
        return access.token

    def acquire_read_credential(self, email: str) -> str:
        """Access token allowed to read ``email``'s Gmail settings.

        Always a fresh grant. It replaces any token left pending for the
        mailbox by an earlier read that was not followed by a write.
        """
        access = self.fetch_token(email, [GMAIL_SETTINGS_SCOPE])
        with self._lock:
            self._pending[email.lower()] = access
        return access.token


def _describe_token_error(resp: requests.Response) -> str:
    """Human-readable reason for a refused token request, with setup hints."""
    try:
        body = resp.json()
        error = body.get("error", "")
        detail = body.get("error_description", "")
    except ValueError:
        error, detail = "", resp.text
    message = f"[{resp.status_code}] {error} {detail}".strip()
    if error == "invalid_grant":
        message += " (check the impersonated email and domain-wide delegation)"
    elif error in ("access_denied", "unauthorized_client"):
        message += " (check the OAuth scopes granted to the service account)"
    return message
