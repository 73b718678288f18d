"""Pytest shared fixtures: network guard, collaborator fakes, RSA keys."""
import json
import pathlib
import sys
import threading
from typing import Dict, List, Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sigsync.config.settings import SyncSettings
from sigsync.core.exceptions import CredentialDenied
from sigsync.core.models import Identity


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from hitting live Google endpoints.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture. Tests that
    need HTTP install their own stubs on top of this guard.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _refuse(method):
        def _stub(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _stub

    monkeypatch.setattr(requests, "get", _refuse("GET"))
    monkeypatch.setattr(requests, "post", _refuse("POST"))
    monkeypatch.setattr(requests, "request", lambda method, url, *a, **kw: _refuse(method)(url))


class StubResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code: int = 200, url: str = "https://stub", text: Optional[str] = None):
        self._payload = payload
        self.status_code = status_code
        self.url = url
        self.encoding = "utf-8"
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


# ─────────────────────────────────────────────────────────────────────────────
# Collaborator fakes
# ─────────────────────────────────────────────────────────────────────────────
class FakeMailbox:
    """In-memory mailbox settings provider.

    ``write_failures[email]`` is a list of exceptions raised by successive
    writes for that mailbox before writes start succeeding.
    """

    def __init__(self, signatures: Optional[Dict[str, str]] = None):
        self.signatures: Dict[str, str] = dict(signatures or {})
        self.reads: List[str] = []
        self.writes: List[tuple] = []
        self.write_failures: Dict[str, list] = {}
        self.read_failures: Dict[str, Exception] = {}
        self._lock = threading.Lock()

    def read_signature(self, email: str) -> str:
        with self._lock:
            self.reads.append(email)
            if email in self.read_failures:
                raise self.read_failures[email]
            return self.signatures.get(email, "")

    def write_signature(self, email: str, text: str, credential: str) -> None:
        with self._lock:
            self.writes.append((email, credential))
            failures = self.write_failures.get(email)
            if failures:
                raise failures.pop(0)
            self.signatures[email] = text

    def written_emails(self) -> List[str]:
        return [email for email, _ in self.writes]


class FakeCredentials:
    """Credential provider issuing a distinct token per request."""

    def __init__(self, denied=()):
        self.denied = set(denied)
        self.issued: List[str] = []
        self._lock = threading.Lock()

    def acquire_write_credential(self, email: str) -> str:
        with self._lock:
            if email in self.denied:
                raise CredentialDenied(email, "[401] access_denied")
            self.issued.append(email)
            return f"token-{email}-{len(self.issued)}"


class RecordingReporter:
    """Reporter that records every event in order."""

    def __init__(self):
        self.events: List[tuple] = []

    def run_started(self, total, dry_run):
        self.events.append(("run_started", total, dry_run))

    def batch_started(self, batch):
        self.events.append(("batch_started", batch.index, batch.emails))

    def retry_scheduled(self, email, attempt, error):
        self.events.append(("retry", email, attempt))

    def identity_resolved(self, outcome):
        self.events.append(("resolved", outcome.email, outcome.status))

    def run_finished(self, result, duration):
        self.events.append(("run_finished", result.total))

    @property
    def batches(self) -> List[List[str]]:
        return [event[2] for event in self.events if event[0] == "batch_started"]


class Sleeper:
    """Records sleep calls instead of sleeping; optionally advances a fake clock."""

    def __init__(self):
        self.calls: List[float] = []
        self.now = 0.0

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


@pytest.fixture()
def mailbox():
    return FakeMailbox()


@pytest.fixture()
def credentials():
    return FakeCredentials()


@pytest.fixture()
def reporter():
    return RecordingReporter()


@pytest.fixture()
def sleeper():
    return Sleeper()


def make_identities(count: int, domain: str = "example.com") -> List[Identity]:
    return [
        Identity(email=f"user{i}@{domain}", given_name=f"User{i}", family_name="Test", full_name=f"User{i} Test")
        for i in range(count)
    ]


@pytest.fixture()
def identities():
    return make_identities(5)


# ─────────────────────────────────────────────────────────────────────────────
# Settings and keys
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for service account assertions in tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"private_pem": private_pem.decode("utf-8"), "public_pem": public_pem.decode("utf-8")}


@pytest.fixture()
def service_account_info(rsa_key_pair):
    return {
        "type": "service_account",
        "project_id": "sigsync-test",
        "private_key_id": "key-1",
        "private_key": rsa_key_pair["private_pem"],
        "client_email": "sigsync@sigsync-test.iam.gserviceaccount.com",
        "client_id": "1234567890",
        "token_uri": "https://oauth2.googleapis.com/token",
    }


@pytest.fixture()
def settings(service_account_info, tmp_path):
    return SyncSettings(
        search_domain="example.com",
        admin_email="admin@example.com",
        company_name="Example Company, Inc.",
        company_website="https://example.com",
        company_website_display="example.com",
        batch_size=2,
        batch_delay=1.0,
        retry_attempts=2,
        retry_delay=0.5,
        max_workers=1,
        service_account_key=service_account_info,
        audit_log_dir=str(tmp_path / "audit"),
        audit_log_signing_key="test-signing-key",
    )
