"""Setup diagnostics: configuration, service account key, OAuth scopes, API access.

The granted OAuth scopes are described by an explicit :class:`Capabilities`
value supplied by the caller (normally from settings). They are never
inferred by issuing requests.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sigsync.config.settings import SyncSettings, validate_settings

from .exceptions import ConfigurationError
from .google import (
    DIRECTORY_READONLY_SCOPE,
    DRIVE_READONLY_SCOPE,
    GMAIL_SETTINGS_SCOPE,
    DirectoryService,
    GmailSettingsService,
    GoogleClient,
    ServiceAccountCredentials,
    ServiceAccountKey,
)

logger = logging.getLogger(__name__)

REQUIRED_SCOPES: Tuple[str, ...] = (GMAIL_SETTINGS_SCOPE, DIRECTORY_READONLY_SCOPE)
OPTIONAL_SCOPES: Tuple[str, ...] = (DRIVE_READONLY_SCOPE,)

Probe = Callable[[], bool]


@dataclass(frozen=True)
class Capabilities:
    """OAuth scopes granted to the service account."""
    oauth_scopes: Tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "Capabilities":
        return cls(tuple(settings.oauth_scopes))

    def missing_scopes(self, required: Iterable[str] = REQUIRED_SCOPES) -> List[str]:
        granted = set(self.oauth_scopes)
        return [scope for scope in required if scope not in granted]


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool
    message: str = ""


@dataclass
class DiagnosticReport:
    status: str
    checks: List[CheckResult] = field(default_factory=list)
    missing_scopes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status,
            "checks": [{"name": c.name, "passed": c.passed, "message": c.message} for c in self.checks],
            "missing_scopes": list(self.missing_scopes),
        }


def run_diagnostics(
    settings: SyncSettings,
    capabilities: Optional[Capabilities] = None,
    probes: Optional[Mapping[str, Probe]] = None,
) -> DiagnosticReport:
    """Check that a sync run can start.

    Args:
        settings: Settings under test
        capabilities: Granted scopes (defaults to ``settings.oauth_scopes``)
        probes: Named live access checks, each returning True on success

    Returns:
        Report with status ERROR (configuration or key unusable), WARNING
        (some scope or probe failed) or SUCCESS
    """
    checks: List[CheckResult] = []
    fatal = False

    try:
        validate_settings(settings)
        checks.append(CheckResult("configuration", True, f"domain={settings.search_domain}, admin={settings.admin_email}"))
    except ConfigurationError as e:
        checks.append(CheckResult("configuration", False, str(e)))
        fatal = True

    try:
        key = ServiceAccountKey.from_dict(settings.service_account_key)
        checks.append(CheckResult("service_account_key", True, f"client_email={key.client_email}, project_id={key.project_id}"))
    except ConfigurationError as e:
        checks.append(CheckResult("service_account_key", False, str(e)))
        fatal = True

    capabilities = capabilities or Capabilities.from_settings(settings)
    missing = capabilities.missing_scopes()
    if missing:
        checks.append(CheckResult("oauth_scopes", False, "Missing required OAuth scopes: " + ", ".join(missing)))
    else:
        checks.append(CheckResult("oauth_scopes", True, "All required OAuth scopes granted"))
    for scope in capabilities.missing_scopes(OPTIONAL_SCOPES):
        logger.info("Optional scope not granted (Drive templates unavailable): %s", scope)

    if not fatal:
        for name, probe in (probes or {}).items():
            try:
                passed = bool(probe())
                checks.append(CheckResult(name, passed, "" if passed else "Access denied"))
            except Exception as e:
                checks.append(CheckResult(name, False, str(e)))

    if fatal:
        status = "ERROR"
    elif all(check.passed for check in checks):
        status = "SUCCESS"
    else:
        status = "WARNING"
    return DiagnosticReport(status=status, checks=checks, missing_scopes=missing)


def live_probes(settings: SyncSettings) -> Dict[str, Probe]:
    """Access checks against the real Directory and Gmail APIs.

    Raises:
        ConfigurationError: If the service account key is unusable
    """
    credentials = ServiceAccountCredentials(ServiceAccountKey.from_dict(settings.service_account_key), timeout=settings.request_timeout)
    directory = DirectoryService(GoogleClient(credentials, settings.admin_email, [DIRECTORY_READONLY_SCOPE], timeout=settings.request_timeout))
    gmail = GmailSettingsService(credentials, timeout=settings.request_timeout)
    return {
        "directory_access": lambda: directory.check_access(settings.search_domain),
        "gmail_settings_access": lambda: gmail.check_access(settings.admin_email),
    }
