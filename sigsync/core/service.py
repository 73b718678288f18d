"""Run orchestration: directory fetch → filter → template → pipeline.

Run-level failures (settings, directory, template) propagate to the caller
before any identity is touched. Identity-level failures are reported in
the returned SyncResult.
"""
from __future__ import annotations
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from sigsync.audit import AuditReporter, AuditTrail
from sigsync.config.settings import SyncSettings, validate_settings

from .google import (
    DIRECTORY_READONLY_SCOPE,
    DRIVE_READONLY_SCOPE,
    DirectoryService,
    DriveService,
    GmailSettingsService,
    GoogleClient,
    ServiceAccountCredentials,
    ServiceAccountKey,
)
from .identity_filter import select_identities
from .models import Identity, SyncResult
from .pipeline import CredentialProvider, MailboxSettingsProvider, SignatureSyncPipeline
from .reporting import CompositeReporter, LoggingReporter, SyncReporter
from .templates import TemplateStore

logger = logging.getLogger(__name__)


class DirectoryProvider(Protocol):
    """Lists the identities of a domain."""

    def fetch_users(self, domain: str) -> List[Identity]: ...


class TemplateSource(Protocol):
    """Resolves template identifiers to HTML text."""

    def resolve(self, template_id: str) -> str: ...

    def template_defaults(self, template_id: str) -> Dict[str, str]: ...


class SignatureSyncService:
    """Wires settings and collaborators into one synchronization run."""

    def __init__(
        self,
        settings: SyncSettings,
        directory: DirectoryProvider,
        templates: TemplateSource,
        mailbox: MailboxSettingsProvider,
        credentials: CredentialProvider,
        reporter: Optional[SyncReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.directory = directory
        self.templates = templates
        self.mailbox = mailbox
        self.credentials = credentials
        self.reporter = reporter
        self._sleep = sleep

    def _select(self, identities: List[Identity], users: Optional[Iterable[str]]) -> List[Identity]:
        if not users:
            return select_identities(identities, self.settings.filter_rules)
        # Explicit users bypass the filter rules but keep their directory attributes
        by_email = {identity.email.lower(): identity for identity in identities}
        selected = []
        for email in users:
            identity = by_email.get(email.strip().lower())
            if identity is None:
                logger.warning("User %s not found in directory; rendering without directory attributes", email)
                identity = Identity.from_email(email.strip())
            selected.append(identity)
        return selected

    def sync(
        self,
        dry_run: Optional[bool] = None,
        users: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """Synchronize signatures for the configured domain.

        Args:
            dry_run: Override ``settings.dry_run``
            users: Restrict the run to these emails (filter rules are bypassed)
            timeout: Optional run deadline in seconds

        Raises:
            ConfigurationError: Invalid settings
            DirectoryUnavailable: The user list could not be fetched
            TemplateNotFound: The configured template does not exist
        """
        settings = validate_settings(self.settings)
        dry_run = settings.dry_run if dry_run is None else dry_run

        identities = self.directory.fetch_users(settings.search_domain)
        selected = self._select(identities, users)
        logger.info("Found %d users to process", len(selected))

        template_id = settings.default_template_id
        template_text = self.templates.resolve(template_id)

        pipeline = SignatureSyncPipeline.from_settings(
            settings,
            template_text,
            self.mailbox,
            self.credentials,
            template_defaults=self.templates.template_defaults(template_id),
            reporter=self.reporter,
            sleep=self._sleep,
        )
        return pipeline.run(selected, dry_run=dry_run, timeout=timeout)

    def dry_run(self, users: Optional[Iterable[str]] = None, timeout: Optional[float] = None) -> SyncResult:
        """Same as ``sync(dry_run=True)``."""
        return self.sync(dry_run=True, users=users, timeout=timeout)


def build_template_store(settings: SyncSettings, admin_client: Optional[GoogleClient] = None) -> TemplateStore:
    drive = DriveService(admin_client) if admin_client is not None else None
    return TemplateStore(settings.template_dir or None, drive=drive, cache_ttl=settings.template_cache_ttl)


def build_reporter(settings: SyncSettings, operator: str = "system") -> SyncReporter:
    """Logging reporter plus the signed audit trail."""
    trail = AuditTrail(settings.audit_log_dir, settings.audit_log_signing_key)
    return CompositeReporter([
        LoggingReporter(verbose=settings.verbose),
        AuditReporter(trail, operator=operator, domain=settings.search_domain),
    ])


def build_service(settings: SyncSettings, reporter: Optional[SyncReporter] = None, operator: str = "system") -> SignatureSyncService:
    """Build a service backed by the Google Workspace APIs.

    Raises:
        ConfigurationError: If the settings or the service account key are invalid
    """
    validate_settings(settings)
    credentials = ServiceAccountCredentials(ServiceAccountKey.from_dict(settings.service_account_key), timeout=settings.request_timeout)
    admin_client = GoogleClient(
        credentials,
        settings.admin_email,
        [DIRECTORY_READONLY_SCOPE, DRIVE_READONLY_SCOPE],
        timeout=settings.request_timeout,
    )
    return SignatureSyncService(
        settings,
        directory=DirectoryService(admin_client),
        templates=build_template_store(settings, admin_client),
        mailbox=GmailSettingsService(credentials, timeout=settings.request_timeout),
        credentials=credentials,
        reporter=reporter or build_reporter(settings, operator),
    )
