"""Signature synchronization pipeline.

Turns a list of identities plus one template into applied signatures:

    render ──> read current ──> compare ──┬──> skipped
                                          ├──> processed (dry run)
                                          └──> acquire credential ──> write (retry) ──> processed | failed

Identities are processed in contiguous batches. Members of a batch run on a
thread pool; the pipeline waits for the whole batch before sleeping
``batch_delay`` and starting the next one. A failure on one identity is
recorded in the result and never stops the batch or the run.
"""
from __future__ import annotations
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

import requests

from .change_detector import ChangeDetector
from .exceptions import (
    CredentialDenied,
    GoogleAPIError,
    PermanentWriteError,
    TransientWriteError,
    WriteError,
)
from .models import BatchJob, Identity, SyncOutcome, SyncResult
from .reporting import NullReporter, SyncReporter
from .templates import RenderContext, TemplateRenderer, build_render_context

if TYPE_CHECKING:
    from sigsync.config.settings import SyncSettings

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")

# Rate limiting; any 5xx is also transient
RETRYABLE_STATUS = 429


class MailboxSettingsProvider(Protocol):
    """Reads and writes a mailbox's signature."""

    def read_signature(self, email: str) -> str: ...

    def write_signature(self, email: str, text: str, credential: str) -> None: ...


class CredentialProvider(Protocol):
    """Issues a per-identity write credential."""

    def acquire_write_credential(self, email: str) -> str: ...


def classify_write_error(error: Exception) -> WriteError:
    """Map an exception raised by a write to a transient or permanent error.

    Transient: network failures, HTTP 429 and HTTP 5xx.
    Permanent: every other 4xx and anything unrecognized.
    """
    if isinstance(error, WriteError):
        return error
    if isinstance(error, GoogleAPIError):
        message = f"HTTP {error.status_code}: {error.message}"
        if error.status_code == RETRYABLE_STATUS or error.status_code >= 500:
            return TransientWriteError(message, error.status_code)
        return PermanentWriteError(message, error.status_code)
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return TransientWriteError(f"Network error: {error}")
    return PermanentWriteError(str(error) or error.__class__.__name__)


class SignatureSyncPipeline:
    """Batched, retrying signature writer.

    Args:
        template_text: Resolved template HTML
        mailbox: Mailbox settings provider (read/write signature)
        credentials: Per-identity write credential provider
        context_factory: Builds the render context for an identity
        batch_size: Maximum identities per batch
        batch_delay: Seconds to sleep between batches
        retry_attempts: Extra write attempts after the first failure
        retry_delay: Seconds to sleep between write attempts
        max_workers: Thread fan-out inside one batch
        reporter: Receives progress events
        sleep: Sleep function (injected for tests)
        clock: Monotonic clock (injected for tests)
    """

    def __init__(
        self,
        template_text: str,
        mailbox: MailboxSettingsProvider,
        credentials: CredentialProvider,
        *,
        context_factory: Optional[Callable[[Identity], RenderContext]] = None,
        renderer: Optional[TemplateRenderer] = None,
        detector: Optional[ChangeDetector] = None,
        batch_size: int = 10,
        batch_delay: float = 1.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        max_workers: int = 4,
        reporter: Optional[SyncReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if retry_attempts < 0:
            raise ValueError("retry_attempts must be non-negative")
        self.template_text = template_text
        self.mailbox = mailbox
        self.credentials = credentials
        self.context_factory = context_factory or (lambda identity: build_render_context(identity))
        self.renderer = renderer or TemplateRenderer()
        self.detector = detector or ChangeDetector()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.max_workers = max(1, max_workers)
        self.reporter = reporter or NullReporter()
        self._sleep = sleep
        self._clock = clock
        self._report_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: "SyncSettings",
        template_text: str,
        mailbox: MailboxSettingsProvider,
        credentials: CredentialProvider,
        *,
        template_defaults: Optional[Mapping[str, str]] = None,
        reporter: Optional[SyncReporter] = None,
        **kwargs,
    ) -> "SignatureSyncPipeline":
        """Build a pipeline whose pacing and render context come from settings."""
        return cls(
            template_text,
            mailbox,
            credentials,
            context_factory=lambda identity: build_render_context(identity, settings, template_defaults),
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay,
            max_workers=settings.max_workers,
            reporter=reporter,
            **kwargs,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Public entry points
    # ─────────────────────────────────────────────────────────────────────────
    def run(
        self,
        identities: Iterable[Union[Identity, str]],
        dry_run: bool = False,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """Synchronize signatures for the given identities.

        Args:
            identities: Identity objects or bare email addresses. Repeats of an
                email (compared case-insensitively) are dropped with a warning,
                so the result partitions the unique emails only.
            dry_run: Classify everything but never call the write API
            timeout: Optional deadline in seconds, checked before each batch

        Returns:
            SyncResult partitioning every identity into processed, skipped or
            failed. When the deadline passes, identities of the batches not
            started are absent and ``partial`` is True.
        """
        queue = self._prepare(identities)
        batches = self.make_batches(queue)
        deadline = self._clock() + timeout if timeout is not None else None
        started = self._clock()
        result = SyncResult()

        self.reporter.run_started(len(queue), dry_run)
        for batch in batches:
            if deadline is not None and self._clock() >= deadline:
                result.partial = True
                logger.warning(
                    "Deadline reached before batch %d; %d users left unprocessed",
                    batch.index + 1,
                    len(queue) - result.total,
                )
                break

            self.reporter.batch_started(batch)
            for outcome in self._run_batch(batch, dry_run):
                result.add(outcome)

            if batch.index < len(batches) - 1 and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        self.reporter.run_finished(result, self._clock() - started)
        return result

    def dry_run(self, identities: Iterable[Union[Identity, str]], timeout: Optional[float] = None) -> SyncResult:
        """Same as ``run(identities, dry_run=True)``."""
        return self.run(identities, dry_run=True, timeout=timeout)

    def make_batches(self, identities: Sequence[Identity]) -> List[BatchJob]:
        """Split identities into contiguous batches of at most ``batch_size``."""
        return [
            BatchJob(index=index, identities=tuple(identities[start:start + self.batch_size]))
            for index, start in enumerate(range(0, len(identities), self.batch_size))
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────
    def _prepare(self, identities: Iterable[Union[Identity, str]]) -> List[Identity]:
        queue: List[Identity] = []
        seen = set()
        for item in identities:
            identity = item if isinstance(item, Identity) else Identity.from_email(str(item).strip())
            key = identity.email.lower()
            if key in seen:
                logger.warning("Ignoring duplicate identity %s", identity.email)
                continue
            seen.add(key)
            queue.append(identity)
        return queue

    def _run_batch(self, batch: BatchJob, dry_run: bool) -> List[SyncOutcome]:
        """Process every member of a batch and return outcomes in batch order."""
        slots: List[Optional[SyncOutcome]] = [None] * len(batch)

        if self.max_workers == 1 or len(batch) == 1:
            for position, identity in enumerate(batch.identities):
                slots[position] = self._process(identity, dry_run)
                self.reporter.identity_resolved(slots[position])
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batch))) as executor:
                futures = {
                    executor.submit(self._process, identity, dry_run): position
                    for position, identity in enumerate(batch.identities)
                }
                for future in as_completed(futures):
                    position = futures[future]
                    slots[position] = future.result()
                    self.reporter.identity_resolved(slots[position])

        return [outcome for outcome in slots if outcome is not None]

    def _process(self, identity: Identity, dry_run: bool) -> SyncOutcome:
        """Drive one identity to a terminal outcome. Never raises."""
        email = identity.email
        if not EMAIL_PATTERN.match(email or ""):
            return SyncOutcome(email, "failed", reason=f"Malformed identity: invalid email address '{email}'")

        try:
            desired = self.renderer.render(self.template_text, self.context_factory(identity))
        except Exception as e:
            logger.exception("Rendering failed for %s", email)
            return SyncOutcome(email, "failed", reason=f"Rendering failed: {e}")

        try:
            current = self.mailbox.read_signature(email)
        except Exception as e:
            return SyncOutcome(email, "failed", reason=f"Failed to read current signature: {e}")

        if not self.detector.needs_update(current, desired):
            return SyncOutcome(email, "skipped")

        if dry_run:
            return SyncOutcome(email, "processed")

        try:
            credential = self.credentials.acquire_write_credential(email)
        except CredentialDenied as e:
            return SyncOutcome(email, "failed", reason=str(e))
        except Exception as e:
            return SyncOutcome(email, "failed", reason=f"Credential acquisition failed: {e}")

        return self._write_with_retry(email, desired, credential)

    def _write_with_retry(self, email: str, desired: str, credential: str) -> SyncOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                self.mailbox.write_signature(email, desired, credential)
                return SyncOutcome(email, "processed", attempts=attempt)
            except Exception as e:
                error = classify_write_error(e)

            if isinstance(error, PermanentWriteError) or attempt > self.retry_attempts:
                return SyncOutcome(email, "failed", reason=error.message, attempts=attempt)

            with self._report_lock:
                self.reporter.retry_scheduled(email, attempt, error)
            if self.retry_delay > 0:
                self._sleep(self.retry_delay)
