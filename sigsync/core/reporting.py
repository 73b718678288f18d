"""Observability for pipeline runs.

The pipeline never logs or audits inline; it calls an injected
:class:`SyncReporter`. Reporters must not raise into the pipeline.
"""
from __future__ import annotations
import logging
from typing import Iterable, Optional, Protocol

from .models import BatchJob, SyncOutcome, SyncResult

logger = logging.getLogger(__name__)


class SyncReporter(Protocol):
    """Receives pipeline progress events."""

    def run_started(self, total: int, dry_run: bool) -> None: ...

    def batch_started(self, batch: BatchJob) -> None: ...

    def retry_scheduled(self, email: str, attempt: int, error: Exception) -> None: ...

    def identity_resolved(self, outcome: SyncOutcome) -> None: ...

    def run_finished(self, result: SyncResult, duration: float) -> None: ...


class NullReporter:
    """Reporter that ignores every event."""

    def run_started(self, total: int, dry_run: bool) -> None:
        pass

    def batch_started(self, batch: BatchJob) -> None:
        pass

    def retry_scheduled(self, email: str, attempt: int, error: Exception) -> None:
        pass

    def identity_resolved(self, outcome: SyncOutcome) -> None:
        pass

    def run_finished(self, result: SyncResult, duration: float) -> None:
        pass


class LoggingReporter:
    """Reporter that writes progress to the standard logging module."""

    def __init__(self, log: Optional[logging.Logger] = None, verbose: bool = False):
        self.log = log or logger
        self.verbose = verbose
        self._dry_run = False

    def run_started(self, total: int, dry_run: bool) -> None:
        self._dry_run = dry_run
        mode = "DRY RUN" if dry_run else "LIVE"
        self.log.info("Starting signature sync: mode=%s, users=%d", mode, total)

    def batch_started(self, batch: BatchJob) -> None:
        self.log.info("Processing batch %d (%d users)", batch.index + 1, len(batch))

    def retry_scheduled(self, email: str, attempt: int, error: Exception) -> None:
        self.log.warning("Retrying signature write for %s (attempt %d): %s", email, attempt, error)

    def identity_resolved(self, outcome: SyncOutcome) -> None:
        if outcome.status == "failed":
            self.log.error("Failed to update %s: %s", outcome.email, outcome.reason)
        elif outcome.status == "processed":
            verb = "Would update" if self._dry_run else "Updated"
            self.log.info("%s signature for %s", verb, outcome.email)
        elif self.verbose:
            self.log.info("Signature unchanged for %s", outcome.email)
        else:
            self.log.debug("Signature unchanged for %s", outcome.email)

    def run_finished(self, result: SyncResult, duration: float) -> None:
        self.log.info(
            "Execution summary: mode=%s, duration=%.2fs, updated=%d, skipped=%d, failed=%d%s",
            "Dry Run" if self._dry_run else "Live",
            duration,
            len(result.processed),
            len(result.skipped),
            len(result.failed),
            ", partial result (deadline reached)" if result.partial else "",
        )


class CompositeReporter:
    """Fan events out to several reporters."""

    def __init__(self, reporters: Iterable[SyncReporter]):
        self.reporters = list(reporters)

    def run_started(self, total: int, dry_run: bool) -> None:
        for reporter in self.reporters:
            reporter.run_started(total, dry_run)

    def batch_started(self, batch: BatchJob) -> None:
        for reporter in self.reporters:
            reporter.batch_started(batch)

    def retry_scheduled(self, email: str, attempt: int, error: Exception) -> None:
        for reporter in self.reporters:
            reporter.retry_scheduled(email, attempt, error)

    def identity_resolved(self, outcome: SyncOutcome) -> None:
        for reporter in self.reporters:
            reporter.identity_resolved(outcome)

    def run_finished(self, result: SyncResult, duration: float) -> None:
        for reporter in self.reporters:
            reporter.run_finished(result, duration)
