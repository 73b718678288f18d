"""Audit logging for signature sync runs (signed JSONL trail)."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import threading
from pathlib import Path
from typing import Any, Literal

from sigsync.core.models import BatchJob, SyncOutcome, SyncResult

logger = logging.getLogger(__name__)

AUDIT_LOG_FILENAME = "signature-events.jsonl"

EventType = Literal[
    "run_started", "run_finished",
    "signature_updated", "signature_skipped", "signature_failed",
    "signature_retry",
]


class AuditTrail:
    """Append-only, HMAC-SHA256 signed event log.

    Each line is one JSON object; when a signing key is configured the
    object carries a ``signature`` over its canonical JSON form.
    """

    def __init__(self, log_dir: str | Path, signing_key: str = ""):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / AUDIT_LOG_FILENAME
        self._signing_key = signing_key.strip().encode("utf-8")
        self._lock = threading.Lock()

    def _ensure_audit_dir(self) -> None:
        """Create audit directory with restricted permissions."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.chmod(0o700)

    def _sign_event(self, event: dict[str, Any]) -> str:
        if not self._signing_key:
            return ""
        # Canonical JSON representation for signing
        canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def log_event(
        self,
        event_type: EventType,
        email: str,
        *,
        operator: str = "system",
        domain: str = "",
        details: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        """Append one event with timestamp and signature.

        Args:
            event_type: Kind of sync event
            email: Mailbox affected ("" for run-level events)
            operator: Who triggered the run (user or "system")
            domain: Workspace domain of the run
            details: Additional context (reason, attempts, counts)
            success: Whether the operation succeeded
        """
        event = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event_type": event_type,
            "domain": domain,
            "email": email,
            "operator": operator,
            "success": success,
            "details": details or {},
        }

        signature = self._sign_event(event)
        if signature:
            event["signature"] = signature

        with self._lock:
            self._ensure_audit_dir()
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event, ensure_ascii=False) + "\n")
            self.log_file.chmod(0o600)

    def safe_log_event(self, event_type: EventType, email: str, **kwargs: Any) -> bool:
        """Log an event without ever raising.

        Returns:
            True if the event was written, False if writing failed
        """
        try:
            self.log_event(event_type, email, **kwargs)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write %s audit event for %s: %s", event_type, email or "<run>", e)
            return False

    def verify(self) -> tuple[int, int]:
        """Verify all signatures in the audit log.

        Returns:
            Tuple of (total_events, valid_signatures)
        """
        if not self.log_file.exists():
            return 0, 0

        total = 0
        valid = 0
        with self.log_file.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                total += 1
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                stored_sig = event.pop("signature", "")
                if not stored_sig:
                    continue
                computed_sig = self._sign_event(event)
                if computed_sig and hmac.compare_digest(stored_sig, computed_sig):
                    valid += 1
        return total, valid


_OUTCOME_EVENTS: dict[str, EventType] = {
    "processed": "signature_updated",
    "skipped": "signature_skipped",
    "failed": "signature_failed",
}


class AuditReporter:
    """Sync reporter that records run and per-identity events in an audit trail."""

    def __init__(self, trail: AuditTrail, *, operator: str = "system", domain: str = "", record_skipped: bool = False):
        self.trail = trail
        self.operator = operator
        self.domain = domain
        self.record_skipped = record_skipped
        self._dry_run = False

    def _log(self, event_type: EventType, email: str, details: dict[str, Any], success: bool = True) -> None:
        details = dict(details, dry_run=self._dry_run)
        self.trail.safe_log_event(
            event_type, email, operator=self.operator, domain=self.domain, details=details, success=success
        )

    def run_started(self, total: int, dry_run: bool) -> None:
        self._dry_run = dry_run
        self._log("run_started", "", {"total": total})

    def batch_started(self, batch: BatchJob) -> None:
        pass

    def retry_scheduled(self, email: str, attempt: int, error: Exception) -> None:
        self._log("signature_retry", email, {"attempt": attempt, "error": str(error)}, success=False)

    def identity_resolved(self, outcome: SyncOutcome) -> None:
        if outcome.status == "skipped" and not self.record_skipped:
            return
        details: dict[str, Any] = {"attempts": outcome.attempts}
        if outcome.reason:
            details["reason"] = outcome.reason
        self._log(_OUTCOME_EVENTS[outcome.status], outcome.email, details, success=outcome.status != "failed")

    def run_finished(self, result: SyncResult, duration: float) -> None:
        self._log(
            "run_finished",
            "",
            {
                "processed": len(result.processed),
                "skipped": len(result.skipped),
                "failed": len(result.failed),
                "partial": result.partial,
                "duration_seconds": round(duration, 3),
            },
            success=not result.failed,
        )
