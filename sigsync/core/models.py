"""Data model shared by the filter, renderer and pipeline."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

OutcomeStatus = Literal["processed", "skipped", "failed"]


@dataclass(frozen=True)
class Identity:
    """A directory-listed mailbox subject to signature synchronization."""
    email: str
    given_name: str = ""
    family_name: str = ""
    full_name: str = ""
    job_title: str = ""
    department: str = ""
    phone: str = ""
    mobile: str = ""
    org_unit_path: str = "/"
    archived: bool = False
    suspended: bool = False

    @property
    def domain(self) -> str:
        """Domain part of the email, lower-cased ("" when malformed)."""
        if "@" not in self.email:
            return ""
        return self.email.rsplit("@", 1)[1].lower()

    @classmethod
    def from_email(cls, email: str) -> "Identity":
        return cls(email=email)

    @classmethod
    def from_directory_user(cls, user: Dict[str, Any]) -> "Identity":
        """Build an identity from an Admin SDK Directory user resource."""
        name = user.get("name") or {}
        organizations = user.get("organizations") or []
        org = next((o for o in organizations if o.get("primary")), organizations[0] if organizations else {})
        phones = user.get("phones") or []

        def _phone(kind: str) -> str:
            for entry in phones:
                if entry.get("type") == kind:
                    return entry.get("value", "")
            return ""

        given = name.get("givenName", "")
        family = name.get("familyName", "")
        return cls(
            email=user.get("primaryEmail", ""),
            given_name=given,
            family_name=family,
            full_name=name.get("fullName") or " ".join(part for part in (given, family) if part),
            job_title=org.get("title", ""),
            department=org.get("department", ""),
            phone=_phone("work"),
            mobile=_phone("mobile"),
            org_unit_path=user.get("orgUnitPath", "/"),
            archived=bool(user.get("archived", False)),
            suspended=bool(user.get("suspended", False)),
        )


@dataclass(frozen=True)
class FilterRules:
    """Inclusion/exclusion rules for a domain.

    A non-empty ``included_users`` overrides the exclusion rules.
    ``ou_match`` is ``"prefix"`` (plain string prefix) or ``"segment"``
    (whole OU path segments only).
    """
    domain: str
    included_users: FrozenSet[str] = frozenset()
    excluded_users: FrozenSet[str] = frozenset()
    excluded_ous: Tuple[str, ...] = ()
    include_archived: bool = False
    include_suspended: bool = False
    ou_match: str = "prefix"


@dataclass(frozen=True)
class SyncOutcome:
    """Terminal classification of one identity."""
    email: str
    status: OutcomeStatus
    reason: Optional[str] = None
    attempts: int = 0


@dataclass
class SyncResult:
    """Partition of a run's identities into processed, skipped and failed.

    ``partial`` is True only when a run deadline expired; identities that
    were never started are then absent from all three buckets.
    """
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    partial: bool = False

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.skipped) + len(self.failed)

    def add(self, outcome: SyncOutcome) -> None:
        if outcome.status == "processed":
            self.processed.append(outcome.email)
        elif outcome.status == "skipped":
            self.skipped.append(outcome.email)
        else:
            self.failed[outcome.email] = outcome.reason or "Unknown error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": list(self.processed),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
            "partial": self.partial,
        }


@dataclass(frozen=True)
class BatchJob:
    """Contiguous slice of a run's identities."""
    index: int
    identities: Tuple[Identity, ...]

    @property
    def emails(self) -> List[str]:
        return [identity.email for identity in self.identities]

    def __len__(self) -> int:
        return len(self.identities)
