"""Directory filtering: which identities receive a signature."""
from __future__ import annotations
import logging
from typing import Iterable, List

from .exceptions import InvalidRuleError
from .models import FilterRules, Identity

logger = logging.getLogger(__name__)

OU_MATCH_MODES = ("prefix", "segment")


def _ou_excluded(org_unit_path: str, excluded_ous: Iterable[str], mode: str) -> bool:
    path = (org_unit_path or "").lstrip("/")
    for ou in excluded_ous:
        candidate = ou.strip().strip("/")
        if not candidate:
            continue
        if mode == "segment":
            if path == candidate or path.startswith(candidate + "/"):
                return True
        elif path.startswith(candidate):
            return True
    return False


def should_include(identity: Identity, rules: FilterRules) -> bool:
    """Apply the inclusion/exclusion rules to one identity, in order."""
    if identity.archived and not rules.include_archived:
        return False
    if identity.suspended and not rules.include_suspended:
        return False
    if identity.domain != rules.domain.lower():
        return False

    # Explicit inclusion list overrides every exclusion rule below
    if rules.included_users:
        return identity.email.lower() in {email.lower() for email in rules.included_users}

    if identity.email.lower() in {email.lower() for email in rules.excluded_users}:
        return False
    if _ou_excluded(identity.org_unit_path, rules.excluded_ous, rules.ou_match):
        return False
    return True


def _check_rules(rules: FilterRules) -> None:
    if not rules.domain or not rules.domain.strip():
        raise InvalidRuleError("Filter rules require a domain")
    if rules.ou_match not in OU_MATCH_MODES:
        raise InvalidRuleError(f"Unknown OU match mode '{rules.ou_match}' (expected one of {OU_MATCH_MODES})")


def select_identities(identities: Iterable[Identity], rules: FilterRules) -> List[Identity]:
    """Return the identities that pass the rules, preserving input order.

    Raises:
        InvalidRuleError: If the rules have no domain
    """
    _check_rules(rules)
    identities = list(identities)
    selected = [identity for identity in identities if should_include(identity, rules)]
    logger.info("Filtered %d users down to %d for domain %s", len(identities), len(selected), rules.domain)
    return selected


def filter_identities(identities: Iterable[Identity], rules: FilterRules) -> List[str]:
    """Return the emails of the identities that pass the rules."""
    return [identity.email for identity in select_identities(identities, rules)]
