"""Unit tests for directory filtering rules."""
import pytest

from sigsync.core.exceptions import ConfigurationError, InvalidRuleError
from sigsync.core.identity_filter import filter_identities, select_identities, should_include
from sigsync.core.models import FilterRules, Identity


def rules(**overrides):
    base = dict(domain="x.com")
    base.update(overrides)
    return FilterRules(**base)


def test_included_users_override_exclusion_lists():
    """An explicit inclusion list bypasses the excluded user and OU rules."""
    people = [
        Identity(email="a@x.com", suspended=True, org_unit_path="/Test"),
        Identity(email="b@x.com"),
    ]
    result = filter_identities(
        people,
        rules(included_users=frozenset({"a@x.com"}), excluded_users=frozenset({"a@x.com"}), excluded_ous=("Test",), include_suspended=True),
    )
    assert result == ["a@x.com"]


def test_suspended_user_stays_excluded_when_listed():
    """The suspended and archived checks run before the inclusion list."""
    people = [Identity(email="a@x.com", suspended=True), Identity(email="b@x.com")]
    assert filter_identities(people, rules(included_users=frozenset({"a@x.com"}))) == []


def test_archived_user_stays_excluded_when_listed():
    people = [Identity(email="c@x.com", archived=True)]
    assert filter_identities(people, rules(included_users=frozenset({"c@x.com"}))) == []


def test_archived_and_suspended_excluded_by_default():
    people = [
        Identity(email="active@x.com"),
        Identity(email="archived@x.com", archived=True),
        Identity(email="suspended@x.com", suspended=True),
    ]
    assert filter_identities(people, rules()) == ["active@x.com"]


def test_archived_and_suspended_included_when_enabled():
    people = [Identity(email="archived@x.com", archived=True), Identity(email="suspended@x.com", suspended=True)]
    result = filter_identities(people, rules(include_archived=True, include_suspended=True))
    assert result == ["archived@x.com", "suspended@x.com"]


def test_foreign_domain_never_included():
    people = [Identity(email="a@other.com"), Identity(email="b@x.com")]
    assert filter_identities(people, rules(included_users=frozenset({"a@other.com"}))) == []
    assert filter_identities(people, rules()) == ["b@x.com"]


def test_domain_match_is_case_insensitive():
    assert filter_identities([Identity(email="a@X.com")], rules()) == ["a@X.com"]


def test_excluded_users():
    people = [Identity(email="a@x.com"), Identity(email="b@x.com")]
    assert filter_identities(people, rules(excluded_users=frozenset({"b@x.com"}))) == ["a@x.com"]


def test_ou_exclusion_is_prefix_match_by_default():
    """Prefix matching also excludes sibling OUs sharing the text prefix."""
    people = [
        Identity(email="intern@x.com", org_unit_path="/Test/Interns"),
        Identity(email="qa@x.com", org_unit_path="/Testing"),
        Identity(email="dev@x.com", org_unit_path="/Engineering"),
    ]
    assert filter_identities(people, rules(excluded_ous=("Test",))) == ["dev@x.com"]


def test_ou_exclusion_segment_mode_keeps_siblings():
    people = [
        Identity(email="intern@x.com", org_unit_path="/Test/Interns"),
        Identity(email="lead@x.com", org_unit_path="/Test"),
        Identity(email="qa@x.com", org_unit_path="/Testing"),
    ]
    assert filter_identities(people, rules(excluded_ous=("Test",), ou_match="segment")) == ["qa@x.com"]


def test_ou_exclusion_accepts_leading_slash():
    people = [Identity(email="svc@x.com", org_unit_path="/Service Accounts/Bots")]
    assert filter_identities(people, rules(excluded_ous=("/Service Accounts",))) == []


def test_output_preserves_input_order():
    people = [Identity(email=f"{name}@x.com") for name in ("zed", "amy", "bob")]
    assert filter_identities(people, rules()) == ["zed@x.com", "amy@x.com", "bob@x.com"]


def test_select_identities_returns_objects():
    person = Identity(email="a@x.com", full_name="A")
    assert select_identities([person], rules()) == [person]


@pytest.mark.parametrize("domain", ["", "   "])
def test_missing_domain_raises(domain):
    with pytest.raises(InvalidRuleError):
        filter_identities([Identity(email="a@x.com")], rules(domain=domain))


def test_missing_domain_raises_even_for_empty_input():
    with pytest.raises(ConfigurationError):
        filter_identities([], rules(domain=""))


def test_unknown_ou_match_mode_rejected():
    with pytest.raises(InvalidRuleError):
        filter_identities([], rules(ou_match="regex"))


def test_should_include_is_pure():
    person = Identity(email="a@x.com")
    rule_set = rules()
    assert should_include(person, rule_set) is should_include(person, rule_set) is True
