"""
Tests for rule descriptor equality and diffs.
"""
from aclsync.utils.acl import comparator
from aclsync.utils.acl.acl_models import RuleDescriptor

BASE = RuleDescriptor(
    principal="User:alice",
    host="*",
    operation="Read",
    permission_type="Allow",
    resource_type="Topic",
    resource_name="orders",
    pattern_type="Literal",
)


def test_identical_descriptors_are_equal():
    other = BASE.model_copy()

    assert comparator.equal(BASE, other)
    assert comparator.diff(BASE, other) == []


def test_equality_is_case_sensitive():
    other = BASE.model_copy(update={"principal": "user:alice"})

    assert not comparator.equal(BASE, other)


def test_diff_names_field_expected_and_actual():
    other = BASE.model_copy(update={"operation": "Write"})

    assert comparator.diff(BASE, other) == ["operation: expected Read, actual Write"]


def test_diff_lists_every_differing_field_in_canonical_order():
    other = BASE.model_copy(update={
        "pattern_type": "Prefixed",
        "host": "10.0.0.1",
        "resource_name": "payments",
    })

    messages = comparator.diff(BASE, other)

    assert messages == [
        "host: expected *, actual 10.0.0.1",
        "resource_name: expected orders, actual payments",
        "pattern_type: expected Literal, actual Prefixed",
    ]
    assert not comparator.equal(BASE, other)


def test_diff_treats_first_argument_as_expected():
    other = BASE.model_copy(update={"permission_type": "Deny"})

    assert comparator.diff(other, BASE) == ["permission_type: expected Deny, actual Allow"]
