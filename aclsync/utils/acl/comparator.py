"""
Equality and field-level diff between rule descriptors.
"""
from typing import List

from aclsync.utils.acl.acl_models import DESCRIPTOR_FIELDS, RuleDescriptor


def equal(a: RuleDescriptor, b: RuleDescriptor) -> bool:
    """Field-wise equality; no case folding."""
    return all(getattr(a, field) == getattr(b, field) for field in DESCRIPTOR_FIELDS)


def diff(a: RuleDescriptor, b: RuleDescriptor) -> List[str]:
    """
    Describe every field where ``a`` and ``b`` differ.

    Args:
        a: Authoritative descriptor, reported as "expected"
        b: Descriptor compared against it, reported as "actual"

    Returns:
        One message per differing field, in canonical field order
    """
    messages = []
    for field in DESCRIPTOR_FIELDS:
        expected = getattr(a, field)
        actual = getattr(b, field)
        if expected != actual:
            messages.append(f"{field}: expected {expected}, actual {actual}")
    return messages
