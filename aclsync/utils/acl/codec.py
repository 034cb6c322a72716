"""
Conversion between declared specifications, rule descriptors and identity tokens.

An identity token is a single string safe to store as the managed object's
external name: a format tag followed by compact JSON with sorted keys, e.g.

    v1:{"host":"*","operation":"Read",...}
"""
import json

from aclsync.core.errors import DecodingError, EncodingError
from aclsync.utils.acl.acl_models import (
    DESCRIPTOR_ENUMS,
    DESCRIPTOR_FIELDS,
    WILDCARD_HOST,
    AccessControlListParameters,
    AclPatternType,
    RuleDescriptor,
)

TOKEN_VERSION = "v1"
TOKEN_PREFIX = f"{TOKEN_VERSION}:"


def _canonical(value, enum_cls) -> str:
    member = enum_cls.lookup(value)
    if member is not None:
        return member.value
    # Left as-is; encode rejects it
    return value.value if hasattr(value, "value") else str(value)


def generate(spec: AccessControlListParameters) -> RuleDescriptor:
    """Derive the canonical rule descriptor from a declared specification."""
    return RuleDescriptor(
        principal=spec.principal,
        host=spec.host or WILDCARD_HOST,
        operation=_canonical(spec.operation, DESCRIPTOR_ENUMS["operation"]),
        permission_type=_canonical(spec.permission_type, DESCRIPTOR_ENUMS["permission_type"]),
        resource_type=_canonical(spec.resource_type, DESCRIPTOR_ENUMS["resource_type"]),
        resource_name=spec.resource_name,
        pattern_type=_canonical(spec.pattern_type or AclPatternType.LITERAL, AclPatternType),
    )


def _check_domain(values: dict, error_cls) -> None:
    for field in DESCRIPTOR_FIELDS:
        value = values.get(field)
        if not isinstance(value, str) or value == "":
            raise error_cls(f"field {field} must be a non-empty string, got {value!r}")
        enum_cls = DESCRIPTOR_ENUMS.get(field)
        if enum_cls is not None and value not in {m.value for m in enum_cls}:
            raise error_cls(f"field {field} has unknown value {value!r}")


def encode(descriptor: RuleDescriptor) -> str:
    """Serialize a descriptor to an identity token."""
    values = {field: getattr(descriptor, field) for field in DESCRIPTOR_FIELDS}
    _check_domain(values, EncodingError)
    return TOKEN_PREFIX + json.dumps(values, sort_keys=True, separators=(",", ":"))


def decode(token: str) -> RuleDescriptor:
    """Parse an identity token produced by :func:`encode`."""
    if not isinstance(token, str) or not token.startswith(TOKEN_PREFIX):
        raise DecodingError(f"identity token has no {TOKEN_VERSION!r} format tag")

    try:
        values = json.loads(token[len(TOKEN_PREFIX):])
    except json.JSONDecodeError as e:
        raise DecodingError(f"identity token is not valid JSON: {e}") from e

    if not isinstance(values, dict):
        raise DecodingError("identity token does not hold an object")

    unknown = sorted(set(values) - set(DESCRIPTOR_FIELDS))
    if unknown:
        raise DecodingError(f"identity token has unknown fields: {', '.join(unknown)}")

    _check_domain(values, DecodingError)
    return RuleDescriptor(**values)
