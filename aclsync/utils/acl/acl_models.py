"""
Pydantic models for declared and canonical ACL rules.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

WILDCARD_HOST = "*"


def _enum_key(value: str) -> str:
    """Lookup key that ignores casing and word separators."""
    return value.replace("_", "").replace("-", "").replace(" ", "").lower()


class _CanonicalEnum(str, Enum):
    """String enum whose members can be looked up case-insensitively."""

    @classmethod
    def lookup(cls, value) -> Optional["_CanonicalEnum"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = _enum_key(value)
        for member in cls:
            if _enum_key(member.value) == key:
                return member
        return None


class AclOperation(_CanonicalEnum):
    """Operations an ACL rule can authorize."""
    READ = "Read"
    WRITE = "Write"
    CREATE = "Create"
    DELETE = "Delete"
    ALTER = "Alter"
    DESCRIBE = "Describe"
    CLUSTER_ACTION = "ClusterAction"
    DESCRIBE_CONFIGS = "DescribeConfigs"
    ALTER_CONFIGS = "AlterConfigs"
    IDEMPOTENT_WRITE = "IdempotentWrite"
    ALL = "All"


class AclPermissionType(_CanonicalEnum):
    """Whether the rule grants or refuses the operation."""
    ALLOW = "Allow"
    DENY = "Deny"


class AclResourceType(_CanonicalEnum):
    """Kinds of cluster resources an ACL rule can target."""
    TOPIC = "Topic"
    GROUP = "Group"
    CLUSTER = "Cluster"
    TRANSACTIONAL_ID = "TransactionalId"


class AclPatternType(_CanonicalEnum):
    """How the resource name is matched."""
    LITERAL = "Literal"
    PREFIXED = "Prefixed"


class AccessControlListParameters(BaseModel):
    """
    Declared specification of one ACL rule.

    Every field is identity-defining: changing any of them describes a
    different rule. Enum inputs are accepted in any casing.
    """
    principal: str = Field(..., min_length=1, description="Principal, e.g. User:alice")
    host: Optional[str] = Field(None, description="Host the rule applies to, '*' when unset")
    operation: AclOperation
    permission_type: AclPermissionType
    resource_type: AclResourceType
    resource_name: str = Field(..., min_length=1)
    pattern_type: Optional[AclPatternType] = Field(None, description="Literal when unset")

    @field_validator("operation", "permission_type", "resource_type", "pattern_type", mode="before")
    @classmethod
    def normalize_enum(cls, v, info):
        """Accept enum values regardless of casing and separators."""
        if v is None:
            return v
        enum_cls = {
            "operation": AclOperation,
            "permission_type": AclPermissionType,
            "resource_type": AclResourceType,
            "pattern_type": AclPatternType,
        }[info.field_name]
        member = enum_cls.lookup(v)
        if member is None:
            valid = ", ".join(m.value for m in enum_cls)
            raise ValueError(f"{info.field_name} must be one of: {valid}")
        return member


class RuleDescriptor(BaseModel):
    """
    Canonical representation of one ACL rule on the cluster.

    Values are plain strings in canonical casing. Two descriptors are equal
    iff every field matches exactly.
    """
    model_config = ConfigDict(frozen=True)

    principal: str
    host: str
    operation: str
    permission_type: str
    resource_type: str
    resource_name: str
    pattern_type: str


# Canonical field order, used for serialization and diffs
DESCRIPTOR_FIELDS = (
    "principal",
    "host",
    "operation",
    "permission_type",
    "resource_type",
    "resource_name",
    "pattern_type",
)

# Enum domain of each enum-valued descriptor field
DESCRIPTOR_ENUMS = {
    "operation": AclOperation,
    "permission_type": AclPermissionType,
    "resource_type": AclResourceType,
    "pattern_type": AclPatternType,
}


class ConditionType(str, Enum):
    READY = "Ready"
    SYNCED = "Synced"


class ConditionReason(str, Enum):
    AVAILABLE = "Available"
    CREATING = "Creating"
    DELETING = "Deleting"
    RECONCILE_SUCCESS = "ReconcileSuccess"
    RECONCILE_ERROR = "ReconcileError"


class Condition(BaseModel):
    """One status condition of a managed object."""
    type: ConditionType
    status: bool
    reason: ConditionReason
    message: Optional[str] = None
    last_transition_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def available() -> Condition:
    return Condition(type=ConditionType.READY, status=True, reason=ConditionReason.AVAILABLE)


def creating() -> Condition:
    return Condition(type=ConditionType.READY, status=False, reason=ConditionReason.CREATING)


def deleting() -> Condition:
    return Condition(type=ConditionType.READY, status=False, reason=ConditionReason.DELETING)


def reconcile_success() -> Condition:
    return Condition(type=ConditionType.SYNCED, status=True, reason=ConditionReason.RECONCILE_SUCCESS)


def reconcile_error(err: BaseException) -> Condition:
    return Condition(
        type=ConditionType.SYNCED,
        status=False,
        reason=ConditionReason.RECONCILE_ERROR,
        message=str(err),
    )


class ManagedAccessControlList(BaseModel):
    """
    A managed ACL as seen by the reconciliation operations.

    ``external_name`` is the identity token recorded at first creation.
    """
    name: str
    for_provider: AccessControlListParameters
    external_name: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)

    def set_conditions(self, *conditions: Condition) -> None:
        """Set conditions, replacing any existing condition of the same type."""
        for condition in conditions:
            self.conditions = [c for c in self.conditions if c.type != condition.type]
            self.conditions.append(condition)

    def get_condition(self, condition_type: ConditionType) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None
