"""
Admin gateway: lists, creates and deletes ACL rules on the cluster.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from kafka.admin import (
    ACL,
    ACLFilter,
    ACLOperation,
    ACLPermissionType,
    ACLResourcePatternType,
    KafkaAdminClient,
    ResourcePattern,
    ResourcePatternFilter,
    ResourceType,
)
from kafka.errors import KafkaError, NoError

from aclsync.core.errors import GatewayClosedError, RemoteUnavailable
from aclsync.utils.acl.acl_models import (
    AclOperation,
    AclPatternType,
    AclPermissionType,
    AclResourceType,
    RuleDescriptor,
)

logger = logging.getLogger(__name__)


class AdminGateway(ABC):
    """Remote-facing client for ACL rules."""

    @abstractmethod
    def list(self, descriptor: RuleDescriptor) -> Optional[RuleDescriptor]:
        """Return the rule matching ``descriptor`` exactly, or None if absent."""
        pass

    @abstractmethod
    def create(self, descriptor: RuleDescriptor) -> None:
        """Create the rule; creating an identical existing rule is not an error."""
        pass

    @abstractmethod
    def delete(self, descriptor: RuleDescriptor) -> None:
        """Delete the rule; deleting an absent rule is not an error."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection. No call may follow."""
        pass


def _is_error(error) -> bool:
    """kafka-python reports per-item errors as classes or instances."""
    if error is None:
        return False
    if isinstance(error, type):
        return not issubclass(error, NoError)
    return not isinstance(error, NoError)


def to_kafka_acl(descriptor: RuleDescriptor) -> ACL:
    """Map a descriptor onto a kafka-python ACL."""
    return ACL(
        principal=descriptor.principal,
        host=descriptor.host,
        operation=ACLOperation[AclOperation(descriptor.operation).name],
        permission_type=ACLPermissionType[AclPermissionType(descriptor.permission_type).name],
        resource_pattern=ResourcePattern(
            resource_type=ResourceType[AclResourceType(descriptor.resource_type).name],
            resource_name=descriptor.resource_name,
            pattern_type=ACLResourcePatternType[AclPatternType(descriptor.pattern_type).name],
        ),
    )


def to_kafka_filter(descriptor: RuleDescriptor) -> ACLFilter:
    """Map a descriptor onto a filter that matches exactly that rule."""
    return ACLFilter(
        principal=descriptor.principal,
        host=descriptor.host,
        operation=ACLOperation[AclOperation(descriptor.operation).name],
        permission_type=ACLPermissionType[AclPermissionType(descriptor.permission_type).name],
        resource_pattern=ResourcePatternFilter(
            resource_type=ResourceType[AclResourceType(descriptor.resource_type).name],
            resource_name=descriptor.resource_name,
            pattern_type=ACLResourcePatternType[AclPatternType(descriptor.pattern_type).name],
        ),
    )


def from_kafka_acl(acl: ACL) -> RuleDescriptor:
    """Map a kafka-python ACL back onto a descriptor."""
    pattern = acl.resource_pattern
    return RuleDescriptor(
        principal=acl.principal,
        host=acl.host,
        operation=AclOperation[acl.operation.name].value,
        permission_type=AclPermissionType[acl.permission_type.name].value,
        resource_type=AclResourceType[pattern.resource_type.name].value,
        resource_name=pattern.resource_name,
        pattern_type=AclPatternType[pattern.pattern_type.name].value,
    )


class KafkaAdminGateway(AdminGateway):
    """
    Admin gateway backed by kafka-python's KafkaAdminClient.

    Calls are serialized through a lock since the client does not document
    thread-safety. Every client failure is raised as RemoteUnavailable.
    """

    def __init__(self, client: KafkaAdminClient):
        self._client = client
        self._lock = threading.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise GatewayClosedError()

    def list(self, descriptor: RuleDescriptor) -> Optional[RuleDescriptor]:
        with self._lock:
            self._check_open()
            try:
                acls, error = self._client.describe_acls(to_kafka_filter(descriptor))
            except (KafkaError, OSError) as e:
                raise RemoteUnavailable(f"cannot list ACLs: {e}", cause=e) from e

        if _is_error(error):
            raise RemoteUnavailable(f"cannot list ACLs: {error}")

        for acl in acls:
            found = from_kafka_acl(acl)
            if found == descriptor:
                return found
        return None

    def create(self, descriptor: RuleDescriptor) -> None:
        with self._lock:
            self._check_open()
            try:
                result = self._client.create_acls([to_kafka_acl(descriptor)])
            except (KafkaError, OSError) as e:
                raise RemoteUnavailable(f"cannot create ACL: {e}", cause=e) from e

        failed = result.get("failed") or []
        if failed:
            _, error = failed[0]
            raise RemoteUnavailable(f"cannot create ACL: {error}")

    def delete(self, descriptor: RuleDescriptor) -> None:
        with self._lock:
            self._check_open()
            try:
                results = self._client.delete_acls([to_kafka_filter(descriptor)])
            except (KafkaError, OSError) as e:
                raise RemoteUnavailable(f"cannot delete ACL: {e}", cause=e) from e

        for _, matches, error in results:
            if _is_error(error):
                raise RemoteUnavailable(f"cannot delete ACL: {error}")
            for _, match_error in matches:
                if _is_error(match_error):
                    raise RemoteUnavailable(f"cannot delete ACL: {match_error}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._client.close()
            except (KafkaError, OSError) as e:
                logger.warning(f"Error while closing Kafka admin client: {e}")
