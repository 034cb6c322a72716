"""
Reconciliation operations for managed ACLs.

An AccessControlListExternal observes, then either creates, updates, or
deletes the rule on the cluster so that it reflects the managed object's
declared specification. The operations are synchronous, hold no state
between calls, never retry and never log: every failure is raised to the
caller with the diagnostic text in the error.
"""
from pydantic import BaseModel

from aclsync.core.errors import (
    DriftError,
    ExternalCreateError,
    RemoteUnavailable,
    UnsupportedOperationError,
)
from aclsync.services.gateway import AdminGateway
from aclsync.utils.acl import codec, comparator
from aclsync.utils.acl.acl_models import ManagedAccessControlList, available

ERR_UPDATE_NOT_SUPPORTED = "updates are not supported"


class ExternalObservation(BaseModel):
    """Result of observing the cluster for one managed ACL."""
    resource_exists: bool = False
    resource_up_to_date: bool = False
    # Late initialization is never performed for ACLs
    resource_late_initialized: bool = False


class ExternalCreation(BaseModel):
    """Result of a create: whether an identity token was bound."""
    external_name_assigned: bool = False


class AccessControlListExternal:
    """The observe/create/update/delete contract over one admin gateway."""

    def __init__(self, gateway: AdminGateway):
        self.gateway = gateway

    def observe(self, mg: ManagedAccessControlList) -> ExternalObservation:
        """
        Decide whether the managed ACL's rule exists and matches.

        Raises:
            DecodingError: If the bound identity token is malformed
            DriftError: If the declared specification changed since creation
            RemoteUnavailable: If the gateway round trip failed
        """
        # Without an identity token the rule was never created by us
        if not mg.external_name:
            return ExternalObservation(resource_exists=False)

        recorded = codec.decode(mg.external_name)
        declared = codec.generate(mg.for_provider)

        if not comparator.equal(recorded, declared):
            raise DriftError(comparator.diff(recorded, declared))

        found = self.gateway.list(recorded)
        if found is None:
            return ExternalObservation(resource_exists=False)

        mg.set_conditions(available())
        return ExternalObservation(
            resource_exists=True,
            resource_up_to_date=True,
            resource_late_initialized=False,
        )

    def create(self, mg: ManagedAccessControlList) -> ExternalCreation:
        """
        Create the rule, binding the identity token if none is bound yet.

        The token is bound before the remote create is issued. If the create
        fails, ExternalCreateError carries the creation so the token can still
        be persisted; the next observe then finds the rule absent and creates
        it again.
        """
        generated = codec.generate(mg.for_provider)
        external_name = codec.encode(generated)

        creation = ExternalCreation()
        if not mg.external_name:
            mg.external_name = external_name
            creation = ExternalCreation(external_name_assigned=True)

        try:
            self.gateway.create(generated)
        except RemoteUnavailable as e:
            raise ExternalCreateError(creation, e) from e
        return creation

    def update(self, mg: ManagedAccessControlList):
        """Identity-defining fields are immutable, so there is nothing to update."""
        raise UnsupportedOperationError(ERR_UPDATE_NOT_SUPPORTED)

    def delete(self, mg: ManagedAccessControlList) -> None:
        """Delete the rule described by the current declared specification."""
        self.gateway.delete(codec.generate(mg.for_provider))
