"""
Error taxonomy for ACL reconciliation.

Every error is scoped to one managed object's reconciliation pass. The
reconciliation operations raise these and never retry; the scheduler records
them as status and events.
"""
from typing import List, Optional


class ReconcileError(Exception):
    """Base class for all reconciliation errors."""


class EncodingError(ReconcileError):
    """A rule descriptor holds a value outside its domain and cannot be encoded."""


class DecodingError(ReconcileError):
    """An identity token is malformed or was not produced by this codec."""


class DriftError(ReconcileError):
    """The declared specification no longer matches the rule recorded at creation."""

    def __init__(self, diff: List[str]):
        self.diff = list(diff)
        super().__init__("; ".join(self.diff))


class RemoteUnavailable(ReconcileError):
    """A round trip to the admin gateway failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class GatewayClosedError(RemoteUnavailable):
    """The admin gateway was used after its session was released."""

    def __init__(self):
        super().__init__("admin gateway is closed")


class UnsupportedOperationError(ReconcileError):
    """Raised by update: identity-defining fields are immutable."""


class ExternalCreateError(RemoteUnavailable):
    """
    The remote create failed after the identity token may have been bound.

    The creation outcome is carried so the caller can persist the token.
    """

    def __init__(self, creation, cause: RemoteUnavailable):
        super().__init__(str(cause), cause=cause)
        self.creation = creation


class CredentialsError(ReconcileError):
    """Broker credentials could not be read or parsed."""
