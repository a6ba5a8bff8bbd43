"""
Error Taxonomy

Domain exceptions raised by the sync and analytics core. The HTTP layer maps
each class to a status code in ``storelens.serving.api.errors``; background
workers (webhooks, sweeps) catch them per record or per tenant and log.
"""

from typing import Any, Dict, Optional


class StoreLensError(Exception):
    """Base class for all StoreLens domain errors"""

    code: str = "storelens_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class NotFound(StoreLensError):
    """A lookup missed. Expected outcome, never a crash."""

    code = "not_found"


class RecordNotFound(NotFound):
    """
    Record id does not exist for the calling tenant.

    Also raised when the id exists under another tenant, so that tenant
    isolation cannot be told apart from absence.
    """

    code = "record_not_found"

    def __init__(self, kind: str, record_id: Any):
        super().__init__(f"{kind} {record_id} not found", kind=kind, record_id=str(record_id))
        self.kind = kind
        self.record_id = record_id


class TenantNotFound(NotFound):
    """No active tenant is registered for the shop domain or id"""

    code = "tenant_not_found"

    def __init__(self, reference: Any):
        super().__init__(f"No tenant found for: {reference}", reference=str(reference))
        self.reference = reference


class MalformedRecord(StoreLensError):
    """External platform data could not be mapped to the canonical schema"""

    code = "malformed_record"

    def __init__(self, kind: str, message: str, external_id: Optional[str] = None):
        super().__init__(f"Malformed {kind} record: {message}", kind=kind, external_id=external_id)
        self.kind = kind
        self.external_id = external_id


class InvalidRecord(StoreLensError):
    """Caller-supplied data violates a canonical schema constraint"""

    code = "invalid_record"


class UpstreamUnavailable(StoreLensError):
    """External commerce platform returned an error or timed out"""

    code = "upstream_unavailable"


class Unauthorized(StoreLensError):
    """Missing or invalid caller identity; passed through from auth"""

    code = "unauthorized"


class InvalidStatusTransition(StoreLensError):
    """Order status change not allowed by the order lifecycle"""

    code = "invalid_status_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move order from '{current}' to '{requested}'",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class AppendOnlyViolation(StoreLensError):
    """Attempt to mutate or delete an append-only record"""

    code = "append_only"
