"""
Error taxonomy for the RFQ engine.

Every failure the engine surfaces is one of four kinds. Each carries enough
structured detail (which entity, which request, which vendors) for the
calling layer to render its own message.
"""

from __future__ import annotations

from typing import Any, Optional

from .schemas import DispatchResult


class RFQEngineError(Exception):
    """Base class for every error raised by the engine."""

    code = "RFQ_ENGINE_ERROR"

    def __init__(self, message: str, quote_request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.quote_request_id = quote_request_id

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.quote_request_id:
            payload["quote_request_id"] = self.quote_request_id
        return payload


class NotFoundError(RFQEngineError):
    """A job, vendor, quote request or vendor quote does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"entity": self.entity, "entity_id": self.entity_id})
        return payload


class PreconditionFailedError(RFQEngineError):
    """The operation is not allowed given the current data or status."""

    code = "PRECONDITION_FAILED"

    def __init__(
        self,
        message: str,
        quote_request_id: Optional[str] = None,
        status: Optional[str] = None,
    ):
        super().__init__(message, quote_request_id)
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.status:
            payload["status"] = self.status
        return payload


class DispatchFailureError(RFQEngineError):
    """The notification gateway could not deliver to one or more vendors."""

    code = "DISPATCH_FAILURE"

    def __init__(self, quote_request_id: str, failures: list[DispatchResult]):
        names = ", ".join(f.vendor_name or f.vendor_id for f in failures)
        super().__init__(
            f"Failed to send quote request to {len(failures)} vendor(s): {names}",
            quote_request_id,
        )
        self.failures = failures

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["failures"] = [f.model_dump() for f in self.failures]
        return payload


class ConflictingStateError(RFQEngineError):
    """A concurrent writer changed the quote request first. Re-read and retry."""

    code = "CONFLICTING_STATE"
