"""Models — enums, schemas and the error taxonomy."""

from .enums import AuditEvent, QuoteRequestStatus, ServiceTag, VendorQuoteStatus
from .errors import (
    ConflictingStateError,
    DispatchFailureError,
    NotFoundError,
    PreconditionFailedError,
    RFQEngineError,
)
from .schemas import (
    AuditEntry,
    DeliveryReceipt,
    DispatchResult,
    Job,
    JobSpec,
    LineItem,
    QuoteRequest,
    ScoreBreakdown,
    ServiceRequirement,
    Vendor,
    VendorCapabilityProfile,
    VendorContact,
    VendorMatch,
    VendorQuote,
    VendorQuoteResponse,
)

__all__ = [
    "AuditEvent",
    "QuoteRequestStatus",
    "ServiceTag",
    "VendorQuoteStatus",
    "ConflictingStateError",
    "DispatchFailureError",
    "NotFoundError",
    "PreconditionFailedError",
    "RFQEngineError",
    "AuditEntry",
    "DeliveryReceipt",
    "DispatchResult",
    "Job",
    "JobSpec",
    "LineItem",
    "QuoteRequest",
    "ScoreBreakdown",
    "ServiceRequirement",
    "Vendor",
    "VendorCapabilityProfile",
    "VendorContact",
    "VendorMatch",
    "VendorQuote",
    "VendorQuoteResponse",
]
