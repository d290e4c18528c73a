from enum import Enum


class ServiceTag(str, Enum):
    PRINTING = "printing"
    BINDING = "binding"
    FOIL_STAMPING = "foilStamping"
    EMBOSSING = "embossing"
    DIE_CUTTING = "dieCutting"
    UV_COATING = "uvCoating"
    LAMINATION = "lamination"
    SCORING = "scoring"
    FOLDING = "folding"

    @property
    def display_name(self) -> str:
        return _SERVICE_DISPLAY_NAMES[self]


_SERVICE_DISPLAY_NAMES = {
    ServiceTag.PRINTING: "Printing",
    ServiceTag.BINDING: "Binding",
    ServiceTag.FOIL_STAMPING: "Foil Stamping",
    ServiceTag.EMBOSSING: "Embossing",
    ServiceTag.DIE_CUTTING: "Die Cutting",
    ServiceTag.UV_COATING: "UV Coating",
    ServiceTag.LAMINATION: "Lamination",
    ServiceTag.SCORING: "Scoring",
    ServiceTag.FOLDING: "Folding",
}


class QuoteRequestStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    RESPONSES_RECEIVED = "RESPONSES_RECEIVED"
    AWARDED = "AWARDED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (QuoteRequestStatus.AWARDED, QuoteRequestStatus.CANCELLED)


class VendorQuoteStatus(str, Enum):
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @property
    def rank(self) -> int:
        # ACCEPTED and REJECTED share a rank: both are terminal
        return {"PENDING": 0, "RECEIVED": 1, "ACCEPTED": 2, "REJECTED": 2}[self.value]

    @property
    def is_terminal(self) -> bool:
        return self.rank == 2

    def can_transition_to(self, target: "VendorQuoteStatus") -> bool:
        if self.is_terminal:
            return False
        if self is target:
            return self is VendorQuoteStatus.RECEIVED  # re-recording a response
        return target.rank > self.rank


class AuditEvent(str, Enum):
    QUOTE_REQUEST_CREATED = "QuoteRequestCreated"
    QUOTE_REQUEST_UPDATED = "QuoteRequestUpdated"
    QUOTE_REQUEST_DISPATCHED = "QuoteRequestDispatched"
    DISPATCH_FAILED = "DispatchFailed"
    RESPONSE_RECORDED = "VendorResponseRecorded"
    QUOTE_AWARDED = "QuoteAwarded"
    QUOTE_REQUEST_CANCELLED = "QuoteRequestCancelled"
