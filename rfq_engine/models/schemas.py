"""
Data schemas for the RFQ engine.

Jobs, vendors and capability profiles are owned by the surrounding
application and are read-only here. QuoteRequest is the aggregate root the
engine owns; its VendorQuote children are only ever written through it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from rfq_engine.utils.clock import utc_now

from .enums import QuoteRequestStatus, ServiceTag, VendorQuoteStatus


def new_id() -> str:
    return uuid4().hex


# ── Job (external, read-only) ────────────────────────────


class JobSpec(BaseModel):
    """Production attributes of a job. Only used to derive required services."""
    product_type: Optional[str] = None
    finished_size: Optional[str] = None
    flat_size: Optional[str] = None
    colors: Optional[str] = None
    paper_type: Optional[str] = None
    cover_paper_type: Optional[str] = None
    page_count: Optional[int] = None
    binding_style: Optional[str] = None
    coating: Optional[str] = None
    finishing: Optional[str] = None


class LineItem(BaseModel):
    description: str
    quantity: int = 0
    unit_price: Optional[float] = None


class Job(BaseModel):
    id: str
    number: str
    title: str = ""
    customer_name: str = ""
    spec: Optional[JobSpec] = None
    line_items: list[LineItem] = []
    due_date: Optional[datetime] = None
    vendor_id: Optional[str] = None  # set when a quote is awarded


# ── Vendors (external, read-only) ────────────────────────


class VendorContact(BaseModel):
    name: str = ""
    email: Optional[str] = None
    is_primary: bool = False


class Vendor(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    contacts: list[VendorContact] = []
    is_partner: bool = False  # negotiated relationship, gets a scoring bonus
    is_active: bool = True

    @property
    def recipient_email(self) -> Optional[str]:
        """Primary contact's address, falling back to the vendor address."""
        for contact in self.contacts:
            if contact.is_primary and contact.email:
                return contact.email
        return self.email


class VendorCapabilityProfile(BaseModel):
    """Declared production capabilities of one vendor, one flag per service."""
    vendor_id: str
    printing: bool = True
    binding: bool = False
    foil_stamping: bool = False
    embossing: bool = False
    die_cutting: bool = False
    uv_coating: bool = False
    lamination: bool = False
    scoring: bool = False
    folding: bool = False

    minimum_quantity: Optional[int] = None
    maximum_quantity: Optional[int] = None  # None = unbounded
    average_lead_time_days: Optional[int] = None

    def capability_flags(self) -> dict[ServiceTag, bool]:
        return {
            ServiceTag.PRINTING: self.printing,
            ServiceTag.BINDING: self.binding,
            ServiceTag.FOIL_STAMPING: self.foil_stamping,
            ServiceTag.EMBOSSING: self.embossing,
            ServiceTag.DIE_CUTTING: self.die_cutting,
            ServiceTag.UV_COATING: self.uv_coating,
            ServiceTag.LAMINATION: self.lamination,
            ServiceTag.SCORING: self.scoring,
            ServiceTag.FOLDING: self.folding,
        }

    def supported_services(self) -> frozenset[ServiceTag]:
        return frozenset(tag for tag, supported in self.capability_flags().items() if supported)


# ── Service requirement ──────────────────────────────────


class ServiceRequirement(BaseModel):
    """Set of services a job needs. Printing is always included."""
    model_config = ConfigDict(frozen=True)

    services: frozenset[ServiceTag] = frozenset({ServiceTag.PRINTING})

    @field_validator("services", mode="after")
    @classmethod
    def _always_printing(cls, value: frozenset[ServiceTag]) -> frozenset[ServiceTag]:
        return value | {ServiceTag.PRINTING}

    @field_serializer("services")
    def _serialize_services(self, value: frozenset[ServiceTag]) -> list[str]:
        return [tag.value for tag in ServiceTag if tag in value]

    @classmethod
    def of(cls, *tags: ServiceTag) -> "ServiceRequirement":
        return cls(services=frozenset(tags))

    def ordered(self) -> list[ServiceTag]:
        """Services in declaration order, for stable display and storage."""
        return [tag for tag in ServiceTag if tag in self.services]

    def __contains__(self, tag: object) -> bool:
        return tag in self.services

    def __len__(self) -> int:
        return len(self.services)


# ── Matching ─────────────────────────────────────────────


class ScoreBreakdown(BaseModel):
    service_match: float = 0.0
    quantity_fit: float = 0.0
    lead_time: float = 0.0
    partner_bonus: float = 0.0

    @property
    def total(self) -> float:
        return self.service_match + self.quantity_fit + self.lead_time + self.partner_bonus


class VendorMatch(BaseModel):
    """Result of scoring one vendor against one requirement set. Never persisted."""
    vendor: Vendor
    score: float = 0.0  # 0-100
    matched_services: list[ServiceTag] = []
    missing_services: list[ServiceTag] = []
    can_fulfill: bool = False
    estimated_lead_time_days: Optional[int] = None
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    manual_override: bool = False  # chosen by hand, capability gate skipped


# ── Quote request aggregate ──────────────────────────────


class VendorQuote(BaseModel):
    id: str = Field(default_factory=new_id)
    quote_request_id: str
    vendor_id: str
    vendor_name: str = ""
    vendor_email: Optional[str] = None
    status: VendorQuoteStatus = VendorQuoteStatus.PENDING

    quote_number: Optional[str] = None
    total_cost: Optional[float] = None
    lead_time_days: Optional[int] = None
    notes: Optional[str] = None
    line_items: Optional[list[dict[str, Any]]] = None

    dispatched_at: Optional[datetime] = None
    dispatch_error: Optional[str] = None
    received_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal


class QuoteRequest(BaseModel):
    id: str = Field(default_factory=new_id)
    job_id: str
    request_number: str
    spec: JobSpec  # snapshot taken at creation, never re-read from the job
    required_services: ServiceRequirement
    due_date: Optional[datetime] = None
    status: QuoteRequestStatus = QuoteRequestStatus.DRAFT
    vendor_quotes: list[VendorQuote] = []

    created_at: datetime = Field(default_factory=utc_now)
    sent_at: Optional[datetime] = None
    awarded_at: Optional[datetime] = None
    awarded_vendor_quote_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: str = ""

    # Set while a dispatch is sending; a second dispatch must not start
    dispatch_claim: Optional[str] = None
    dispatch_claimed_at: Optional[datetime] = None

    version: int = 0  # bumped by the store on every successful write

    def find_quote(self, vendor_quote_id: str) -> Optional[VendorQuote]:
        for quote in self.vendor_quotes:
            if quote.id == vendor_quote_id:
                return quote
        return None

    def open_quotes(self) -> list[VendorQuote]:
        return [q for q in self.vendor_quotes if q.is_open]


class VendorQuoteResponse(BaseModel):
    """A vendor's quote as entered by an operator."""
    quote_number: Optional[str] = None
    total_cost: float = Field(ge=0)
    lead_time_days: int = Field(ge=0)
    notes: Optional[str] = None
    line_items: Optional[list[dict[str, Any]]] = None


# ── Dispatch / audit ─────────────────────────────────────


class DeliveryReceipt(BaseModel):
    success: bool
    error: Optional[str] = None


class DispatchResult(BaseModel):
    vendor_quote_id: str
    vendor_id: str
    vendor_name: str = ""
    success: bool
    error: Optional[str] = None
    dry_run: bool = False


class AuditEntry(BaseModel):
    quote_request_id: str
    event: str
    details: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
