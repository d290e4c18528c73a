"""
Store contract the lifecycle manager depends on.

Jobs, vendors and capability profiles are read-only except for the job's
vendor assignment, which is only written as part of an award. Every write
to a QuoteRequest is a compare-and-set on its `version`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from rfq_engine.models.enums import QuoteRequestStatus
from rfq_engine.models.schemas import Job, QuoteRequest, Vendor, VendorCapabilityProfile


class RFQStore(ABC):
    """Abstract persistence for the RFQ engine."""

    # ── Jobs & vendors (external aggregates) ─────────────

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        ...

    @abstractmethod
    def list_active_vendors(self) -> list[Vendor]:
        """Active vendors in a stable order (by name, then ID)."""

    @abstractmethod
    def get_capability_profiles(self) -> dict[str, VendorCapabilityProfile]:
        """Capability profiles keyed by vendor ID."""

    # ── Quote requests ───────────────────────────────────

    @abstractmethod
    def next_request_sequence(self) -> int:
        """Atomically allocate the next request number (1, 2, 3, ...)."""

    @abstractmethod
    def insert_quote_request(self, quote_request: QuoteRequest) -> QuoteRequest:
        """Persist a new aggregate with all of its vendor quotes in one write."""

    @abstractmethod
    def get_quote_request(self, quote_request_id: str) -> Optional[QuoteRequest]:
        ...

    @abstractmethod
    def find_quote_request_by_vendor_quote(self, vendor_quote_id: str) -> Optional[QuoteRequest]:
        ...

    @abstractmethod
    def list_quote_requests_for_job(self, job_id: str) -> list[QuoteRequest]:
        """Newest first."""

    @abstractmethod
    def list_quote_requests(
        self,
        status: Optional[QuoteRequestStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[QuoteRequest]:
        """Newest first; date bounds are inclusive."""

    @abstractmethod
    def count_by_status(self) -> dict[str, int]:
        ...

    @abstractmethod
    def save_quote_request(self, quote_request: QuoteRequest, expected_version: int) -> QuoteRequest:
        """
        Replace the stored aggregate if its version still equals
        `expected_version`. Raises ConflictingStateError otherwise.
        """

    @abstractmethod
    def commit_award(
        self,
        quote_request: QuoteRequest,
        expected_version: int,
        job_id: str,
        vendor_id: str,
    ) -> QuoteRequest:
        """
        Save the awarded aggregate and assign the vendor to the job as one
        unit of work. Raises ConflictingStateError if the request changed
        since it was read or is already awarded.
        """
