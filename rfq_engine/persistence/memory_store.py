"""
In-memory RFQ store — used in mock mode, the demo CLI and tests.

A single re-entrant lock serialises every write, which makes this store the
single-writer point for request numbers and award resolution within one
process. Multi-instance deployments must use MongoRFQStore.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from rfq_engine.models.enums import QuoteRequestStatus
from rfq_engine.models.errors import ConflictingStateError, NotFoundError
from rfq_engine.models.schemas import Job, QuoteRequest, Vendor, VendorCapabilityProfile
from rfq_engine.persistence.base import RFQStore

logger = logging.getLogger(__name__)

_AWARDABLE = (QuoteRequestStatus.SENT, QuoteRequestStatus.RESPONSES_RECEIVED)


class InMemoryRFQStore(RFQStore):
    """Dict-backed store. Returns deep copies so callers never share state."""

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._vendors: dict[str, Vendor] = {}
        self._profiles: dict[str, VendorCapabilityProfile] = {}
        self._requests: dict[str, QuoteRequest] = {}
        self._vendor_quote_index: dict[str, str] = {}
        self._sequence = 0

    # ── Seeding ──────────────────────────────────────────

    def add_job(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)

    def add_vendor(self, vendor: Vendor, profile: Optional[VendorCapabilityProfile] = None) -> None:
        with self._lock:
            self._vendors[vendor.id] = vendor.model_copy(deep=True)
            if profile is not None:
                self._profiles[vendor.id] = profile.model_copy(deep=True)

    # ── Jobs & vendors ───────────────────────────────────

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        with self._lock:
            vendor = self._vendors.get(vendor_id)
            return vendor.model_copy(deep=True) if vendor else None

    def list_active_vendors(self) -> list[Vendor]:
        with self._lock:
            vendors = [v.model_copy(deep=True) for v in self._vendors.values() if v.is_active]
        return sorted(vendors, key=lambda v: (v.name.lower(), v.id))

    def get_capability_profiles(self) -> dict[str, VendorCapabilityProfile]:
        with self._lock:
            return {k: p.model_copy(deep=True) for k, p in self._profiles.items()}

    # ── Quote requests ───────────────────────────────────

    def next_request_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def insert_quote_request(self, quote_request: QuoteRequest) -> QuoteRequest:
        with self._lock:
            if quote_request.id in self._requests:
                raise ConflictingStateError(
                    f"Quote request {quote_request.id} already exists", quote_request.id
                )
            stored = quote_request.model_copy(deep=True, update={"version": 1})
            self._requests[stored.id] = stored
            for quote in stored.vendor_quotes:
                self._vendor_quote_index[quote.id] = stored.id
            logger.debug(f"Stored quote request {stored.request_number} v1")
            return stored.model_copy(deep=True)

    def get_quote_request(self, quote_request_id: str) -> Optional[QuoteRequest]:
        with self._lock:
            stored = self._requests.get(quote_request_id)
            return stored.model_copy(deep=True) if stored else None

    def find_quote_request_by_vendor_quote(self, vendor_quote_id: str) -> Optional[QuoteRequest]:
        with self._lock:
            request_id = self._vendor_quote_index.get(vendor_quote_id)
            if request_id is None:
                return None
            return self.get_quote_request(request_id)

    def list_quote_requests_for_job(self, job_id: str) -> list[QuoteRequest]:
        with self._lock:
            matches = [r.model_copy(deep=True) for r in self._requests.values() if r.job_id == job_id]
        return sorted(matches, key=lambda r: (r.created_at, r.request_number), reverse=True)

    def list_quote_requests(
        self,
        status: Optional[QuoteRequestStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[QuoteRequest]:
        with self._lock:
            matches = [
                r.model_copy(deep=True)
                for r in self._requests.values()
                if (status is None or r.status is status)
                and (created_from is None or r.created_at >= created_from)
                and (created_to is None or r.created_at <= created_to)
            ]
        matches.sort(key=lambda r: (r.created_at, r.request_number), reverse=True)
        return matches[offset:offset + limit]

    def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for stored in self._requests.values():
                counts[stored.status.value] = counts.get(stored.status.value, 0) + 1
        return counts

    def _replace(self, quote_request: QuoteRequest, expected_version: int) -> QuoteRequest:
        current = self._requests.get(quote_request.id)
        if current is None:
            raise NotFoundError("Quote request", quote_request.id)
        if current.version != expected_version:
            raise ConflictingStateError(
                f"Quote request {current.request_number} was modified concurrently "
                f"(expected v{expected_version}, found v{current.version})",
                quote_request.id,
            )
        stored = quote_request.model_copy(deep=True, update={"version": expected_version + 1})
        self._requests[stored.id] = stored
        for quote in current.vendor_quotes:
            self._vendor_quote_index.pop(quote.id, None)
        for quote in stored.vendor_quotes:
            self._vendor_quote_index[quote.id] = stored.id
        return stored

    def save_quote_request(self, quote_request: QuoteRequest, expected_version: int) -> QuoteRequest:
        with self._lock:
            return self._replace(quote_request, expected_version).model_copy(deep=True)

    def commit_award(
        self,
        quote_request: QuoteRequest,
        expected_version: int,
        job_id: str,
        vendor_id: str,
    ) -> QuoteRequest:
        with self._lock:
            current = self._requests.get(quote_request.id)
            if current is not None and current.status not in _AWARDABLE:
                raise ConflictingStateError(
                    f"Quote request {current.request_number} is already {current.status.value}",
                    quote_request.id,
                )
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError("Job", job_id)
            stored = self._replace(quote_request, expected_version)
            self._jobs[job_id] = job.model_copy(update={"vendor_id": vendor_id})
            return stored.model_copy(deep=True)
