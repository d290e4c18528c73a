"""
RFQ lifecycle manager.

QuoteRequest:  DRAFT ──dispatch──▶ SENT ──first response──▶ RESPONSES_RECEIVED ──award──▶ AWARDED
               any non-terminal status ──cancel──▶ CANCELLED
               DRAFT ──update vendors──▶ DRAFT
               Dispatch retries reach vendors still uncontacted in any open status.
VendorQuote:   PENDING ──▶ RECEIVED ──▶ ACCEPTED | REJECTED   (never backwards)

Every write goes through the store as a compare-and-set on the request's
version, so a concurrent writer surfaces as ConflictingStateError instead
of a lost update.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Optional, Union

from rfq_engine.config import Settings, get_settings
from rfq_engine.models.enums import AuditEvent, QuoteRequestStatus, VendorQuoteStatus
from rfq_engine.models.errors import (
    ConflictingStateError,
    DispatchFailureError,
    NotFoundError,
    PreconditionFailedError,
)
from rfq_engine.models.schemas import (
    DispatchResult,
    Job,
    QuoteRequest,
    VendorQuote,
    VendorQuoteResponse,
    new_id,
)
from rfq_engine.persistence.base import RFQStore
from rfq_engine.services.audit_service import AuditService
from rfq_engine.services.capability_service import extract_required_services
from rfq_engine.services.notification_service import NotificationGateway, rfq_subject
from rfq_engine.services.ranking_service import VendorRanker
from rfq_engine.utils.clock import utc_now

logger = logging.getLogger(__name__)


class QuoteRequestService:
    """Creates, dispatches, records and resolves quote requests."""

    _DISPATCHABLE = (
        QuoteRequestStatus.DRAFT,
        QuoteRequestStatus.SENT,
        QuoteRequestStatus.RESPONSES_RECEIVED,
    )
    _FINISH_ATTEMPTS = 5

    def __init__(
        self,
        store: RFQStore,
        ranker: Optional[VendorRanker] = None,
        gateway: Optional[NotificationGateway] = None,
        audit: Optional[AuditService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.ranker = ranker or VendorRanker(store)
        self.gateway = gateway  # None = dry-run: quotes are stamped, nothing is sent
        self.audit = audit or AuditService()

    # ── Loading helpers ──────────────────────────────────

    def _load_job(self, job_id: str) -> Job:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def _load_request(self, quote_request_id: str) -> QuoteRequest:
        quote_request = self.store.get_quote_request(quote_request_id)
        if quote_request is None:
            raise NotFoundError("Quote request", quote_request_id)
        return quote_request

    def _load_request_for_quote(self, vendor_quote_id: str) -> tuple[QuoteRequest, VendorQuote]:
        quote_request = self.store.find_quote_request_by_vendor_quote(vendor_quote_id)
        quote = quote_request.find_quote(vendor_quote_id) if quote_request else None
        if quote_request is None or quote is None:
            raise NotFoundError("Vendor quote", vendor_quote_id)
        return quote_request, quote

    def _record_event(self, quote_request_id: str, event: AuditEvent, details: str = "") -> None:
        # Called after the write commits; failures are logged, never raised
        try:
            self.audit.record(quote_request_id, event, details)
        except Exception:
            logger.exception(f"Failed to record {event.value} for quote request {quote_request_id}")

    def format_request_number(self, sequence: int) -> str:
        width = self.settings.request_number_width
        return f"{self.settings.request_number_prefix}{sequence:0{width}d}"

    # ── Create ───────────────────────────────────────────

    def create_quote_request(
        self,
        job_id: str,
        vendor_ids: Optional[list[str]] = None,
        limit: Optional[int] = None,
    ) -> QuoteRequest:
        """
        Create a DRAFT quote request for a job with one PENDING vendor quote
        per selected vendor. Vendors come from `vendor_ids` when given,
        otherwise from the ranked shortlist.
        """
        job = self._load_job(job_id)
        if job.spec is None:
            logger.warning(f"Job {job.number} has no specification; cannot request quotes")
            raise PreconditionFailedError(f"Job specifications not found for job {job.number}")

        required = extract_required_services(job.spec)
        if vendor_ids:
            matches = self.ranker.manual_matches(vendor_ids)
        else:
            matches = self.ranker.top_matches(
                job.spec, limit or self.settings.default_vendor_limit, required
            )
        if not matches:
            raise PreconditionFailedError("no matching vendors")

        request_number = self.format_request_number(self.store.next_request_sequence())
        quote_request_id = new_id()
        quote_request = QuoteRequest(
            id=quote_request_id,
            job_id=job.id,
            request_number=request_number,
            spec=job.spec.model_copy(deep=True),
            required_services=required,
            due_date=job.due_date,
            vendor_quotes=[
                VendorQuote(
                    quote_request_id=quote_request_id,
                    vendor_id=m.vendor.id,
                    vendor_name=m.vendor.name,
                    vendor_email=m.vendor.recipient_email,
                )
                for m in matches
            ],
        )
        stored = self.store.insert_quote_request(quote_request)

        logger.info(
            f"Created {request_number} for job {job.number} with {len(matches)} vendor(s) "
            f"| services={[s.value for s in required.ordered()]}"
        )
        self._record_event(
            stored.id,
            AuditEvent.QUOTE_REQUEST_CREATED,
            f"{request_number}: {', '.join(m.vendor.name for m in matches)}",
        )
        return stored

    # ── Dispatch ─────────────────────────────────────────

    def _send_one(self, job: Job, quote_request: QuoteRequest, quote: VendorQuote) -> DispatchResult:
        result = DispatchResult(
            vendor_quote_id=quote.id,
            vendor_id=quote.vendor_id,
            vendor_name=quote.vendor_name,
            success=False,
        )
        vendor = self.store.get_vendor(quote.vendor_id)
        if vendor is None:
            result.error = f"Vendor not found: {quote.vendor_id}"
            return result

        try:
            body = self.gateway.render(job, vendor, quote_request.required_services)
            receipt = self.gateway.send(vendor.recipient_email, rfq_subject(job), body)
        except Exception as e:
            logger.exception(f"Failed to send {quote_request.request_number} to {vendor.name}")
            result.error = str(e) or e.__class__.__name__
            return result

        result.success = receipt.success
        result.error = receipt.error
        return result

    def _send_all(
        self, job: Job, quote_request: QuoteRequest, targets: list[VendorQuote]
    ) -> list[DispatchResult]:
        if len(targets) <= 1 or self.settings.dispatch_max_workers <= 1:
            return [self._send_one(job, quote_request, q) for q in targets]

        workers = min(self.settings.dispatch_max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rfq-dispatch") as pool:
            futures = [pool.submit(self._send_one, job, quote_request, q) for q in targets]
            # Barrier: no write happens until every send has been attempted
            return [f.result() for f in futures]

    def _pending_targets(self, quote_request: QuoteRequest) -> list[VendorQuote]:
        return [
            q for q in quote_request.vendor_quotes
            if q.status is VendorQuoteStatus.PENDING and q.dispatched_at is None
        ]

    def _claim_is_live(self, quote_request: QuoteRequest) -> bool:
        if not quote_request.dispatch_claim or quote_request.dispatch_claimed_at is None:
            return False
        age = (utc_now() - quote_request.dispatch_claimed_at).total_seconds()
        return age < self.settings.dispatch_claim_ttl_seconds

    def _claim_dispatch(self, quote_request: QuoteRequest) -> tuple[QuoteRequest, str]:
        """Version-checked write marking the request as being dispatched."""
        if self._claim_is_live(quote_request):
            raise ConflictingStateError(
                f"Quote request {quote_request.request_number} is already being dispatched",
                quote_request.id,
            )
        if quote_request.dispatch_claim:
            logger.warning(f"{quote_request.request_number}: taking over an abandoned dispatch claim")

        claim = new_id()
        quote_request.dispatch_claim = claim
        quote_request.dispatch_claimed_at = utc_now()
        return self.store.save_quote_request(quote_request, quote_request.version), claim

    def _finish_dispatch(
        self, quote_request_id: str, claim: str, results: list[DispatchResult]
    ) -> QuoteRequest:
        """
        Apply send outcomes to the latest stored request and release the claim.

        Other writers (a vendor reply, a cancel) may have saved in the
        meantime, so the outcomes are re-applied to a fresh read until the
        compare-and-set succeeds.
        """
        outcome = {r.vendor_quote_id: r for r in results}
        for attempt in range(1, self._FINISH_ATTEMPTS + 1):
            now = utc_now()
            current = self._load_request(quote_request_id)
            if current.dispatch_claim != claim:
                raise ConflictingStateError(
                    f"Dispatch claim on {current.request_number} was taken over by another caller",
                    current.id,
                )

            for quote in current.vendor_quotes:
                result = outcome.get(quote.id)
                if result is None:
                    continue
                if result.success:
                    quote.dispatched_at = now
                    quote.dispatch_error = None
                else:
                    quote.dispatch_error = result.error or "Delivery failed"

            current.dispatch_claim = None
            current.dispatch_claimed_at = None
            if not self._pending_targets(current):
                if current.status is QuoteRequestStatus.DRAFT:
                    current.status = QuoteRequestStatus.SENT
                if current.sent_at is None and current.status in self._DISPATCHABLE:
                    current.sent_at = now

            try:
                return self.store.save_quote_request(current, current.version)
            except ConflictingStateError:
                logger.info(
                    f"{current.request_number} changed during dispatch; "
                    f"re-applying results (attempt {attempt}/{self._FINISH_ATTEMPTS})"
                )

        raise ConflictingStateError(
            f"Could not record dispatch results for quote request {quote_request_id}",
            quote_request_id,
        )

    def dispatch_quote_request(self, quote_request_id: str) -> list[DispatchResult]:
        """
        Send the RFQ to every PENDING vendor not yet contacted.

        The request is claimed before any send, so a concurrent dispatch
        fails with ConflictingStateError without e-mailing anyone. All sends
        are attempted before results are written. Successful vendors are
        stamped even when others fail; the request moves from DRAFT to SENT
        once every vendor has been reached, otherwise DispatchFailureError is
        raised and a retry contacts the remaining vendors only. A retry is
        allowed after vendors have started replying.
        """
        quote_request = self._load_request(quote_request_id)
        if quote_request.status not in self._DISPATCHABLE:
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} is {quote_request.status.value} "
                "and cannot be dispatched",
                quote_request.id,
                quote_request.status.value,
            )
        if not self._pending_targets(quote_request):
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} has no vendors left to contact",
                quote_request.id,
                quote_request.status.value,
            )

        job = self._load_job(quote_request.job_id)
        job = job.model_copy(update={"spec": quote_request.spec})  # vendors quote against the snapshot

        quote_request, claim = self._claim_dispatch(quote_request)
        targets = self._pending_targets(quote_request)

        try:
            if self.gateway is None:
                logger.info(
                    f"[DRY-RUN] {quote_request.request_number}: marking {len(targets)} vendor(s) as sent"
                )
                results = [
                    DispatchResult(
                        vendor_quote_id=q.id,
                        vendor_id=q.vendor_id,
                        vendor_name=q.vendor_name,
                        success=True,
                        dry_run=True,
                    )
                    for q in targets
                ]
            else:
                results = self._send_all(job, quote_request, targets)
        except Exception:
            # release the claim
            self._finish_dispatch(quote_request.id, claim, [])
            raise

        self._finish_dispatch(quote_request.id, claim, results)

        failures = [r for r in results if not r.success]
        if failures:
            logger.error(
                f"{quote_request.request_number}: dispatch failed for "
                f"{len(failures)}/{len(results)} vendor(s): "
                + "; ".join(f"{f.vendor_name}: {f.error}" for f in failures)
            )
            self._record_event(
                quote_request.id,
                AuditEvent.DISPATCH_FAILED,
                ", ".join(f.vendor_name or f.vendor_id for f in failures),
            )
            raise DispatchFailureError(quote_request.id, failures)

        logger.info(f"{quote_request.request_number} sent to {len(results)} vendor(s)")
        self._record_event(
            quote_request.id,
            AuditEvent.QUOTE_REQUEST_DISPATCHED,
            f"{len(results)} vendor(s){' (dry-run)' if self.gateway is None else ''}",
        )
        return results

    # ── Record response ──────────────────────────────────

    def record_vendor_quote(
        self,
        vendor_quote_id: str,
        response: Union[VendorQuoteResponse, dict[str, Any]],
    ) -> VendorQuote:
        """Store a vendor's quote and mark the request as having responses."""
        if not isinstance(response, VendorQuoteResponse):
            response = VendorQuoteResponse(**response)

        quote_request, quote = self._load_request_for_quote(vendor_quote_id)
        if quote_request.status.is_terminal:
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} is {quote_request.status.value}",
                quote_request.id,
                quote_request.status.value,
            )
        if not quote.status.can_transition_to(VendorQuoteStatus.RECEIVED):
            raise PreconditionFailedError(
                f"Vendor quote from {quote.vendor_name} is already {quote.status.value}",
                quote_request.id,
                quote.status.value,
            )

        quote.quote_number = response.quote_number
        quote.total_cost = response.total_cost
        quote.lead_time_days = response.lead_time_days
        quote.notes = response.notes
        quote.line_items = response.line_items
        quote.status = VendorQuoteStatus.RECEIVED
        quote.received_at = utc_now()

        first_response = quote_request.status is not QuoteRequestStatus.RESPONSES_RECEIVED
        quote_request.status = QuoteRequestStatus.RESPONSES_RECEIVED
        saved = self.store.save_quote_request(quote_request, quote_request.version)

        if first_response:
            logger.info(f"{quote_request.request_number} → RESPONSES_RECEIVED")
        logger.info(
            f"Recorded quote from {quote.vendor_name} on {quote_request.request_number}: "
            f"${response.total_cost:,.2f}, {response.lead_time_days} day(s)"
        )
        self._record_event(
            quote_request.id,
            AuditEvent.RESPONSE_RECORDED,
            f"{quote.vendor_name}: {response.total_cost:.2f}",
        )
        return saved.find_quote(vendor_quote_id)

    # ── Award ────────────────────────────────────────────

    def award_quote_to_vendor(self, vendor_quote_id: str) -> VendorQuote:
        """
        Accept one vendor quote: reject its open siblings, assign the vendor
        to the job and close the request, all in one unit of work.
        """
        quote_request, quote = self._load_request_for_quote(vendor_quote_id)

        if quote_request.status is QuoteRequestStatus.AWARDED:
            raise ConflictingStateError(
                f"Quote request {quote_request.request_number} has already been awarded",
                quote_request.id,
            )
        if quote_request.status not in (QuoteRequestStatus.SENT, QuoteRequestStatus.RESPONSES_RECEIVED):
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} is {quote_request.status.value} "
                "and cannot be awarded",
                quote_request.id,
                quote_request.status.value,
            )
        if not quote.status.can_transition_to(VendorQuoteStatus.ACCEPTED):
            raise PreconditionFailedError(
                f"Vendor quote from {quote.vendor_name} is {quote.status.value} and cannot be accepted",
                quote_request.id,
                quote.status.value,
            )

        now = utc_now()
        quote.status = VendorQuoteStatus.ACCEPTED
        quote.accepted_at = now
        rejected = []
        for sibling in quote_request.vendor_quotes:
            if sibling.id != quote.id and sibling.is_open:
                sibling.status = VendorQuoteStatus.REJECTED
                sibling.rejected_at = now
                rejected.append(sibling.vendor_name)

        quote_request.status = QuoteRequestStatus.AWARDED
        quote_request.awarded_at = now
        quote_request.awarded_vendor_quote_id = quote.id

        saved = self.store.commit_award(
            quote_request, quote_request.version, quote_request.job_id, quote.vendor_id
        )

        logger.info(
            f"{quote_request.request_number} awarded to {quote.vendor_name}; "
            f"rejected {len(rejected)} other quote(s)"
        )
        self._record_event(
            quote_request.id,
            AuditEvent.QUOTE_AWARDED,
            f"vendor={quote.vendor_id} job={quote_request.job_id} quote={quote.id}",
        )
        return saved.find_quote(vendor_quote_id)

    # ── Update draft ─────────────────────────────────────

    def update_draft_vendors(
        self,
        quote_request_id: str,
        vendor_ids: list[str],
        due_date: Optional[datetime] = None,
    ) -> QuoteRequest:
        """
        Replace the vendor list (and optionally the due date) of a DRAFT request.

        Vendors already on the request keep their quote. Vendors that were
        already contacted by a partial dispatch cannot be removed. The spec
        snapshot and required services are left as created.
        """
        quote_request = self._load_request(quote_request_id)
        if quote_request.status is not QuoteRequestStatus.DRAFT:
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} is {quote_request.status.value}; "
                "only DRAFT requests can be updated",
                quote_request.id,
                quote_request.status.value,
            )
        if self._claim_is_live(quote_request):
            raise ConflictingStateError(
                f"Quote request {quote_request.request_number} is being dispatched",
                quote_request.id,
            )
        wanted = list(dict.fromkeys(vendor_ids))
        if not wanted:
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} needs at least one vendor",
                quote_request.id,
                quote_request.status.value,
            )

        existing = {q.vendor_id: q for q in quote_request.vendor_quotes}
        dropped = [q for vendor_id, q in existing.items() if vendor_id not in wanted]
        contacted = [q.vendor_name or q.vendor_id for q in dropped if q.dispatched_at is not None]
        if contacted:
            raise PreconditionFailedError(
                f"Cannot remove vendors already contacted: {', '.join(contacted)}",
                quote_request.id,
                quote_request.status.value,
            )

        added = [vendor_id for vendor_id in wanted if vendor_id not in existing]
        new_matches = {m.vendor.id: m for m in self.ranker.manual_matches(added)} if added else {}
        quotes = []
        for vendor_id in wanted:
            if vendor_id in existing:
                quotes.append(existing[vendor_id])
                continue
            vendor = new_matches[vendor_id].vendor
            quotes.append(
                VendorQuote(
                    quote_request_id=quote_request.id,
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    vendor_email=vendor.recipient_email,
                )
            )

        quote_request.vendor_quotes = quotes
        if due_date is not None:
            quote_request.due_date = due_date
        saved = self.store.save_quote_request(quote_request, quote_request.version)

        logger.info(
            f"{quote_request.request_number} updated: {len(quotes)} vendor(s), "
            f"+{len(added)} / -{len(dropped)}"
        )
        self._record_event(
            quote_request.id,
            AuditEvent.QUOTE_REQUEST_UPDATED,
            f"added={added} removed={[q.vendor_id for q in dropped]}",
        )
        return saved

    # ── Cancel ───────────────────────────────────────────

    def cancel_quote_request(self, quote_request_id: str, reason: str = "") -> QuoteRequest:
        """Withdraw an RFQ that will not be awarded. Open vendor quotes are rejected."""
        quote_request = self._load_request(quote_request_id)
        if quote_request.status.is_terminal:
            raise PreconditionFailedError(
                f"Quote request {quote_request.request_number} is already {quote_request.status.value}",
                quote_request.id,
                quote_request.status.value,
            )

        now = utc_now()
        for quote in quote_request.open_quotes():
            quote.status = VendorQuoteStatus.REJECTED
            quote.rejected_at = now
        quote_request.status = QuoteRequestStatus.CANCELLED
        quote_request.cancelled_at = now
        quote_request.cancel_reason = reason

        saved = self.store.save_quote_request(quote_request, quote_request.version)
        logger.info(f"{quote_request.request_number} cancelled{': ' + reason if reason else ''}")
        self._record_event(quote_request.id, AuditEvent.QUOTE_REQUEST_CANCELLED, reason)
        return saved

    # ── Queries ──────────────────────────────────────────

    def get_quote_request(self, quote_request_id: str) -> QuoteRequest:
        return self._load_request(quote_request_id)

    def list_quote_requests_for_job(self, job_id: str) -> list[QuoteRequest]:
        self._load_job(job_id)
        return self.store.list_quote_requests_for_job(job_id)

    def list_quote_requests(
        self,
        status: Optional[QuoteRequestStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[QuoteRequest]:
        """Requests newest first, optionally filtered by status and creation window (inclusive)."""
        if limit < 1 or offset < 0:
            raise PreconditionFailedError(f"Invalid page: limit={limit} offset={offset}")
        return self.store.list_quote_requests(
            status=status,
            created_from=created_from,
            created_to=created_to,
            limit=limit,
            offset=offset,
        )

    def get_vendor_quote(self, vendor_quote_id: str) -> VendorQuote:
        _, quote = self._load_request_for_quote(vendor_quote_id)
        return quote

    def compare_vendor_quotes(self, quote_request_id: str) -> list[VendorQuote]:
        """Quotes with figures, cheapest first, then fastest."""
        quote_request = self._load_request(quote_request_id)
        priced = [
            q for q in quote_request.vendor_quotes
            if q.total_cost is not None
            and q.status in (VendorQuoteStatus.RECEIVED, VendorQuoteStatus.ACCEPTED)
        ]
        return sorted(
            priced,
            key=lambda q: (
                q.total_cost,
                q.lead_time_days if q.lead_time_days is not None else float("inf"),
                q.vendor_name,
            ),
        )

    def status_summary(self) -> dict[str, int]:
        counts = self.store.count_by_status()
        return {status.value: counts.get(status.value, 0) for status in QuoteRequestStatus}
