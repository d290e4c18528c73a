"""
Tests: RFQ lifecycle — create, dispatch, record, award, cancel, queries.

Run with:
    pytest rfq_engine/tests/test_quote_request_service.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from rfq_engine.models.enums import AuditEvent, QuoteRequestStatus, ServiceTag, VendorQuoteStatus
from rfq_engine.models.errors import (
    ConflictingStateError,
    DispatchFailureError,
    NotFoundError,
    PreconditionFailedError,
)
from rfq_engine.models.schemas import JobSpec, Vendor, VendorQuoteResponse
from rfq_engine.persistence import InMemoryRFQStore
from rfq_engine.services.audit_service import AuditService
from rfq_engine.services.quote_request_service import QuoteRequestService
from rfq_engine.services.ranking_service import VendorRanker
from rfq_engine.rules.scoring_config import ScoringConfigStore
from rfq_engine.utils.clock import utc_now

from conftest import RecordingGateway

RESPONSE = {"total_cost": 1200.0, "lead_time_days": 7, "quote_number": "Q-77"}


def _sent_request(service, vendor_ids=None):
    quote_request = service.create_quote_request("job-1", vendor_ids)
    service.dispatch_quote_request(quote_request.id)
    return service.get_quote_request(quote_request.id)


class TestCreateQuoteRequest:
    def test_ranked_creation(self, service):
        quote_request = service.create_quote_request("job-1")
        assert quote_request.status is QuoteRequestStatus.DRAFT
        assert quote_request.request_number == "QR-0001"
        assert [q.vendor_id for q in quote_request.vendor_quotes] == ["v-alpha", "v-gamma", "v-beta"]
        assert all(q.status is VendorQuoteStatus.PENDING for q in quote_request.vendor_quotes)
        assert quote_request.required_services.ordered() == [ServiceTag.PRINTING, ServiceTag.FOIL_STAMPING]

    def test_explicit_vendor_list_creates_one_quote_each(self, service):
        quote_request = service.create_quote_request("job-1", ["v-beta", "v-gamma"])
        assert [q.vendor_id for q in quote_request.vendor_quotes] == ["v-beta", "v-gamma"]
        assert all(q.status is VendorQuoteStatus.PENDING for q in quote_request.vendor_quotes)

    def test_empty_vendor_list_falls_back_to_ranking(self, service):
        assert len(service.create_quote_request("job-1", []).vendor_quotes) == 3

    def test_limit(self, service):
        assert len(service.create_quote_request("job-1", limit=1).vendor_quotes) == 1

    def test_request_numbers_are_sequential(self, service):
        numbers = [service.create_quote_request("job-1").request_number for _ in range(3)]
        assert numbers == ["QR-0001", "QR-0002", "QR-0003"]

    def test_spec_is_snapshotted(self, service, store, foil_job):
        quote_request = service.create_quote_request("job-1")
        store.add_job(foil_job.model_copy(update={"spec": JobSpec(finishing="emboss")}))
        stored = service.get_quote_request(quote_request.id)
        assert stored.spec.finishing == "Gold foil on front"
        assert ServiceTag.EMBOSSING not in stored.required_services

    def test_vendor_quotes_carry_recipient(self, service):
        quote_request = service.create_quote_request("job-1", ["v-alpha"])
        assert quote_request.vendor_quotes[0].vendor_email == "alpha@example.com"

    def test_missing_job(self, service):
        with pytest.raises(NotFoundError):
            service.create_quote_request("job-missing")

    def test_job_without_spec(self, service):
        with pytest.raises(PreconditionFailedError, match="specifications"):
            service.create_quote_request("job-nospec")

    def test_no_matching_vendors(self, foil_job, settings):
        store = InMemoryRFQStore()
        store.add_job(foil_job)
        store.add_vendor(Vendor(id="v-x", name="Printing Only"))
        service = QuoteRequestService(store, VendorRanker(store, ScoringConfigStore()), settings=settings)
        with pytest.raises(PreconditionFailedError, match="no matching vendors"):
            service.create_quote_request("job-1")
        # failed creations do not consume request numbers
        assert store.next_request_sequence() == 1

    def test_unknown_manual_vendor_persists_nothing(self, service, store):
        with pytest.raises(NotFoundError):
            service.create_quote_request("job-1", ["v-alpha", "v-missing"])
        assert store.list_quote_requests_for_job("job-1") == []

    def test_creation_is_audited(self, service):
        quote_request = service.create_quote_request("job-1")
        trail = service.audit.get_trail(quote_request.id)
        assert [e.event for e in trail] == [AuditEvent.QUOTE_REQUEST_CREATED.value]


class TestDispatchQuoteRequest:
    def test_dry_run_marks_everything_sent(self, service):
        quote_request = service.create_quote_request("job-1")
        results = service.dispatch_quote_request(quote_request.id)
        stored = service.get_quote_request(quote_request.id)

        assert all(r.success and r.dry_run for r in results)
        assert stored.status is QuoteRequestStatus.SENT
        assert stored.sent_at is not None
        assert all(q.dispatched_at is not None for q in stored.vendor_quotes)
        assert all(q.status is VendorQuoteStatus.PENDING for q in stored.vendor_quotes)

    def test_gateway_receives_one_message_per_vendor(self, sending_service, gateway):
        quote_request = sending_service.create_quote_request("job-1")
        sending_service.dispatch_quote_request(quote_request.id)

        assert sorted(m["to"] for m in gateway.sent) == [
            "alpha@example.com", "beta@example.com", "gamma@example.com",
        ]
        assert all(m["subject"] == "RFQ: J-1001 - Holiday Cards" for m in gateway.sent)
        assert all("foilStamping" in m["body"] for m in gateway.sent)
        assert sending_service.get_quote_request(quote_request.id).status is QuoteRequestStatus.SENT

    def test_failure_aborts_batch_but_keeps_progress(self, store, ranker, settings):
        gateway = RecordingGateway(fail_for=("Beta Press",))
        service = QuoteRequestService(store, ranker, gateway, AuditService(), settings)
        quote_request = service.create_quote_request("job-1")

        with pytest.raises(DispatchFailureError) as exc:
            service.dispatch_quote_request(quote_request.id)

        assert [f.vendor_id for f in exc.value.failures] == ["v-beta"]
        assert exc.value.to_dict()["code"] == "DISPATCH_FAILURE"
        stored = service.get_quote_request(quote_request.id)
        assert stored.status is QuoteRequestStatus.DRAFT
        by_vendor = {q.vendor_id: q for q in stored.vendor_quotes}
        assert by_vendor["v-alpha"].dispatched_at is not None
        assert by_vendor["v-beta"].dispatched_at is None
        assert by_vendor["v-beta"].dispatch_error == "mailbox unavailable"

        # retry only contacts the vendor that failed
        gateway.fail_for.clear()
        gateway.sent.clear()
        results = service.dispatch_quote_request(quote_request.id)
        assert [r.vendor_id for r in results] == ["v-beta"]
        assert [m["to"] for m in gateway.sent] == ["beta@example.com"]
        stored = service.get_quote_request(quote_request.id)
        assert stored.status is QuoteRequestStatus.SENT
        assert all(q.dispatched_at is not None and q.dispatch_error is None for q in stored.vendor_quotes)

    def test_gateway_exception_becomes_dispatch_failure(self, store, ranker, settings):
        class ExplodingGateway(RecordingGateway):
            def render(self, job, vendor, required):
                raise RuntimeError("renderer offline")

        service = QuoteRequestService(store, ranker, ExplodingGateway(), AuditService(), settings)
        quote_request = service.create_quote_request("job-1", ["v-alpha"])
        with pytest.raises(DispatchFailureError) as exc:
            service.dispatch_quote_request(quote_request.id)
        assert exc.value.failures[0].error == "renderer offline"

    def test_vendor_without_email_fails(self, store, ranker, settings):
        from rfq_engine.services.notification_service import EmailNotificationGateway, TemplateRenderer

        class NeverCalledTransport:
            def send(self, to, subject, body):
                raise AssertionError("transport should not be called")

        store.add_vendor(Vendor(id="v-noemail", name="No Email Co"))
        gateway = EmailNotificationGateway(TemplateRenderer(), NeverCalledTransport())
        service = QuoteRequestService(store, ranker, gateway, AuditService(), settings)
        quote_request = service.create_quote_request("job-1", ["v-noemail"])
        with pytest.raises(DispatchFailureError) as exc:
            service.dispatch_quote_request(quote_request.id)
        assert exc.value.failures[0].error == "No email address"

    def test_dispatch_uses_snapshot_spec(self, store, sending_service, gateway, foil_job):
        captured = []
        original_render = gateway.render

        def render(job, vendor, required):
            captured.append(job.spec.finishing)
            return original_render(job, vendor, required)

        gateway.render = render
        quote_request = sending_service.create_quote_request("job-1", ["v-alpha"])
        store.add_job(foil_job.model_copy(update={"spec": JobSpec(finishing="changed later")}))
        sending_service.dispatch_quote_request(quote_request.id)
        assert captured == ["Gold foil on front"]

    def test_only_draft_requests_can_be_dispatched(self, service):
        quote_request = _sent_request(service)
        with pytest.raises(PreconditionFailedError) as exc:
            service.dispatch_quote_request(quote_request.id)
        assert exc.value.status == "SENT"

    def test_missing_request(self, service):
        with pytest.raises(NotFoundError):
            service.dispatch_quote_request("nope")

    def test_retry_after_a_reply_reaches_remaining_vendor(self, store, ranker, settings):
        gateway = RecordingGateway(fail_for=("Beta Press",))
        service = QuoteRequestService(store, ranker, gateway, AuditService(), settings)
        quote_request = service.create_quote_request("job-1")
        by_vendor = {q.vendor_id: q for q in quote_request.vendor_quotes}

        with pytest.raises(DispatchFailureError):
            service.dispatch_quote_request(quote_request.id)
        # Alpha got the RFQ and answers before Beta is retried
        service.record_vendor_quote(by_vendor["v-alpha"].id, RESPONSE)

        gateway.fail_for.clear()
        gateway.sent.clear()
        results = service.dispatch_quote_request(quote_request.id)

        assert [r.vendor_id for r in results] == ["v-beta"]
        assert [m["to"] for m in gateway.sent] == ["beta@example.com"]
        stored = service.get_quote_request(quote_request.id)
        assert stored.find_quote(by_vendor["v-beta"].id).dispatched_at is not None
        assert stored.status is QuoteRequestStatus.RESPONSES_RECEIVED
        assert stored.sent_at is not None

    def test_reply_during_send_window_keeps_every_stamp(self, store, ranker, settings):
        class ReplyingGateway(RecordingGateway):
            service = None
            reply_to = None

            def send(self, to, subject, body):
                with self._lock:
                    reply_to, self.reply_to = self.reply_to, None
                if reply_to:
                    self.service.record_vendor_quote(reply_to, RESPONSE)
                return super().send(to, subject, body)

        gateway = ReplyingGateway()
        service = QuoteRequestService(store, ranker, gateway, AuditService(), settings)
        gateway.service = service
        quote_request = service.create_quote_request("job-1")
        gateway.reply_to = quote_request.vendor_quotes[0].id

        service.dispatch_quote_request(quote_request.id)

        stored = service.get_quote_request(quote_request.id)
        assert all(q.dispatched_at is not None for q in stored.vendor_quotes)
        assert stored.vendor_quotes[0].status is VendorQuoteStatus.RECEIVED
        assert stored.status is QuoteRequestStatus.RESPONSES_RECEIVED
        assert stored.dispatch_claim is None

    def test_live_claim_blocks_dispatch_before_sending(self, sending_service, gateway, store):
        quote_request = sending_service.create_quote_request("job-1")
        stored = store.get_quote_request(quote_request.id)
        stored.dispatch_claim = "another-caller"
        stored.dispatch_claimed_at = utc_now()
        store.save_quote_request(stored, stored.version)

        with pytest.raises(ConflictingStateError, match="already being dispatched"):
            sending_service.dispatch_quote_request(quote_request.id)
        assert gateway.sent == []

    def test_abandoned_claim_is_taken_over(self, sending_service, gateway, store):
        quote_request = sending_service.create_quote_request("job-1")
        stored = store.get_quote_request(quote_request.id)
        stored.dispatch_claim = "crashed-caller"
        stored.dispatch_claimed_at = utc_now() - timedelta(hours=1)
        store.save_quote_request(stored, stored.version)

        sending_service.dispatch_quote_request(quote_request.id)

        after = sending_service.get_quote_request(quote_request.id)
        assert after.status is QuoteRequestStatus.SENT
        assert after.dispatch_claim is None
        assert len(gateway.sent) == 3

    def test_unexpected_send_error_releases_claim(self, store, ranker, settings, monkeypatch):
        service = QuoteRequestService(store, ranker, RecordingGateway(), AuditService(), settings)
        quote_request = service.create_quote_request("job-1")

        def explode(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(service, "_send_all", explode)

        with pytest.raises(RuntimeError):
            service.dispatch_quote_request(quote_request.id)
        stored = service.get_quote_request(quote_request.id)
        assert stored.dispatch_claim is None
        assert stored.status is QuoteRequestStatus.DRAFT


class TestRecordVendorQuote:
    def test_records_quote_and_moves_request(self, service):
        quote_request = _sent_request(service)
        target = quote_request.vendor_quotes[0]

        quote = service.record_vendor_quote(target.id, RESPONSE)

        assert quote.status is VendorQuoteStatus.RECEIVED
        assert quote.total_cost == 1200.0
        assert quote.lead_time_days == 7
        assert quote.quote_number == "Q-77"
        assert quote.received_at is not None
        assert service.get_quote_request(quote_request.id).status is QuoteRequestStatus.RESPONSES_RECEIVED

    def test_accepts_model_input(self, service):
        quote_request = _sent_request(service)
        response = VendorQuoteResponse(total_cost=99.5, lead_time_days=3, notes="rush ok")
        quote = service.record_vendor_quote(quote_request.vendor_quotes[1].id, response)
        assert quote.notes == "rush ok"

    def test_second_response_keeps_status(self, service):
        quote_request = _sent_request(service)
        service.record_vendor_quote(quote_request.vendor_quotes[0].id, RESPONSE)
        service.record_vendor_quote(quote_request.vendor_quotes[1].id, RESPONSE)
        stored = service.get_quote_request(quote_request.id)
        assert stored.status is QuoteRequestStatus.RESPONSES_RECEIVED
        assert [q.status for q in stored.vendor_quotes] == [
            VendorQuoteStatus.RECEIVED, VendorQuoteStatus.RECEIVED, VendorQuoteStatus.PENDING,
        ]

    def test_re_recording_updates_figures(self, service):
        quote_request = _sent_request(service)
        target = quote_request.vendor_quotes[0].id
        service.record_vendor_quote(target, RESPONSE)
        quote = service.record_vendor_quote(target, {"total_cost": 1100.0, "lead_time_days": 6})
        assert quote.total_cost == 1100.0
        assert quote.status is VendorQuoteStatus.RECEIVED

    def test_recording_before_dispatch_still_moves_request(self, service):
        quote_request = service.create_quote_request("job-1")
        service.record_vendor_quote(quote_request.vendor_quotes[0].id, RESPONSE)
        assert service.get_quote_request(quote_request.id).status is QuoteRequestStatus.RESPONSES_RECEIVED

    def test_negative_cost_is_rejected(self, service):
        quote_request = _sent_request(service)
        with pytest.raises(ValidationError):
            service.record_vendor_quote(quote_request.vendor_quotes[0].id, {"total_cost": -1, "lead_time_days": 3})

    def test_terminal_quote_cannot_be_recorded(self, service):
        quote_request = _sent_request(service)
        winner, loser = quote_request.vendor_quotes[0], quote_request.vendor_quotes[1]
        service.award_quote_to_vendor(winner.id)
        with pytest.raises(PreconditionFailedError):
            service.record_vendor_quote(loser.id, RESPONSE)

    def test_unknown_vendor_quote(self, service):
        with pytest.raises(NotFoundError) as exc:
            service.record_vendor_quote("missing", RESPONSE)
        assert exc.value.to_dict() == {
            "code": "NOT_FOUND",
            "message": "Vendor quote not found: missing",
            "entity": "Vendor quote",
            "entity_id": "missing",
        }


class TestAwardQuoteToVendor:
    def test_award_resolves_every_sibling(self, service, store):
        quote_request = _sent_request(service)
        winner, received, pending = quote_request.vendor_quotes
        service.record_vendor_quote(winner.id, RESPONSE)
        service.record_vendor_quote(received.id, RESPONSE)

        accepted = service.award_quote_to_vendor(winner.id)
        stored = service.get_quote_request(quote_request.id)

        assert accepted.status is VendorQuoteStatus.ACCEPTED
        assert accepted.accepted_at is not None
        assert stored.status is QuoteRequestStatus.AWARDED
        assert stored.awarded_vendor_quote_id == winner.id
        statuses = {q.id: q.status for q in stored.vendor_quotes}
        assert statuses[received.id] is VendorQuoteStatus.REJECTED
        assert statuses[pending.id] is VendorQuoteStatus.REJECTED
        assert [q.status for q in stored.vendor_quotes].count(VendorQuoteStatus.ACCEPTED) == 1
        assert store.get_job("job-1").vendor_id == winner.vendor_id

    def test_award_from_sent_without_responses(self, service):
        quote_request = _sent_request(service)
        assert service.award_quote_to_vendor(quote_request.vendor_quotes[2].id).status is VendorQuoteStatus.ACCEPTED

    def test_draft_request_cannot_be_awarded(self, service):
        quote_request = service.create_quote_request("job-1")
        with pytest.raises(PreconditionFailedError) as exc:
            service.award_quote_to_vendor(quote_request.vendor_quotes[0].id)
        assert exc.value.status == "DRAFT"

    def test_second_award_conflicts(self, service):
        quote_request = _sent_request(service)
        service.award_quote_to_vendor(quote_request.vendor_quotes[0].id)
        with pytest.raises(ConflictingStateError):
            service.award_quote_to_vendor(quote_request.vendor_quotes[1].id)

    def test_already_rejected_sibling_is_untouched(self, service, store):
        quote_request = _sent_request(service)
        winner, rejected = quote_request.vendor_quotes[0], quote_request.vendor_quotes[1]

        # a sibling that was rejected before the award keeps its timestamp
        stored = store.get_quote_request(quote_request.id)
        stored.find_quote(rejected.id).status = VendorQuoteStatus.REJECTED
        stored.find_quote(rejected.id).rejected_at = stored.created_at
        store.save_quote_request(stored, stored.version)

        service.award_quote_to_vendor(winner.id)
        after = service.get_quote_request(quote_request.id).find_quote(rejected.id)
        assert after.status is VendorQuoteStatus.REJECTED
        assert after.rejected_at == stored.created_at

    def test_award_emits_domain_event(self, service):
        received = []
        service.audit.subscribe(lambda entry: received.append(entry))
        quote_request = _sent_request(service)
        winner = quote_request.vendor_quotes[0]
        service.award_quote_to_vendor(winner.id)

        awarded = [e for e in received if e.event == AuditEvent.QUOTE_AWARDED.value]
        assert len(awarded) == 1
        assert f"vendor={winner.vendor_id}" in awarded[0].details

    def test_stale_write_conflicts(self, service, store):
        quote_request = _sent_request(service)
        stale = store.get_quote_request(quote_request.id)
        service.record_vendor_quote(quote_request.vendor_quotes[0].id, RESPONSE)
        with pytest.raises(ConflictingStateError):
            store.save_quote_request(stale, stale.version)

    def test_failing_listener_does_not_fail_a_saved_award(self, service):
        def listener(entry):
            if entry.event == AuditEvent.QUOTE_AWARDED.value:
                raise RuntimeError("purchase-order hook down")

        service.audit.subscribe(listener)
        quote_request = _sent_request(service)
        winner = quote_request.vendor_quotes[0]

        accepted = service.award_quote_to_vendor(winner.id)

        assert accepted.status is VendorQuoteStatus.ACCEPTED
        assert service.get_quote_request(quote_request.id).status is QuoteRequestStatus.AWARDED
        assert service.audit.get_trail(quote_request.id, AuditEvent.QUOTE_AWARDED)

    def test_failing_audit_store_does_not_fail_a_saved_award(self, store, ranker, settings):
        audit = AuditService()
        service = QuoteRequestService(store, ranker, audit=audit, settings=settings)
        quote_request = _sent_request(service)

        def broken_record(*args, **kwargs):
            raise ConnectionError("audit collection unavailable")

        audit.record = broken_record
        accepted = service.award_quote_to_vendor(quote_request.vendor_quotes[0].id)
        assert accepted.status is VendorQuoteStatus.ACCEPTED
        assert store.get_job("job-1").vendor_id == accepted.vendor_id


class TestUpdateDraftVendors:
    def test_replaces_vendor_list_and_keeps_existing_quotes(self, service):
        quote_request = service.create_quote_request("job-1", ["v-alpha", "v-beta"])
        alpha_quote = quote_request.vendor_quotes[0]

        updated = service.update_draft_vendors(quote_request.id, ["v-alpha", "v-gamma", "v-gamma"])

        assert [q.vendor_id for q in updated.vendor_quotes] == ["v-alpha", "v-gamma"]
        assert updated.vendor_quotes[0].id == alpha_quote.id
        assert updated.vendor_quotes[1].status is VendorQuoteStatus.PENDING
        assert updated.version == quote_request.version + 1
        assert updated.spec == quote_request.spec
        assert updated.required_services == quote_request.required_services

    def test_new_vendor_quote_is_addressable(self, service):
        quote_request = service.create_quote_request("job-1", ["v-alpha"])
        updated = service.update_draft_vendors(quote_request.id, ["v-beta"])
        new_quote = updated.vendor_quotes[0]

        assert service.get_vendor_quote(new_quote.id).vendor_id == "v-beta"
        with pytest.raises(NotFoundError):
            service.get_vendor_quote(quote_request.vendor_quotes[0].id)

    def test_due_date_can_change(self, service):
        quote_request = service.create_quote_request("job-1")
        due = datetime(2027, 1, 15, tzinfo=timezone.utc)
        assert service.update_draft_vendors(quote_request.id, ["v-alpha"], due_date=due).due_date == due

    def test_only_draft_requests(self, service):
        quote_request = _sent_request(service)
        with pytest.raises(PreconditionFailedError) as exc:
            service.update_draft_vendors(quote_request.id, ["v-alpha"])
        assert exc.value.status == "SENT"

    def test_empty_list_is_rejected(self, service):
        quote_request = service.create_quote_request("job-1")
        with pytest.raises(PreconditionFailedError, match="at least one vendor"):
            service.update_draft_vendors(quote_request.id, [])

    def test_unknown_vendor(self, service):
        quote_request = service.create_quote_request("job-1")
        with pytest.raises(NotFoundError):
            service.update_draft_vendors(quote_request.id, ["v-alpha", "v-missing"])
        assert len(service.get_quote_request(quote_request.id).vendor_quotes) == 3

    def test_contacted_vendor_cannot_be_removed(self, store, ranker, settings):
        gateway = RecordingGateway(fail_for=("Beta Press",))
        service = QuoteRequestService(store, ranker, gateway, AuditService(), settings)
        quote_request = service.create_quote_request("job-1")
        with pytest.raises(DispatchFailureError):
            service.dispatch_quote_request(quote_request.id)

        with pytest.raises(PreconditionFailedError, match="already contacted"):
            service.update_draft_vendors(quote_request.id, ["v-beta"])
        # dropping the vendor that never got the RFQ is fine
        updated = service.update_draft_vendors(quote_request.id, ["v-alpha", "v-gamma"])
        assert [q.vendor_id for q in updated.vendor_quotes] == ["v-alpha", "v-gamma"]

    def test_update_is_audited(self, service):
        quote_request = service.create_quote_request("job-1")
        service.update_draft_vendors(quote_request.id, ["v-alpha"])
        assert service.audit.get_trail(quote_request.id, AuditEvent.QUOTE_REQUEST_UPDATED)


class TestCancelQuoteRequest:
    def test_cancel_rejects_open_quotes(self, service):
        quote_request = _sent_request(service)
        service.record_vendor_quote(quote_request.vendor_quotes[0].id, RESPONSE)

        cancelled = service.cancel_quote_request(quote_request.id, reason="customer withdrew")

        assert cancelled.status is QuoteRequestStatus.CANCELLED
        assert cancelled.cancel_reason == "customer withdrew"
        assert all(q.status is VendorQuoteStatus.REJECTED for q in cancelled.vendor_quotes)

    def test_cancelled_request_blocks_everything(self, service):
        quote_request = service.create_quote_request("job-1")
        service.cancel_quote_request(quote_request.id)
        target = quote_request.vendor_quotes[0].id

        with pytest.raises(PreconditionFailedError):
            service.dispatch_quote_request(quote_request.id)
        with pytest.raises(PreconditionFailedError):
            service.record_vendor_quote(target, RESPONSE)
        with pytest.raises(PreconditionFailedError):
            service.award_quote_to_vendor(target)
        with pytest.raises(PreconditionFailedError):
            service.cancel_quote_request(quote_request.id)

    def test_awarded_request_cannot_be_cancelled(self, service):
        quote_request = _sent_request(service)
        service.award_quote_to_vendor(quote_request.vendor_quotes[0].id)
        with pytest.raises(PreconditionFailedError):
            service.cancel_quote_request(quote_request.id)


class TestQueries:
    def test_list_for_job_newest_first(self, service):
        first = service.create_quote_request("job-1")
        second = service.create_quote_request("job-1")
        listed = service.list_quote_requests_for_job("job-1")
        assert [r.id for r in listed] == [second.id, first.id]

    def test_list_for_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            service.list_quote_requests_for_job("job-missing")

    def test_get_vendor_quote(self, service):
        quote_request = service.create_quote_request("job-1")
        target = quote_request.vendor_quotes[1]
        assert service.get_vendor_quote(target.id).vendor_id == target.vendor_id

    def test_compare_quotes_cheapest_first(self, service):
        quote_request = _sent_request(service)
        a, b, c = quote_request.vendor_quotes
        service.record_vendor_quote(a.id, {"total_cost": 900, "lead_time_days": 12})
        service.record_vendor_quote(b.id, {"total_cost": 900, "lead_time_days": 4})
        service.record_vendor_quote(c.id, {"total_cost": 500, "lead_time_days": 30})
        assert [q.id for q in service.compare_vendor_quotes(quote_request.id)] == [c.id, b.id, a.id]

    def test_compare_skips_quotes_without_figures(self, service):
        quote_request = _sent_request(service)
        assert service.compare_vendor_quotes(quote_request.id) == []

    def test_status_summary_is_zero_filled(self, service):
        assert service.status_summary() == {
            "DRAFT": 0, "SENT": 0, "RESPONSES_RECEIVED": 0, "AWARDED": 0, "CANCELLED": 0,
        }
        service.create_quote_request("job-1")
        _sent_request(service)
        summary = service.status_summary()
        assert summary["DRAFT"] == 1
        assert summary["SENT"] == 1

    def test_list_filters_by_status_newest_first(self, service):
        drafts = [service.create_quote_request("job-1") for _ in range(2)]
        sent = _sent_request(service)

        assert [r.id for r in service.list_quote_requests(status=QuoteRequestStatus.DRAFT)] == [
            drafts[1].id, drafts[0].id,
        ]
        assert [r.id for r in service.list_quote_requests(status=QuoteRequestStatus.SENT)] == [sent.id]
        assert len(service.list_quote_requests()) == 3

    def test_list_paginates(self, service):
        created = [service.create_quote_request("job-1") for _ in range(5)]
        newest_first = [r.id for r in reversed(created)]

        assert [r.id for r in service.list_quote_requests(limit=2)] == newest_first[:2]
        assert [r.id for r in service.list_quote_requests(limit=2, offset=2)] == newest_first[2:4]
        assert service.list_quote_requests(limit=2, offset=10) == []

    def test_list_filters_by_creation_window(self, service):
        created = service.create_quote_request("job-1")
        before = created.created_at - timedelta(minutes=1)
        after = created.created_at + timedelta(minutes=1)

        assert [r.id for r in service.list_quote_requests(created_from=before, created_to=after)] == [created.id]
        assert [r.id for r in service.list_quote_requests(created_from=created.created_at)] == [created.id]
        assert service.list_quote_requests(created_from=after) == []
        assert service.list_quote_requests(created_to=before) == []

    def test_list_rejects_bad_page(self, service):
        with pytest.raises(PreconditionFailedError):
            service.list_quote_requests(limit=0)
        with pytest.raises(PreconditionFailedError):
            service.list_quote_requests(offset=-1)
