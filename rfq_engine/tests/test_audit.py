"""
Tests: audit trail storage and listener isolation.

Run with:
    pytest rfq_engine/tests/test_audit.py -v
"""

from unittest.mock import MagicMock

from rfq_engine.models.enums import AuditEvent
from rfq_engine.services.audit_service import AuditService


def test_trails_are_kept_per_request_in_order():
    audit = AuditService()
    audit.record("qr-1", AuditEvent.QUOTE_REQUEST_CREATED)
    audit.record("qr-2", AuditEvent.QUOTE_REQUEST_CREATED)
    audit.record("qr-1", AuditEvent.QUOTE_REQUEST_DISPATCHED, "3 vendor(s)")

    trail = audit.get_trail("qr-1")
    assert [e.event for e in trail] == ["QuoteRequestCreated", "QuoteRequestDispatched"]
    assert trail[1].details == "3 vendor(s)"
    assert [e.quote_request_id for e in audit.get_trail("qr-2")] == ["qr-2"]


def test_unknown_request_has_empty_trail():
    audit = AuditService()
    assert audit.get_trail("nope") == []
    # reading must not create a bucket
    assert "nope" not in audit._entries


def test_trail_can_be_filtered_by_event():
    audit = AuditService()
    audit.record("qr-1", AuditEvent.QUOTE_REQUEST_CREATED)
    audit.record("qr-1", AuditEvent.RESPONSE_RECORDED, "vendor a")
    audit.record("qr-1", AuditEvent.RESPONSE_RECORDED, "vendor b")

    responses = audit.get_trail("qr-1", AuditEvent.RESPONSE_RECORDED)
    assert [e.details for e in responses] == ["vendor a", "vendor b"]


def test_returned_trail_is_a_copy():
    audit = AuditService()
    audit.record("qr-1", AuditEvent.QUOTE_REQUEST_CREATED)
    audit.get_trail("qr-1").clear()
    assert len(audit.get_trail("qr-1")) == 1


def test_failing_listener_does_not_stop_the_others():
    audit = AuditService()
    seen = []

    def broken(entry):
        raise RuntimeError("purchase-order hook down")

    audit.subscribe(broken)
    audit.subscribe(seen.append)

    entry = audit.record("qr-1", AuditEvent.QUOTE_AWARDED, "vendor v-alpha")

    assert seen == [entry]
    assert audit.get_trail("qr-1") == [entry]


def test_database_mode_writes_to_audit_collection():
    db = MagicMock()
    audit = AuditService(db)
    audit.record("qr-1", AuditEvent.QUOTE_REQUEST_CANCELLED, "job cancelled")

    doc = db.rfq_audit.insert_one.call_args.args[0]
    assert doc["quote_request_id"] == "qr-1"
    assert doc["event"] == "QuoteRequestCancelled"
    assert audit._entries == {}
