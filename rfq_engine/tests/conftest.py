"""Shared fixtures: seeded in-memory store, settings and a scriptable gateway."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from rfq_engine.config import Settings
from rfq_engine.models.schemas import (
    DeliveryReceipt,
    Job,
    JobSpec,
    LineItem,
    Vendor,
    VendorCapabilityProfile,
)
from rfq_engine.persistence import InMemoryRFQStore
from rfq_engine.rules.scoring_config import ScoringConfigStore
from rfq_engine.services.audit_service import AuditService
from rfq_engine.services.notification_service import NotificationGateway
from rfq_engine.services.quote_request_service import QuoteRequestService
from rfq_engine.services.ranking_service import VendorRanker


class RecordingGateway(NotificationGateway):
    """Records every send; vendors listed in `fail_for` get a failed receipt."""

    def __init__(self, fail_for: tuple[str, ...] = ()):
        self.fail_for = set(fail_for)
        self.sent: list[dict] = []
        self._lock = threading.Lock()

    def render(self, job, vendor, required):
        return f"RFQ for {job.number} to {vendor.name}: {', '.join(s.value for s in required.ordered())}"

    def send(self, to, subject, body):
        with self._lock:
            self.sent.append({"to": to, "subject": subject, "body": body})
        if any(name in body for name in self.fail_for):
            return DeliveryReceipt(success=False, error="mailbox unavailable")
        return DeliveryReceipt(success=True)


@pytest.fixture
def settings() -> Settings:
    return Settings(mock_mode=True, smtp_host="", groq_api_key="", dispatch_max_workers=4)


@pytest.fixture
def foil_job() -> Job:
    return Job(
        id="job-1",
        number="J-1001",
        title="Holiday Cards",
        customer_name="Acme Corp",
        spec=JobSpec(product_type="Card", page_count=2000, finishing="Gold foil on front"),
        line_items=[LineItem(description="5x7 folded card", quantity=2000)],
        due_date=datetime(2026, 12, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def store(foil_job) -> InMemoryRFQStore:
    store = InMemoryRFQStore()
    store.add_job(foil_job)
    store.add_job(Job(id="job-nospec", number="J-1002", title="Unspecified"))
    store.add_vendor(
        Vendor(id="v-alpha", name="Alpha Print", email="alpha@example.com", is_partner=True),
        VendorCapabilityProfile(vendor_id="v-alpha", foil_stamping=True, average_lead_time_days=5),
    )
    store.add_vendor(
        Vendor(id="v-beta", name="Beta Press", email="beta@example.com"),
        VendorCapabilityProfile(vendor_id="v-beta", average_lead_time_days=10),
    )
    store.add_vendor(
        Vendor(id="v-gamma", name="Gamma Graphics", email="gamma@example.com"),
        VendorCapabilityProfile(vendor_id="v-gamma", foil_stamping=True, average_lead_time_days=20),
    )
    return store


@pytest.fixture
def ranker(store) -> VendorRanker:
    return VendorRanker(store, ScoringConfigStore())


@pytest.fixture
def service(store, ranker, settings) -> QuoteRequestService:
    """Lifecycle manager in dry-run mode (no gateway)."""
    return QuoteRequestService(store, ranker=ranker, gateway=None, audit=AuditService(), settings=settings)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def sending_service(store, ranker, settings, gateway) -> QuoteRequestService:
    return QuoteRequestService(store, ranker=ranker, gateway=gateway, audit=AuditService(), settings=settings)
