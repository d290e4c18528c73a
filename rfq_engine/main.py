"""
Print RFQ Engine — Main Entry Point

Run the seeded end-to-end demo (in-memory store, dry-run dispatch):
    python -m rfq_engine

Or import and use programmatically:
    from rfq_engine.services import build_quote_request_service
    service = build_quote_request_service()
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone

from rfq_engine.config import get_settings
from rfq_engine.models.schemas import (
    Job,
    JobSpec,
    LineItem,
    QuoteRequest,
    Vendor,
    VendorCapabilityProfile,
    VendorContact,
)
from rfq_engine.persistence import InMemoryRFQStore
from rfq_engine.services import build_quote_request_service

DEMO_JOB_ID = "job-demo-1"


def seed_demo_store() -> InMemoryRFQStore:
    """A small vendor pool and one job needing foil stamping and binding."""
    store = InMemoryRFQStore()
    store.add_job(
        Job(
            id=DEMO_JOB_ID,
            number="J-1001",
            title="Annual Report 2026",
            customer_name="Acme Corp",
            spec=JobSpec(
                product_type="Book",
                finished_size="8.5 x 11",
                colors="4/4",
                paper_type="100# Gloss Text",
                page_count=48,
                binding_style="Perfect Bound",
                coating="Soft-touch lamination",
                finishing="Foil stamp on cover",
            ),
            line_items=[LineItem(description="Annual report, 48pp + cover", quantity=2500)],
            due_date=datetime.now(timezone.utc) + timedelta(days=21),
        )
    )
    store.add_vendor(
        Vendor(
            id="v-bradford",
            name="Bradford Printing",
            email="estimating@bradford.example",
            contacts=[VendorContact(name="Dana Ruiz", email="dana@bradford.example", is_primary=True)],
            is_partner=True,
        ),
        VendorCapabilityProfile(
            vendor_id="v-bradford",
            binding=True,
            foil_stamping=True,
            lamination=True,
            average_lead_time_days=6,
        ),
    )
    store.add_vendor(
        Vendor(id="v-lakeside", name="Lakeside Press", email="quotes@lakeside.example"),
        VendorCapabilityProfile(
            vendor_id="v-lakeside",
            binding=True,
            lamination=True,
            minimum_quantity=5000,
            average_lead_time_days=12,
        ),
    )
    store.add_vendor(Vendor(id="v-quickcopy", name="QuickCopy", email="hello@quickcopy.example"))
    return store


def run() -> QuoteRequest:
    """Run the RFQ lifecycle end to end on seeded data and return the final request."""
    settings = get_settings()
    from rfq_engine.utils.logger import setup_logging

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("  PRINT RFQ ENGINE — DEMO")
    logger.info(f"  Started: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    store = seed_demo_store()
    service = build_quote_request_service(settings.model_copy(update={"mock_mode": True}), store=store)

    quote_request = service.create_quote_request(DEMO_JOB_ID)
    service.dispatch_quote_request(quote_request.id)

    quote_request = service.get_quote_request(quote_request.id)
    for i, quote in enumerate(quote_request.vendor_quotes):
        service.record_vendor_quote(
            quote.id,
            {"total_cost": 8200.0 + 650 * i, "lead_time_days": 8 + 3 * i, "notes": "Demo quote"},
        )

    best = service.compare_vendor_quotes(quote_request.id)[0]
    service.award_quote_to_vendor(best.id)

    final = service.get_quote_request(quote_request.id)
    _print_summary(final, service.audit.get_trail(final.id))
    return final


def _print_summary(quote_request: QuoteRequest, trail: list) -> None:
    logger = logging.getLogger(__name__)

    logger.info("-" * 60)
    logger.info(f"  Request:   {quote_request.request_number}")
    logger.info(f"  Status:    {quote_request.status.value}")
    logger.info(f"  Services:  {', '.join(s.display_name for s in quote_request.required_services.ordered())}")
    for quote in quote_request.vendor_quotes:
        cost = f"${quote.total_cost:,.2f}" if quote.total_cost is not None else "-"
        logger.info(f"    {quote.vendor_name:<20} {quote.status.value:<9} {cost}")
    logger.info(f"  Audit Trail: {len(trail)} entries")
    for entry in trail:
        logger.info(f"    {entry.event} | {entry.details}")
    logger.info("-" * 60)


def cli() -> None:
    if "--help" in sys.argv or "-h" in sys.argv:
        print(__doc__)
        return
    run()


if __name__ == "__main__":
    cli()
