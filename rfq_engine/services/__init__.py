"""Services — capability extraction, scoring, ranking, notification, audit, RFQ lifecycle."""

from __future__ import annotations

import logging
from typing import Optional

from rfq_engine.config import Settings, get_settings
from rfq_engine.persistence import InMemoryRFQStore, MongoClient, MongoRFQStore, RFQStore
from rfq_engine.rules.scoring_config import ScoringConfigStore
from rfq_engine.services.audit_service import AuditService
from rfq_engine.services.capability_service import extract_required_services
from rfq_engine.services.notification_service import NotificationGateway, build_notification_gateway
from rfq_engine.services.quote_request_service import QuoteRequestService
from rfq_engine.services.ranking_service import VendorRanker
from rfq_engine.services.scoring_service import score_vendor

logger = logging.getLogger(__name__)

__all__ = [
    "AuditService",
    "QuoteRequestService",
    "VendorRanker",
    "build_quote_request_service",
    "extract_required_services",
    "score_vendor",
]


def build_quote_request_service(
    settings: Optional[Settings] = None,
    store: Optional[RFQStore] = None,
    gateway: Optional[NotificationGateway] = None,
) -> QuoteRequestService:
    """
    Wire the lifecycle manager from settings.

    Mock mode uses the in-memory store and in-memory audit trail; otherwise
    everything is backed by MongoDB.
    """
    settings = settings or get_settings()
    db = None
    if store is None:
        if settings.mock_mode:
            store = InMemoryRFQStore()
        else:
            mongo = MongoClient(settings)
            db = mongo.get_database()
            store = MongoRFQStore(db, mongo.get_client())
            store.ensure_indexes()

    ranker = VendorRanker(store, ScoringConfigStore(db))
    if gateway is None:
        gateway = build_notification_gateway(settings)

    logger.info(f"{settings.app_name}: store={store.__class__.__name__} mock_mode={settings.mock_mode}")
    return QuoteRequestService(
        store,
        ranker=ranker,
        gateway=gateway,
        audit=AuditService(db),
        settings=settings,
    )
