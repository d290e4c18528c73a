"""
MongoDB RFQ store.

Collections:
  jobs                 — external; read, plus `vendor_id` written on award
  vendors              — external; read-only
  vendor_capabilities  — external; read-only, one document per vendor
  quote_requests       — the aggregate, vendor quotes embedded
  counters             — atomic sequence for request numbers

A QuoteRequest and its vendor quotes live in one document, so creation is a
single insert and every status change is a single conditional replace.
Award additionally writes the job inside a client-session transaction
(requires a replica set).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from rfq_engine.models.enums import QuoteRequestStatus
from rfq_engine.models.errors import ConflictingStateError, NotFoundError
from rfq_engine.models.schemas import Job, QuoteRequest, Vendor, VendorCapabilityProfile
from rfq_engine.persistence.base import RFQStore

logger = logging.getLogger(__name__)

REQUEST_NUMBER_COUNTER = "quote_request_number"
_AWARDABLE = [QuoteRequestStatus.SENT.value, QuoteRequestStatus.RESPONSES_RECEIVED.value]


def _to_doc(quote_request: QuoteRequest) -> dict[str, Any]:
    doc = quote_request.model_dump(mode="json")
    doc["_id"] = doc["id"]
    # native BSON date for range filters and sorting; `created_at` is the JSON string
    doc["created_ts"] = quote_request.created_at
    return doc


def _from_doc(doc: Optional[dict[str, Any]]) -> Optional[QuoteRequest]:
    if not doc:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    doc.pop("created_ts", None)
    return QuoteRequest(**doc)


def _strip_id(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "_id"}


class MongoRFQStore(RFQStore):
    """RFQ store backed by a pymongo database handle."""

    def __init__(self, db: Any, client: Any = None):
        self._db = db
        self._client = client
        self.jobs = db["jobs"]
        self.vendors = db["vendors"]
        self.capabilities = db["vendor_capabilities"]
        self.quote_requests = db["quote_requests"]
        self.counters = db["counters"]

    def ensure_indexes(self) -> None:
        self.jobs.create_index([("id", ASCENDING)], unique=True)
        self.vendors.create_index([("id", ASCENDING)], unique=True)
        self.capabilities.create_index([("vendor_id", ASCENDING)], unique=True)
        self.quote_requests.create_index([("request_number", ASCENDING)], unique=True)
        self.quote_requests.create_index([("job_id", ASCENDING), ("created_ts", DESCENDING)])
        self.quote_requests.create_index([("status", ASCENDING), ("created_ts", DESCENDING)])
        self.quote_requests.create_index([("vendor_quotes.id", ASCENDING)])
        logger.info("MongoDB indexes ensured for RFQ collections")

    # ── Jobs & vendors ───────────────────────────────────

    def get_job(self, job_id: str) -> Optional[Job]:
        doc = self.jobs.find_one({"id": job_id})
        return Job(**_strip_id(doc)) if doc else None

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        doc = self.vendors.find_one({"id": vendor_id})
        return Vendor(**_strip_id(doc)) if doc else None

    def list_active_vendors(self) -> list[Vendor]:
        cursor = self.vendors.find({"is_active": True}).sort([("name", ASCENDING), ("id", ASCENDING)])
        return [Vendor(**_strip_id(doc)) for doc in cursor]

    def get_capability_profiles(self) -> dict[str, VendorCapabilityProfile]:
        profiles = {}
        for doc in self.capabilities.find({}):
            profile = VendorCapabilityProfile(**_strip_id(doc))
            profiles[profile.vendor_id] = profile
        return profiles

    # ── Quote requests ───────────────────────────────────

    def next_request_sequence(self) -> int:
        doc = self.counters.find_one_and_update(
            {"_id": REQUEST_NUMBER_COUNTER},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["seq"])

    def insert_quote_request(self, quote_request: QuoteRequest) -> QuoteRequest:
        stored = quote_request.model_copy(update={"version": 1})
        try:
            self.quote_requests.insert_one(_to_doc(stored))
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate quote request {stored.request_number}: {e}")
            raise ConflictingStateError(
                f"Quote request {stored.request_number} already exists", stored.id
            ) from e
        logger.debug(f"Inserted quote request {stored.request_number} v1")
        return stored

    def get_quote_request(self, quote_request_id: str) -> Optional[QuoteRequest]:
        return _from_doc(self.quote_requests.find_one({"_id": quote_request_id}))

    def find_quote_request_by_vendor_quote(self, vendor_quote_id: str) -> Optional[QuoteRequest]:
        return _from_doc(self.quote_requests.find_one({"vendor_quotes.id": vendor_quote_id}))

    def list_quote_requests_for_job(self, job_id: str) -> list[QuoteRequest]:
        cursor = self.quote_requests.find({"job_id": job_id}).sort("created_ts", DESCENDING)
        return [_from_doc(doc) for doc in cursor]

    def list_quote_requests(
        self,
        status: Optional[QuoteRequestStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[QuoteRequest]:
        query: dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        if created_from is not None or created_to is not None:
            query["created_ts"] = {}
            if created_from is not None:
                query["created_ts"]["$gte"] = created_from
            if created_to is not None:
                query["created_ts"]["$lte"] = created_to

        cursor = (
            self.quote_requests.find(query)
            .sort([("created_ts", DESCENDING), ("request_number", DESCENDING)])
            .skip(offset)
            .limit(limit)
        )
        return [_from_doc(doc) for doc in cursor]

    def count_by_status(self) -> dict[str, int]:
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        return {row["_id"]: row["count"] for row in self.quote_requests.aggregate(pipeline)}

    def _replace(
        self,
        quote_request: QuoteRequest,
        expected_version: int,
        extra_filter: Optional[dict[str, Any]] = None,
        session: Any = None,
    ) -> QuoteRequest:
        stored = quote_request.model_copy(update={"version": expected_version + 1})
        query: dict[str, Any] = {"_id": quote_request.id, "version": expected_version}
        if extra_filter:
            query.update(extra_filter)
        result = self.quote_requests.replace_one(query, _to_doc(stored), session=session)
        if result.matched_count == 0:
            raise ConflictingStateError(
                f"Quote request {quote_request.request_number} was modified concurrently "
                f"(expected v{expected_version})",
                quote_request.id,
            )
        return stored

    def save_quote_request(self, quote_request: QuoteRequest, expected_version: int) -> QuoteRequest:
        return self._replace(quote_request, expected_version)

    def commit_award(
        self,
        quote_request: QuoteRequest,
        expected_version: int,
        job_id: str,
        vendor_id: str,
    ) -> QuoteRequest:
        if self._client is None:
            raise RuntimeError("commit_award requires a MongoClient for the transaction session")

        def _award(session) -> QuoteRequest:
            stored = self._replace(
                quote_request,
                expected_version,
                extra_filter={"status": {"$in": _AWARDABLE}},
                session=session,
            )
            result = self.jobs.update_one(
                {"id": job_id}, {"$set": {"vendor_id": vendor_id}}, session=session
            )
            if result.matched_count == 0:
                raise NotFoundError("Job", job_id)
            return stored

        with self._client.start_session() as session:
            return session.with_transaction(_award)
