"""
Audit Service — records RFQ lifecycle events.

`QuoteAwarded` doubles as the domain event consumers can use to react to
an award (e.g. raise a purchase order) without coupling to the engine.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Optional

from rfq_engine.models.enums import AuditEvent
from rfq_engine.models.schemas import AuditEntry

logger = logging.getLogger(__name__)

AuditListener = Callable[[AuditEntry], None]


class AuditService:
    """
    Records lifecycle events per quote request.
    Keeps entries in memory when no database handle is given; otherwise
    writes to the `rfq_audit` collection.
    """

    def __init__(self, db: Any = None):
        self._db = db
        self._entries: dict[str, list[AuditEntry]] = defaultdict(list)
        self._lock = threading.Lock()
        self._listeners: list[AuditListener] = []

    def subscribe(self, listener: AuditListener) -> None:
        self._listeners.append(listener)

    def record(
        self,
        quote_request_id: str,
        event: AuditEvent,
        details: str = "",
    ) -> AuditEntry:
        """Record an audit entry, notify listeners and return it."""
        entry = AuditEntry(quote_request_id=quote_request_id, event=event.value, details=details)

        if self._db is None:
            with self._lock:
                self._entries[quote_request_id].append(entry)
        else:
            self._db.rfq_audit.insert_one(entry.model_dump(mode="json"))
        logger.debug(f"[AUDIT] {quote_request_id} → {event.value}: {details}")

        for listener in self._listeners:
            try:
                listener(entry)
            except Exception:
                logger.exception(f"[AUDIT] Listener {listener!r} failed on {event.value} for {quote_request_id}")
        return entry

    def get_trail(self, quote_request_id: str, event: Optional[AuditEvent] = None) -> list[AuditEntry]:
        """Return the audit entries for a quote request, oldest first."""
        if self._db is None:
            with self._lock:
                entries = list(self._entries.get(quote_request_id, ()))
        else:
            cursor = self._db.rfq_audit.find({"quote_request_id": quote_request_id}).sort("timestamp", 1)
            entries = [AuditEntry(**{k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]
        if event is not None:
            entries = [e for e in entries if e.event == event.value]
        return entries
