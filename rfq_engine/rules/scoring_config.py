"""
Scoring Config Store — loads vendor-scoring weights from MongoDB.

Company-level setting: weights are configured once by an admin and cached.
Falls back to the default weights if MongoDB is empty (first run) or the
engine runs in mock mode.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel

from rfq_engine.config import get_settings

logger = logging.getLogger(__name__)


# ── Config model ─────────────────────────────────────────

class ScoringConfig(BaseModel):
    """Weights and thresholds of the vendor fitness score (max 100)."""
    service_match_weight: float = 70.0
    quantity_min_points: float = 5.0
    quantity_max_points: float = 5.0
    partner_bonus: float = 10.0

    # Lead-time bands: (max days inclusive, points), checked in order
    lead_time_bands: list[tuple[int, float]] = [(7, 10.0), (14, 5.0)]
    lead_time_slow_points: float = 2.0
    lead_time_unknown_points: float = 5.0  # neutral default, not a penalty

    default_quantity_estimate: int = 1000  # used when the spec has no page count
    fulfill_threshold: float = 70.0
    backfill_min_score: float = 50.0
    max_score: float = 100.0


# ── Store class ──────────────────────────────────────────

class ScoringConfigStore:
    """
    Loads the scoring config from MongoDB. Falls back to defaults.
    Cached after first load for the lifetime of the process.
    """

    CONFIG_KEY = "vendor_scoring"

    def __init__(self, db: Any = None):
        self.settings = get_settings()
        self._db = db
        self._cache: Optional[ScoringConfig] = None

    def _get_db(self):
        if self._db is not None or self.settings.mock_mode:
            return self._db
        try:
            from pymongo import MongoClient
            client = MongoClient(self.settings.mongodb_uri, serverSelectionTimeoutMS=2000)
            self._db = client[self.settings.mongodb_database]
        except Exception as e:
            logger.warning(f"MongoDB not available, using default scoring weights: {e}")
            self._db = None
        return self._db

    def get_config(self) -> ScoringConfig:
        if self._cache is not None:
            return self._cache

        db = self._get_db()
        if db is not None:
            try:
                doc = db.engine_config.find_one({"config_key": self.CONFIG_KEY})
                if doc and "config" in doc:
                    self._cache = ScoringConfig(**doc["config"])
                    return self._cache
            except Exception as e:
                logger.warning(f"Failed loading {self.CONFIG_KEY} from MongoDB: {e}")

        self._cache = ScoringConfig()
        return self._cache

    def update_config(self, config: ScoringConfig) -> bool:
        """Admin: save/update the scoring config in MongoDB."""
        db = self._get_db()
        if db is None:
            logger.error("Cannot update scoring config — MongoDB not available")
            return False

        db.engine_config.update_one(
            {"config_key": self.CONFIG_KEY},
            {"$set": {"config_key": self.CONFIG_KEY, "config": config.model_dump()}},
            upsert=True,
        )
        self._cache = None
        logger.info(f"Updated {self.CONFIG_KEY} config in MongoDB")
        return True
