"""
Vendor ranking — scores the whole vendor pool and builds the RFQ shortlist.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from rfq_engine.models.errors import NotFoundError, PreconditionFailedError
from rfq_engine.models.schemas import (
    JobSpec,
    ScoreBreakdown,
    ServiceRequirement,
    Vendor,
    VendorCapabilityProfile,
    VendorMatch,
)
from rfq_engine.persistence.base import RFQStore
from rfq_engine.rules.scoring_config import ScoringConfig, ScoringConfigStore
from rfq_engine.services.capability_service import extract_required_services
from rfq_engine.services.scoring_service import score_vendor

logger = logging.getLogger(__name__)


def _ranking_key(match: VendorMatch) -> tuple:
    # Score desc, then known lead time asc (unknown last), then vendor ID
    lead_time = match.estimated_lead_time_days
    return (
        -match.score,
        lead_time is None,
        lead_time if lead_time is not None else 0,
        match.vendor.id,
    )


def rank_matches(matches: Iterable[VendorMatch]) -> list[VendorMatch]:
    return sorted(matches, key=_ranking_key)


class VendorRanker:
    """Runs the scorer across the vendor pool and applies the shortlist thresholds."""

    def __init__(self, store: RFQStore, config_store: Optional[ScoringConfigStore] = None):
        self.store = store
        self.config_store = config_store or ScoringConfigStore()

    @property
    def config(self) -> ScoringConfig:
        return self.config_store.get_config()

    def rank(
        self,
        vendors: list[Vendor],
        spec: Optional[JobSpec],
        required: Optional[ServiceRequirement] = None,
        profiles: Optional[dict[str, VendorCapabilityProfile]] = None,
    ) -> list[VendorMatch]:
        """Score every vendor and return matches, best first."""
        required = required or extract_required_services(spec)
        if profiles is None:
            profiles = self.store.get_capability_profiles()
        config = self.config

        matches = [
            score_vendor(vendor, profiles.get(vendor.id), required, spec, config)
            for vendor in vendors
        ]
        return rank_matches(matches)

    def top_matches(
        self,
        spec: Optional[JobSpec],
        limit: int = 5,
        required: Optional[ServiceRequirement] = None,
    ) -> list[VendorMatch]:
        """
        Shortlist for an RFQ: every vendor that can fulfill the job, then
        backfill with the best remaining vendors scoring at least the
        backfill floor, up to `limit`.
        """
        ranked = self.rank(self.store.list_active_vendors(), spec, required)
        floor = self.config.backfill_min_score

        shortlist = [m for m in ranked if m.can_fulfill][:limit]
        if len(shortlist) < limit:
            backfill = [m for m in ranked if not m.can_fulfill and m.score >= floor]
            shortlist.extend(backfill[: limit - len(shortlist)])

        if not shortlist:
            logger.warning(f"No vendors scored at least {floor} out of {len(ranked)} candidates")
            raise PreconditionFailedError("no matching vendors")

        logger.info(
            f"Shortlisted {len(shortlist)} of {len(ranked)} vendors: "
            + ", ".join(f"{m.vendor.name} ({m.score:.0f})" for m in shortlist)
        )
        return shortlist

    def manual_matches(self, vendor_ids: list[str]) -> list[VendorMatch]:
        """
        Explicitly chosen vendors. Scoring is bypassed: each gets a perfect
        synthetic match and skips the capability gate.
        """
        config = self.config
        matches: list[VendorMatch] = []
        seen: set[str] = set()
        for vendor_id in vendor_ids:
            if vendor_id in seen:
                continue
            seen.add(vendor_id)
            vendor = self.store.get_vendor(vendor_id)
            if vendor is None or not vendor.is_active:
                raise NotFoundError("Vendor", vendor_id)
            matches.append(
                VendorMatch(
                    vendor=vendor,
                    score=config.max_score,
                    can_fulfill=True,
                    breakdown=ScoreBreakdown(service_match=config.max_score),
                    manual_override=True,
                )
            )
        return matches
