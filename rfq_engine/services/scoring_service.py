"""
Vendor fitness scoring.

Weighted model, max 100:
  - service match  (70): share of required services the vendor supports
  - quantity fit   (10): job quantity within the vendor's min / max
  - lead time      (10): faster average turnaround scores higher
  - partner bonus  (10): negotiated partner vendors
"""

from __future__ import annotations

import logging
from typing import Optional

from rfq_engine.models.enums import ServiceTag
from rfq_engine.models.schemas import (
    JobSpec,
    ScoreBreakdown,
    ServiceRequirement,
    Vendor,
    VendorCapabilityProfile,
    VendorMatch,
)
from rfq_engine.rules.scoring_config import ScoringConfig

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = ScoringConfig()


def estimate_quantity(spec: Optional[JobSpec], config: ScoringConfig = _DEFAULT_CONFIG) -> int:
    if spec is not None and spec.page_count:
        return spec.page_count
    return config.default_quantity_estimate


def _service_match_points(
    capabilities: Optional[VendorCapabilityProfile],
    required: ServiceRequirement,
    config: ScoringConfig,
) -> float:
    if capabilities is None:
        only_printing = required.services == frozenset({ServiceTag.PRINTING})
        return config.service_match_weight if only_printing else 0.0
    supported = required.services & capabilities.supported_services()
    return config.service_match_weight * len(supported) / len(required)


def _quantity_points(
    capabilities: Optional[VendorCapabilityProfile],
    quantity: int,
    config: ScoringConfig,
) -> float:
    minimum = capabilities.minimum_quantity if capabilities else None
    maximum = capabilities.maximum_quantity if capabilities else None
    points = 0.0
    if minimum is None or quantity >= minimum:
        points += config.quantity_min_points
    if maximum is None or quantity <= maximum:
        points += config.quantity_max_points
    return points


def _lead_time_points(lead_time_days: Optional[int], config: ScoringConfig) -> float:
    if lead_time_days is None:
        return config.lead_time_unknown_points
    for max_days, points in config.lead_time_bands:
        if lead_time_days <= max_days:
            return points
    return config.lead_time_slow_points


def score_vendor(
    vendor: Vendor,
    capabilities: Optional[VendorCapabilityProfile],
    required: ServiceRequirement,
    spec: Optional[JobSpec],
    config: Optional[ScoringConfig] = None,
) -> VendorMatch:
    """Score one vendor against a requirement set. A vendor without a profile prints only."""
    config = config or _DEFAULT_CONFIG

    supported = (
        capabilities.supported_services()
        if capabilities is not None
        else frozenset({ServiceTag.PRINTING})
    )
    lead_time = capabilities.average_lead_time_days if capabilities else None

    breakdown = ScoreBreakdown(
        service_match=_service_match_points(capabilities, required, config),
        quantity_fit=_quantity_points(capabilities, estimate_quantity(spec, config), config),
        lead_time=_lead_time_points(lead_time, config),
        partner_bonus=config.partner_bonus if vendor.is_partner else 0.0,
    )
    score = max(0.0, min(config.max_score, breakdown.total))

    matched = [tag for tag in required.ordered() if tag in supported]
    missing = [tag for tag in required.ordered() if tag not in supported]
    can_fulfill = score >= config.fulfill_threshold and not missing

    logger.debug(
        f"Scored vendor {vendor.id} ({vendor.name}): {score:.1f} | "
        f"missing={[m.value for m in missing]} | can_fulfill={can_fulfill}"
    )

    return VendorMatch(
        vendor=vendor,
        score=score,
        matched_services=matched,
        missing_services=missing,
        can_fulfill=can_fulfill,
        estimated_lead_time_days=lead_time,
        breakdown=breakdown,
    )
