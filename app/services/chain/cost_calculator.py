"""Cost calculation for generated video seconds"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional, Any

logger = logging.getLogger(__name__)

TIER_720P = "720p"
TIER_1080P = "1080p"

# USD per generated second
PRICING_TABLE: Dict[str, Dict[str, float]] = {
    "sora-2": {
        TIER_720P: 0.10,
        TIER_1080P: 0.30,
    },
    "sora-2-pro": {
        TIER_720P: 0.30,
        TIER_1080P: 0.50,
    },
}

RESOLUTION_TIERS: Dict[str, str] = {
    "1280x720": TIER_720P,
    "720x1280": TIER_720P,
    "1920x1080": TIER_1080P,
    "1080x1920": TIER_1080P,
    "1024x1792": TIER_1080P,
    "1792x1024": TIER_1080P,
}

FALLBACK_MODEL = "sora-2-pro"


@dataclass
class CostBreakdown:
    model: str
    resolution: str  # tier, not the raw size
    duration: float
    price_per_second: float
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_resolution_tier(size: str) -> str:
    """Unknown sizes land in the cheapest tier instead of failing"""
    return RESOLUTION_TIERS.get(size, TIER_720P)


def calculate_cost(model: str, size: str, seconds: float) -> CostBreakdown:
    tier = get_resolution_tier(size)
    prices = PRICING_TABLE.get(model)
    if prices is None:
        logger.warning(f"No pricing for model '{model}', using {FALLBACK_MODEL} rates")
        prices = PRICING_TABLE[FALLBACK_MODEL]
    price_per_second = prices[tier]

    return CostBreakdown(
        model=model,
        resolution=tier,
        duration=seconds,
        price_per_second=price_per_second,
        total=round(price_per_second * seconds, 2),
    )


def calculate_chain_cost(
    model: str,
    size: str,
    segment_seconds: Iterable[float],
    reported_seconds: Optional[Iterable[Optional[float]]] = None,
) -> Dict[str, Any]:
    """Sum of each planned segment's cost at its configured duration.

    Billing is assumed to follow the configured seconds, not what the API
    reports back. Reported durations are only summarised next to the total so
    any drift shows up in the stored breakdown.
    """
    segment_costs = [calculate_cost(model, size, seconds) for seconds in segment_seconds]
    if not segment_costs:
        raise ValueError("Cannot price a chain without segments")

    total_cost = round(sum(c.total for c in segment_costs), 2)
    breakdown = {
        "segments": len(segment_costs),
        "cost_per_segment": round(total_cost / len(segment_costs), 2),
        "price_per_second": segment_costs[0].price_per_second,
        "total_cost": total_cost,
        "model": model,
        "resolution": segment_costs[0].resolution,
        "billed_on": "configured_seconds",
    }

    reported = [s for s in (reported_seconds or []) if s is not None]
    if reported:
        breakdown["reported_seconds"] = round(sum(reported), 2)

    return breakdown


def format_cost(cost: float) -> str:
    return f"${cost:.2f}"
