"""
Sponsorship rate heuristics.

A rate per follower is built from a base price for the platform and content
type, scaled by engagement, niche and audience size. Everything here is pure
and table driven.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from .models import EngagementTier, RateEstimate, SocialMetrics


CONTENT_TYPES: Dict[str, List[str]] = {
    "youtube": ["video", "shorts", "live_stream", "integration"],
    "instagram": ["post", "story", "reel", "live"],
    "tiktok": ["video", "live_stream"],
    "twitter": ["tweet", "thread", "spaces"],
    "twitch": ["stream_mention", "sponsored_stream", "chat_command"],
}

BASE_RATES: Dict[str, Dict[str, float]] = {
    "youtube": {"video": 0.018, "shorts": 0.008, "live_stream": 0.025, "integration": 0.035},
    "instagram": {"post": 0.012, "story": 0.005, "reel": 0.015, "live": 0.020},
    "tiktok": {"video": 0.020, "live_stream": 0.030},
    "twitter": {"tweet": 0.008, "thread": 0.015, "spaces": 0.025},
    "twitch": {"stream_mention": 0.002, "sponsored_stream": 0.015, "chat_command": 0.001},
}
DEFAULT_BASE_RATE = 0.01

NICHE_MULTIPLIERS: Dict[str, float] = {
    "tech": 1.4,
    "finance": 1.5,
    "fashion": 1.2,
    "gaming": 1.1,
    "lifestyle": 1.0,
    "fitness": 1.1,
    "food": 0.9,
    "travel": 1.2,
    "beauty": 1.3,
    "education": 1.1,
}

# (upper bound exclusive, tier, multiplier); the last tier is open ended
ENGAGEMENT_TIERS: Sequence[Tuple[float, EngagementTier, float]] = (
    (2.0, EngagementTier.LOW, 0.8),
    (5.0, EngagementTier.AVERAGE, 1.0),
    (8.0, EngagementTier.GOOD, 1.3),
    (float("inf"), EngagementTier.EXCELLENT, 1.6),
)

FOLLOWER_TIERS: Sequence[Tuple[float, float]] = (
    (1_000, 0.5),
    (10_000, 0.7),
    (100_000, 1.0),
    (1_000_000, 1.2),
    (float("inf"), 1.5),
)

MIN_RATE_FACTOR = 0.7
MAX_RATE_FACTOR = 1.4


def content_types_for(platform: str) -> List[str]:
    """Content types offered on a platform; the first one is the default."""
    return list(CONTENT_TYPES.get(platform, ["post"]))


def base_rate(platform: str, content_type: str) -> float:
    return BASE_RATES.get(platform, {}).get(content_type, DEFAULT_BASE_RATE)


def engagement_tier(engagement_rate: float) -> Tuple[EngagementTier, float]:
    for upper, tier, multiplier in ENGAGEMENT_TIERS:
        if engagement_rate < upper:
            return tier, multiplier
    return ENGAGEMENT_TIERS[-1][1], ENGAGEMENT_TIERS[-1][2]


def niche_multiplier(niche: Optional[str]) -> float:
    return NICHE_MULTIPLIERS.get((niche or "").strip().lower(), 1.0)


def follower_multiplier(followers: int) -> float:
    for upper, multiplier in FOLLOWER_TIERS:
        if followers < upper:
            return multiplier
    return FOLLOWER_TIERS[-1][1]


def calculate_rate(metrics: SocialMetrics, content_type: Optional[str] = None) -> RateEstimate:
    """
    Estimate the sponsorship price range for one piece of content.

    Args:
        metrics: audience figures for the platform
        content_type: one of ``content_types_for(metrics.platform)``;
                      defaults to the platform's first content type

    Returns:
        RateEstimate where min and max are fixed fractions of the
        recommended rate
    """
    content_type = content_type or content_types_for(metrics.platform)[0]
    tier, engagement = engagement_tier(metrics.engagement_rate)

    rate_per_follower = (
        base_rate(metrics.platform, content_type)
        * engagement
        * niche_multiplier(metrics.niche)
        * follower_multiplier(metrics.followers)
    )
    recommended = metrics.followers * rate_per_follower

    return RateEstimate(
        platform=metrics.platform,
        content_type=content_type,
        min_rate=recommended * MIN_RATE_FACTOR,
        max_rate=recommended * MAX_RATE_FACTOR,
        recommended_rate=recommended,
        rate_per_follower=rate_per_follower,
        engagement_tier=tier,
    )


def estimate_rates(
    metrics: Sequence[SocialMetrics],
    selected_content_types: Optional[Dict[str, str]] = None,
) -> List[RateEstimate]:
    """One estimate per platform, using the selected content type or the platform default."""
    selected = selected_content_types or {}
    return [calculate_rate(m, selected.get(m.platform)) for m in metrics]
