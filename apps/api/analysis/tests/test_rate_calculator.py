import pytest

from analysis.models import EngagementTier, SocialMetrics
from analysis.rate_calculator import (
    base_rate,
    calculate_rate,
    content_types_for,
    engagement_tier,
    estimate_rates,
    follower_multiplier,
    niche_multiplier,
)


@pytest.fixture
def tech_youtuber():
    return SocialMetrics(platform="youtube", followers=100_000, engagement_rate=5, niche="tech")


def test_content_types_default_to_first_entry():
    assert content_types_for("youtube") == ["video", "shorts", "live_stream", "integration"]
    assert content_types_for("instagram")[0] == "post"
    assert content_types_for("twitch") == ["stream_mention", "sponsored_stream", "chat_command"]
    assert content_types_for("myspace") == ["post"]


def test_range_is_fixed_fraction_of_recommended(tech_youtuber):
    estimate = calculate_rate(tech_youtuber, "video")

    assert estimate.recommended_rate == pytest.approx(estimate.min_rate / 0.7)
    assert estimate.recommended_rate == pytest.approx(estimate.max_rate / 1.4)
    assert estimate.min_rate < estimate.recommended_rate < estimate.max_rate


def test_known_rate_for_tech_youtuber(tech_youtuber):
    estimate = calculate_rate(tech_youtuber, "video")

    # 0.018 base, 1.3 good engagement, 1.4 tech, 1.2 for 100k followers
    assert estimate.rate_per_follower == pytest.approx(0.018 * 1.3 * 1.4 * 1.2)
    assert estimate.recommended_rate == pytest.approx(100_000 * 0.018 * 1.3 * 1.4 * 1.2)
    assert estimate.engagement_tier == EngagementTier.GOOD


def test_default_content_type_is_platform_default():
    metrics = SocialMetrics(platform="tiktok", followers=5_000, engagement_rate=1.0)
    assert calculate_rate(metrics).content_type == "video"


@pytest.mark.parametrize(
    "engagement, tier, multiplier",
    [
        (0.0, EngagementTier.LOW, 0.8),
        (1.99, EngagementTier.LOW, 0.8),
        (2.0, EngagementTier.AVERAGE, 1.0),
        (4.99, EngagementTier.AVERAGE, 1.0),
        (5.0, EngagementTier.GOOD, 1.3),
        (8.0, EngagementTier.EXCELLENT, 1.6),
        (42.0, EngagementTier.EXCELLENT, 1.6),
    ],
)
def test_engagement_tier_boundaries(engagement, tier, multiplier):
    assert engagement_tier(engagement) == (tier, multiplier)


@pytest.mark.parametrize(
    "followers, multiplier",
    [(0, 0.5), (999, 0.5), (1_000, 0.7), (9_999, 0.7), (10_000, 1.0), (100_000, 1.2), (1_000_000, 1.5)],
)
def test_follower_tier_boundaries(followers, multiplier):
    assert follower_multiplier(followers) == multiplier


def test_unknown_niche_and_content_type_use_defaults():
    assert niche_multiplier("underwater basket weaving") == 1.0
    assert niche_multiplier(None) == 1.0
    assert niche_multiplier("Finance") == 1.5
    assert base_rate("youtube", "podcast") == 0.01
    assert base_rate("myspace", "post") == 0.01


def test_recommended_rate_never_decreases_with_followers():
    previous = 0.0
    for followers in [0, 10, 999, 1_000, 5_000, 9_999, 10_000, 99_999, 100_000, 999_999, 1_000_000, 5_000_000]:
        metrics = SocialMetrics(platform="instagram", followers=followers, engagement_rate=3, niche="food")
        recommended = calculate_rate(metrics, "reel").recommended_rate
        assert recommended >= previous
        previous = recommended


def test_estimate_rates_uses_selected_or_default_content_type():
    metrics = [
        SocialMetrics(platform="youtube", followers=50_000, engagement_rate=4),
        SocialMetrics(platform="instagram", followers=20_000, engagement_rate=6),
    ]
    estimates = estimate_rates(metrics, {"instagram": "story"})

    assert [e.content_type for e in estimates] == ["video", "story"]
    assert [e.platform for e in estimates] == ["youtube", "instagram"]


def test_social_metrics_accepts_camel_case_keys():
    metrics = SocialMetrics.model_validate(
        {"platform": "tiktok", "followers": 1200, "engagementRate": 7.5, "averageViews": 800, "niche": "gaming"}
    )
    assert metrics.engagement_rate == 7.5
    assert metrics.average_views == 800
