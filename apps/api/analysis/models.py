"""
Rate estimation models and schemas.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from enum import Enum


class EngagementTier(str, Enum):
    LOW = "low"              # below 2%
    AVERAGE = "average"      # 2% to 5%
    GOOD = "good"            # 5% to 8%
    EXCELLENT = "excellent"  # 8% and above


class SocialMetrics(BaseModel):
    """Audience figures for one platform. Accepts camelCase or snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform: str
    followers: int = Field(ge=0)
    engagement_rate: float = Field(default=0.0, ge=0)  # percent, e.g. 4.5
    average_views: Optional[float] = None
    niche: str = "lifestyle"


class RateEstimate(BaseModel):
    """Suggested sponsorship price range for one content type."""
    platform: str
    content_type: str
    min_rate: float
    max_rate: float
    recommended_rate: float
    rate_per_follower: float
    engagement_tier: EngagementTier
