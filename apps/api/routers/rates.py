"""
Sponsorship rate estimation endpoints.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from analysis.models import RateEstimate, SocialMetrics
from analysis.rate_calculator import CONTENT_TYPES, NICHE_MULTIPLIERS, calculate_rate, estimate_rates
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.connectors import StatsUnavailableError
from services.social_accounts import list_social_accounts
from services.stats import AccountNotConnectedError, fetch_account_stats

router = APIRouter()
logger = logging.getLogger(__name__)


class RateCalculationRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    metrics: List[SocialMetrics] = Field(min_length=1)
    selected_content_types: Dict[str, str] = {}


class RateCalculationResponse(BaseModel):
    estimates: List[RateEstimate]


class AccountEstimatesResponse(BaseModel):
    niche: str
    estimates: List[RateEstimate]
    unavailable: Dict[str, str] = {}


@router.get("/content-types")
async def list_content_types():
    """Content types per platform; the first entry is the default selection."""
    return {
        "content_types": CONTENT_TYPES,
        "niches": sorted(NICHE_MULTIPLIERS),
    }


@router.post("/calculate", response_model=RateCalculationResponse)
async def calculate_rates(request: RateCalculationRequest):
    """Estimate rates from supplied metrics. Pure computation, no stored data."""
    return RateCalculationResponse(
        estimates=estimate_rates(request.metrics, request.selected_content_types)
    )


@router.get("/estimates", response_model=AccountEstimatesResponse)
async def estimates_for_connected_accounts(
    niche: str = "lifestyle",
    content_type: Optional[str] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Estimate rates for every connected account from its live stats.

    Platforms whose stats cannot be fetched are listed under ``unavailable``.
    """
    estimates: List[RateEstimate] = []
    unavailable: Dict[str, str] = {}

    for account in await list_social_accounts(db, auth.user_id):
        platform = account.platform
        try:
            stats = await fetch_account_stats(db, auth.user_id, platform)
        except (AccountNotConnectedError, StatsUnavailableError) as exc:
            unavailable[platform] = str(exc)
            continue

        metrics = SocialMetrics(
            platform=platform,
            followers=stats.followers or 0,
            engagement_rate=stats.engagement_rate,
            average_views=stats.average_views,
            niche=niche,
        )
        selected = content_type if content_type in CONTENT_TYPES.get(platform, []) else None
        estimates.append(calculate_rate(metrics, selected))

    return AccountEstimatesResponse(niche=niche, estimates=estimates, unavailable=unavailable)
