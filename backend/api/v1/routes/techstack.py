"""Tech stack endpoints.

GET  /api/v1/techstack          - Cached/stored/fresh tech stack profile
POST /api/v1/techstack/refresh  - Force a fresh analysis
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import (
    get_access_token,
    get_current_user,
    get_tech_stack_analyzer,
    rate_limit_refresh,
)
from app.logging_config import get_logger
from services.github_service import GitHubUser
from services.tech_models import ProfileSource, TechStackProfile, TechStackResult
from services.tech_stack_analyzer import TechStackAnalyzer

logger = get_logger(__name__)
router = APIRouter()


class TechStackMeta(BaseModel):
    source: ProfileSource


class TechStackResponse(BaseModel):
    """Tech stack profile plus the tier that served it."""

    profile: TechStackProfile
    meta: TechStackMeta

    @classmethod
    def from_result(cls, result: TechStackResult) -> TechStackResponse:
        return cls(profile=result.profile, meta=TechStackMeta(source=result.source))


@router.get("/techstack", response_model=TechStackResponse)
async def get_tech_stack(
    access_token: str = Depends(get_access_token),
    user: GitHubUser = Depends(get_current_user),
    analyzer: TechStackAnalyzer = Depends(get_tech_stack_analyzer),
) -> TechStackResponse:
    """Return the user's tech stack, analyzing their repositories if needed."""
    result = await analyzer.get_tech_stack(str(user.id), access_token)
    logger.info("techstack_served", source=result.source.value)
    return TechStackResponse.from_result(result)


@router.post("/techstack/refresh", response_model=TechStackResponse)
async def refresh_tech_stack(
    access_token: str = Depends(get_access_token),
    user: GitHubUser = Depends(get_current_user),
    analyzer: TechStackAnalyzer = Depends(get_tech_stack_analyzer),
    _rate_limit: None = Depends(rate_limit_refresh),
) -> TechStackResponse:
    """Re-analyze the user's repositories, ignoring cached and stored profiles."""
    result = await analyzer.refresh_tech_stack(str(user.id), access_token)
    logger.info("techstack_refreshed", repos=result.profile.analyzed_repo_count)
    return TechStackResponse.from_result(result)
