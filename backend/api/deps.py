"""Shared API dependencies.

Provides authentication, service construction and rate limiting
as injectable FastAPI dependencies.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header

from app.dependencies import get_redis, refresh_rate_limiter
from app.exceptions import GitHubAPIError, UnauthorizedError
from app.logging_config import get_logger
from db.repository import DocumentRepository
from db.session import get_session_factory
from gateway.profile_cache import ProfileCache
from services.github_service import GitHubService, GitHubUser
from services.tech_mappings import get_framework_mappings
from services.tech_stack_analyzer import TechStackAnalyzer

logger = get_logger(__name__)

_TOKEN_SCHEMES = ("bearer", "token")


async def get_access_token(
    authorization: Optional[str] = Header(None),
) -> str:
    """Extract the GitHub access token from the Authorization header.

    Accepts ``Bearer <token>`` and GitHub's own ``token <token>`` form.
    """
    if not authorization:
        raise UnauthorizedError()

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() not in _TOKEN_SCHEMES or not token:
        raise UnauthorizedError("Authorization header must be 'Bearer <token>'.")
    return token


async def get_github_service(
    redis: aioredis.Redis = Depends(get_redis),
) -> GitHubService:
    return GitHubService(redis)


async def get_current_user(
    access_token: str = Depends(get_access_token),
    github: GitHubService = Depends(get_github_service),
) -> GitHubUser:
    """Resolve the token's GitHub user. An invalid token is a 401."""
    try:
        return await github.get_authenticated_user(access_token)
    except GitHubAPIError as exc:
        if exc.status_code == 401:
            raise UnauthorizedError("GitHub token invalid or expired.") from exc
        raise


async def get_document_repository() -> DocumentRepository:
    return DocumentRepository(get_session_factory())


async def get_tech_stack_analyzer(
    redis: aioredis.Redis = Depends(get_redis),
    github: GitHubService = Depends(get_github_service),
    repository: DocumentRepository = Depends(get_document_repository),
) -> TechStackAnalyzer:
    return TechStackAnalyzer(
        github=github,
        repository=repository,
        cache=ProfileCache(redis),
        mappings=get_framework_mappings(),
    )


async def rate_limit_refresh(
    user: GitHubUser = Depends(get_current_user),
    redis: aioredis.Redis = Depends(get_redis),
) -> None:
    """Apply per-user rate limiting for forced re-analysis."""
    await refresh_rate_limiter.check(str(user.id), redis)
