"""GitHub data endpoints.

GET /api/v1/github/repos                             - Owned, non-fork repositories
GET /api/v1/github/stats                             - Aggregated profile stats
GET /api/v1/github/repos/{owner}/{repo}/languages    - Language breakdown
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from api.deps import get_access_token, get_current_user, get_github_service
from services.github_service import (
    GitHubRepository,
    GitHubService,
    GitHubStats,
    GitHubUser,
    LanguageStat,
)

router = APIRouter()

_NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


@router.get("/repos", response_model=list[GitHubRepository])
async def list_repositories(
    access_token: str = Depends(get_access_token),
    _user: GitHubUser = Depends(get_current_user),
    github: GitHubService = Depends(get_github_service),
) -> list[GitHubRepository]:
    repos = await github.get_user_repositories(access_token)
    return [r for r in repos if not r.is_fork]


@router.get("/stats", response_model=GitHubStats)
async def get_stats(
    access_token: str = Depends(get_access_token),
    _user: GitHubUser = Depends(get_current_user),
    github: GitHubService = Depends(get_github_service),
) -> GitHubStats:
    return await github.get_user_stats(access_token)


@router.get("/repos/{owner}/{repo}/languages", response_model=list[LanguageStat])
async def get_repository_languages(
    owner: str = Path(..., max_length=39, pattern=_NAME_PATTERN),
    repo: str = Path(..., max_length=100, pattern=_NAME_PATTERN),
    access_token: str = Depends(get_access_token),
    _user: GitHubUser = Depends(get_current_user),
    github: GitHubService = Depends(get_github_service),
) -> list[LanguageStat]:
    return await github.get_repository_languages(access_token, owner, repo)
