"""GitHub Data Service.

Fetches repositories, language breakdowns, file trees and file contents
from the GitHub REST API on behalf of a user access token.
Responses are cached in Redis for a short TTL to save API calls.

Cache keys embed a SHA-256 fingerprint of the token, never the token
itself:
- Repositories: github:repos:{fp}
- Languages:    github:languages:{fp}:{owner}/{repo}
- File tree:    github:tree:{fp}:{owner}/{repo}
- File content: github:file:{fp}:{owner}/{repo}:{path}
- User:         github:user:{fp}
- Stats:        github:stats:{fp}
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import random
import zlib
from datetime import UTC, datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx
import redis.asyncio as aioredis
from pydantic import BaseModel, Field

from app.config import Settings, get_settings
from app.exceptions import GitHubAPIError, GitHubNotFoundError, GitHubRateLimitError
from app.logging_config import get_logger
from app.metrics import (
    GITHUB_API_CALLS,
    GITHUB_API_DURATION,
    GITHUB_CACHE_HITS,
    GITHUB_CACHE_MISSES,
)

logger = get_logger(__name__)

CACHE_COMPRESS_THRESHOLD = 4096  # Compress payloads > 4KB
REPOS_PER_PAGE = 100
STATS_TOP_REPOS = 10
STATS_TOP_LANGUAGES = 8

# Common GitHub language colors
LANGUAGE_COLORS: dict[str, str] = {
    "c#": "#178600",
    "typescript": "#3178c6",
    "javascript": "#f1e05a",
    "python": "#3572A5",
    "java": "#b07219",
    "go": "#00ADD8",
    "rust": "#dea584",
    "html": "#e34c26",
    "css": "#563d7c",
    "ruby": "#701516",
    "php": "#4F5D95",
    "swift": "#F05138",
    "kotlin": "#A97BFF",
    "c++": "#f34b7d",
    "c": "#555555",
}


class GitHubUser(BaseModel):
    id: int
    login: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    followers: int = 0
    following: int = 0


class GitHubRepository(BaseModel):
    """A single repository owned by the authenticated user."""

    id: int
    name: str
    full_name: str
    owner: str
    description: Optional[str] = None
    html_url: str = ""
    homepage: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    is_fork: bool = False
    is_archived: bool = False
    is_private: bool = False
    size: int = 0  # KB
    topics: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None


class LanguageStat(BaseModel):
    name: str
    bytes: int
    percentage: float
    color: Optional[str] = None


class GitHubStats(BaseModel):
    """Aggregated stats across a user's owned, non-fork repositories."""

    username: str
    public_repos_count: int = 0
    total_stars: int = 0
    total_forks: int = 0
    followers: int = 0
    following: int = 0
    top_languages: list[LanguageStat] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


def language_color(language: str) -> Optional[str]:
    return LANGUAGE_COLORS.get(language.lower())


def build_language_stats(byte_counts: dict[str, int]) -> list[LanguageStat]:
    """Turn a name -> bytes map into stats ordered by bytes descending."""
    total = sum(byte_counts.values())
    return [
        LanguageStat(
            name=name,
            bytes=count,
            percentage=round(count / total * 100, 1) if total > 0 else 0.0,
            color=language_color(name),
        )
        for name, count in sorted(byte_counts.items(), key=lambda x: x[1], reverse=True)
    ]


def token_fingerprint(access_token: str) -> str:
    return hashlib.sha256(access_token.encode("utf-8")).hexdigest()[:32]


def _map_repository(raw: dict[str, Any]) -> GitHubRepository:
    full_name = raw.get("full_name") or ""
    owner = (raw.get("owner") or {}).get("login") or full_name.split("/")[0]
    return GitHubRepository(
        id=raw.get("id", 0),
        name=raw.get("name", ""),
        full_name=full_name,
        owner=owner,
        description=raw.get("description"),
        html_url=raw.get("html_url") or "",
        homepage=raw.get("homepage") or None,
        language=raw.get("language"),
        stars=raw.get("stargazers_count", 0),
        forks=raw.get("forks_count", 0),
        is_fork=raw.get("fork", False),
        is_archived=raw.get("archived", False),
        is_private=raw.get("private", False),
        size=raw.get("size", 0),
        topics=raw.get("topics") or [],
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
        pushed_at=raw.get("pushed_at"),
    )


class GitHubService:
    """Per-token GitHub REST client with Redis caching.

    Every operation takes the caller's access token; nothing is shared
    between users except the Redis connection.
    """

    def __init__(self, redis: aioredis.Redis, settings: Optional[Settings] = None) -> None:
        self.redis = redis
        self.settings = settings or get_settings()
        self._cache_ttl = self.settings.github_cache_ttl

    # --- Cache Helpers ---

    async def _cache_get(self, key: str) -> Any | None:
        """Get value from Redis cache with optional decompression."""
        raw = await self.redis.get(key)
        if raw is None:
            GITHUB_CACHE_MISSES.inc()
            return None

        GITHUB_CACHE_HITS.inc()

        # zlib header marks a compressed payload
        if isinstance(raw, bytes) and raw[:2] == b"\x78\x9c":
            raw = zlib.decompress(raw)

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        return json.loads(raw)

    async def _cache_set(self, key: str, value: Any) -> None:
        """Set value in Redis cache with optional compression."""
        serialized = json.dumps(value, separators=(",", ":"), default=str)

        if len(serialized) > CACHE_COMPRESS_THRESHOLD:
            data: bytes | str = zlib.compress(serialized.encode("utf-8"), level=6)
        else:
            data = serialized

        await self.redis.setex(key, self._cache_ttl, data)

    # --- Operations ---

    async def get_authenticated_user(self, access_token: str) -> GitHubUser:
        """Resolve the token's owner (``GET /user``)."""
        cache_key = f"github:user:{token_fingerprint(access_token)}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return GitHubUser.model_validate(cached)

        data = await self._api_request(
            f"{self.settings.github_api_base}/user",
            access_token,
            endpoint="user",
            resource="user",
        )
        user = GitHubUser.model_validate(data)

        await self._cache_set(cache_key, user.model_dump())
        return user

    async def get_user_repositories(self, access_token: str) -> list[GitHubRepository]:
        """All public repositories owned by the token's user, forks included.

        Forks carry ``is_fork=True``; callers decide whether to keep them.
        """
        cache_key = f"github:repos:{token_fingerprint(access_token)}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return [GitHubRepository.model_validate(r) for r in cached]

        url = f"{self.settings.github_api_base}/user/repos"
        raw_repos: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._api_request(
                url,
                access_token,
                params={
                    "type": "owner",
                    "sort": "updated",
                    "per_page": REPOS_PER_PAGE,
                    "page": page,
                },
                endpoint="user_repos",
            )
            if not isinstance(batch, list):
                break
            raw_repos.extend(batch)
            if len(batch) < REPOS_PER_PAGE:
                break
            page += 1

        repos = [_map_repository(r) for r in raw_repos if not r.get("private", False)]
        logger.info("github_repositories_fetched", count=len(repos), pages=page)

        await self._cache_set(cache_key, [r.model_dump(mode="json") for r in repos])
        return repos

    async def get_repository_languages(
        self, access_token: str, owner: str, repo: str
    ) -> list[LanguageStat]:
        """Language byte counts for one repository, largest first."""
        cache_key = f"github:languages:{token_fingerprint(access_token)}:{owner}/{repo}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return [LanguageStat.model_validate(s) for s in cached]

        data = await self._api_request(
            f"{self.settings.github_api_base}/repos/{owner}/{repo}/languages",
            access_token,
            endpoint="repo_languages",
            resource="repository",
        )
        stats = build_language_stats(data if isinstance(data, dict) else {})

        await self._cache_set(cache_key, [s.model_dump() for s in stats])
        return stats

    async def get_repo_file_tree(self, access_token: str, owner: str, repo: str) -> list[str]:
        """Recursive listing of every file path (blobs only) on the default branch."""
        cache_key = f"github:tree:{token_fingerprint(access_token)}:{owner}/{repo}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        data = await self._api_request(
            f"{self.settings.github_api_base}/repos/{owner}/{repo}/git/trees/HEAD",
            access_token,
            params={"recursive": "1"},
            endpoint="repo_tree",
            resource="repository",
        )
        entries = data.get("tree", []) if isinstance(data, dict) else []
        paths = [e["path"] for e in entries if e.get("type") == "blob" and e.get("path")]

        if isinstance(data, dict) and data.get("truncated"):
            logger.warning("github_tree_truncated", repo=f"{owner}/{repo}", paths=len(paths))

        await self._cache_set(cache_key, paths)
        return paths

    async def get_file_content(
        self, access_token: str, owner: str, repo: str, path: str
    ) -> Optional[str]:
        """Decoded text of one file, or None if absent, not a file, or too large."""
        cache_key = f"github:file:{token_fingerprint(access_token)}:{owner}/{repo}:{path}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached.get("content")

        try:
            data = await self._api_request(
                f"{self.settings.github_api_base}/repos/{owner}/{repo}/contents/{quote(path)}",
                access_token,
                endpoint="repo_contents",
                resource="file",
            )
        except GitHubNotFoundError:
            data = None

        content = self._decode_file(data, path)
        await self._cache_set(cache_key, {"content": content})
        return content

    def _decode_file(self, data: Any, path: str) -> Optional[str]:
        if not isinstance(data, dict) or data.get("type") != "file":
            return None

        size = data.get("size", 0)
        if size > self.settings.github_file_max_bytes:
            logger.debug("github_file_too_large", path=path, size=size)
            return None

        encoded = data.get("content") or ""
        if data.get("encoding", "base64") != "base64":
            return encoded
        try:
            return base64.b64decode(encoded).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            logger.warning("github_file_decode_failed", path=path)
            return None

    async def get_user_stats(self, access_token: str) -> GitHubStats:
        """Profile-level stats, with top languages from the most-starred repos.

        Language calls stop at the first rate-limit error; languages
        gathered so far are kept.
        """
        cache_key = f"github:stats:{token_fingerprint(access_token)}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return GitHubStats.model_validate(cached)

        user = await self.get_authenticated_user(access_token)
        owned = [r for r in await self.get_user_repositories(access_token) if not r.is_fork]

        language_bytes: dict[str, int] = {}
        top_repos = sorted(owned, key=lambda r: r.stars, reverse=True)[:STATS_TOP_REPOS]
        for repo in top_repos:
            try:
                languages = await self.get_repository_languages(access_token, repo.owner, repo.name)
            except GitHubRateLimitError as exc:
                logger.warning("github_stats_rate_limited", reset_at=exc.details.get("reset_at"))
                break
            for stat in languages:
                language_bytes[stat.name] = language_bytes.get(stat.name, 0) + stat.bytes

        stats = GitHubStats(
            username=user.login,
            public_repos_count=len(owned),
            total_stars=sum(r.stars for r in owned),
            total_forks=sum(r.forks for r in owned),
            followers=user.followers,
            following=user.following,
            top_languages=build_language_stats(language_bytes)[:STATS_TOP_LANGUAGES],
        )

        await self._cache_set(cache_key, stats.model_dump(mode="json"))
        return stats

    # --- HTTP ---

    @staticmethod
    def _headers(access_token: str) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {access_token}",
            "User-Agent": "Profily",
        }

    async def _api_request(
        self,
        url: str,
        access_token: str,
        params: Optional[dict[str, Any]] = None,
        endpoint: str = "other",
        resource: str = "resource",
    ) -> Any:
        """Make an authenticated request to GitHub API with retry logic.

        Retries with exponential backoff on connection errors, 502/503/504
        and secondary rate limits (403/429 with ``Retry-After``).
        A primary rate limit (``X-RateLimit-Remaining: 0``) fails at once.
        404 and 401 are never retried.
        """
        max_retries = self.settings.github_max_retries
        last_exception: Exception | None = None

        for attempt in range(max_retries + 1):
            async with httpx.AsyncClient(timeout=self.settings.github_request_timeout) as client:
                with GITHUB_API_DURATION.labels(endpoint=endpoint).time():
                    try:
                        response = await client.get(
                            url, headers=self._headers(access_token), params=params
                        )
                    except httpx.RequestError as exc:
                        GITHUB_API_CALLS.labels(endpoint=endpoint, status="error").inc()
                        last_exception = exc
                        if attempt < max_retries:
                            wait = self._backoff_delay(attempt)
                            logger.warning(
                                "github_api_connection_retry",
                                attempt=attempt + 1,
                                wait_seconds=wait,
                                endpoint=endpoint,
                            )
                            await asyncio.sleep(wait)
                            continue
                        raise GitHubAPIError(
                            "GitHub API connection failed after retries"
                        ) from exc

            status = response.status_code
            GITHUB_API_CALLS.labels(endpoint=endpoint, status=str(status)).inc()

            # Non-retryable errors
            if status == 404:
                raise GitHubNotFoundError(resource)
            if status == 401:
                raise GitHubAPIError("GitHub token invalid or expired", status_code=401)

            if status in (403, 429):
                retry_after = response.headers.get("Retry-After")
                rate_remaining = response.headers.get("X-RateLimit-Remaining")
                reset_at = response.headers.get("X-RateLimit-Reset")

                # Primary limit: nothing to gain by retrying before reset
                if rate_remaining == "0" and not retry_after:
                    logger.warning("github_rate_limit_exhausted", endpoint=endpoint, reset_at=reset_at)
                    raise GitHubRateLimitError(
                        reset_at=int(reset_at) if reset_at and reset_at.isdigit() else None
                    )

                if status == 403 and not retry_after:
                    raise GitHubAPIError("GitHub API access forbidden", status_code=403)

                if attempt < max_retries:
                    if retry_after and retry_after.isdigit():
                        wait = min(int(retry_after), 60)
                    else:
                        wait = self._backoff_delay(attempt)

                    logger.warning(
                        "github_rate_limit_retry",
                        attempt=attempt + 1,
                        wait_seconds=wait,
                        status=status,
                        endpoint=endpoint,
                    )
                    await asyncio.sleep(wait)
                    continue

                raise GitHubRateLimitError(
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
                )

            # Retryable: server errors
            if status in (502, 503, 504):
                if attempt < max_retries:
                    wait = self._backoff_delay(attempt)
                    logger.warning(
                        "github_server_error_retry",
                        attempt=attempt + 1,
                        wait_seconds=wait,
                        status=status,
                        endpoint=endpoint,
                    )
                    await asyncio.sleep(wait)
                    continue

                raise GitHubAPIError(
                    f"GitHub API server error {status} after retries",
                    status_code=status,
                )

            if status >= 400:
                raise GitHubAPIError(
                    f"GitHub API returned status {status}",
                    status_code=status,
                )

            return response.json()

        raise GitHubAPIError("GitHub API request failed") from last_exception

    @staticmethod
    def _backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 30.0) -> float:
        """Calculate exponential backoff delay with jitter.

        Formula: min(base * 2^attempt + jitter, max_delay)
        """
        delay = base * (2 ** attempt)
        jitter = random.uniform(0, delay * 0.1)
        return min(delay + jitter, max_delay)
