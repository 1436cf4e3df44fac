"""Custom exception classes for Profily.

All exceptions follow the Profily error format:
{
    "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable message",
        "details": {}  # optional
    }
}

Error messages must never contain access tokens.
"""

from __future__ import annotations

from typing import Any


class ProfilyBaseError(Exception):
    """Base exception for Profily."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class GitHubAPIError(ProfilyBaseError):
    """GitHub API specific errors."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(
            code="GITHUB_API_ERROR",
            message=message,
            status_code=status_code,
        )


class GitHubNotFoundError(ProfilyBaseError):
    """GitHub resource (user, repository, file) not found."""

    def __init__(self, resource: str = "resource") -> None:
        super().__init__(
            code="GITHUB_NOT_FOUND",
            message=f"GitHub {resource} not found",
            status_code=404,
        )


class GitHubRateLimitError(ProfilyBaseError):
    """GitHub API rate limit exceeded."""

    def __init__(self, retry_after: int | None = None, reset_at: int | None = None) -> None:
        details: dict[str, Any] = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        if reset_at:
            details["reset_at"] = reset_at
        super().__init__(
            code="GITHUB_RATE_LIMIT",
            message="GitHub API rate limit exceeded. Try again later.",
            status_code=429,
            details=details,
        )


class UnauthorizedError(ProfilyBaseError):
    """Missing or invalid GitHub access token."""

    def __init__(self, message: str = "A valid GitHub access token is required.") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class RateLimitError(ProfilyBaseError):
    """Application rate limit exceeded."""

    def __init__(self, limit_type: str, retry_after: int = 60) -> None:
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message=f"Rate limit exceeded for {limit_type}. Try again later.",
            status_code=429,
            details={"retry_after_seconds": retry_after, "limit_type": limit_type},
        )


class MappingLoadError(ProfilyBaseError):
    """Bundled framework mapping data is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="MAPPING_LOAD_FAILED",
            message=message,
            status_code=500,
        )
