"""Tech stack profile cache.

Short-lived copies of analyzed profiles in Redis, so repeated reads
skip both the database and GitHub. Entries expire via Redis TTL.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.logging_config import get_logger
from services.tech_models import TechStackProfile

logger = get_logger(__name__)


class ProfileCache:
    """Redis-backed cache of :class:`TechStackProfile` keyed by user id."""

    PREFIX = "techstack:"

    def __init__(self, redis: aioredis.Redis, settings: Optional[Settings] = None) -> None:
        self.redis = redis
        self.settings = settings or get_settings()

    def _key(self, user_id: str) -> str:
        return f"{self.PREFIX}{user_id}"

    async def try_get(self, user_id: str) -> Optional[TechStackProfile]:
        """Cached profile, or None on miss. An unreadable entry counts as a miss."""
        raw = await self.redis.get(self._key(user_id))
        if raw is None:
            return None
        try:
            return TechStackProfile.model_validate_json(raw)
        except ValidationError:
            logger.warning("techstack_cache_entry_invalid", user_id=user_id)
            await self.remove(user_id)
            return None

    async def set(
        self, user_id: str, profile: TechStackProfile, ttl: Optional[int] = None
    ) -> None:
        """Store a profile. The TTL resets on every write."""
        await self.redis.setex(
            self._key(user_id),
            ttl or self.settings.techstack_cache_ttl,
            profile.model_dump_json(),
        )

    async def remove(self, user_id: str) -> None:
        await self.redis.delete(self._key(user_id))
