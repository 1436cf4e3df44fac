"""Health monitoring.

Readiness checks for the application's dependencies: Redis
(caches, rate limits) and the document database.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from sqlalchemy import text

from app.logging_config import get_logger
from db.session import get_engine

logger = get_logger(__name__)


class HealthMonitor:
    """Monitors health of all application components."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    async def check_all(self) -> dict[str, Any]:
        """Run all health checks and return status."""
        redis_ok = await self._check_redis()
        db_ok = await self._check_database()

        all_healthy = redis_ok and db_ok

        return {
            "status": "healthy" if all_healthy else "degraded",
            "checks": {
                "redis": {"status": "ok" if redis_ok else "error"},
                "database": {"status": "ok" if db_ok else "error"},
            },
        }

    async def _check_redis(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except Exception as exc:
            logger.error("health_check_redis_failed", error=str(exc))
            return False

    async def _check_database(self) -> bool:
        engine = get_engine()
        if engine is None:
            return False
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.error("health_check_database_failed", error=str(exc))
            return False
