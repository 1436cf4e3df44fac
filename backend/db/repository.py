"""Generic document repository.

Stores JSON documents in the ``documents`` table. A document is found by
its id together with its partition key (the owning user id), so one
user's id can never address another user's document.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from db.models import Document

logger = get_logger(__name__)


class DocumentRepository:
    """Get/upsert access to partitioned JSON documents."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, document_id: str, partition_key: str) -> Optional[dict[str, Any]]:
        """Return the document, or None if absent or in another partition."""
        async with self._session_factory() as session:
            row = await session.get(Document, document_id)
            if row is None or row.user_id != partition_key:
                return None
            return dict(row.data)

    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a document.

        The document must carry ``id`` and ``user_id``. An existing
        document keeps its ``created_at``; ``updated_at`` is always stamped.
        """
        now = datetime.now(UTC)
        data = dict(document)
        data["updated_at"] = now.isoformat()

        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(Document, data["id"])
                if row is None:
                    data.setdefault("created_at", now.isoformat())
                    session.add(
                        Document(
                            id=data["id"],
                            user_id=str(data["user_id"]),
                            type=data.get("type", "document"),
                            data=data,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                else:
                    data["created_at"] = row.data.get("created_at", data.get("created_at"))
                    row.user_id = str(data["user_id"])
                    row.type = data.get("type", row.type)
                    row.data = data
                    row.updated_at = now

        logger.debug("document_upserted", document_id=data["id"], type=data.get("type"))
        return data
