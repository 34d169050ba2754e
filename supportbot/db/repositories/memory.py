"""
Memory Repository

Storage for long-term memory records owned by authenticated users.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ...utils.datetime import ensure_utc, utc_now
from ..models.memory import UserMemory
from ..session import Database

logger = logging.getLogger("supportbot.db.memory")


class MemoryRepository:
    def __init__(self, database: Database):
        self.database = database
        self.logger = logger

    async def create_memory(self, owner_id: int, title: str, content: str, *,
                            importance: int = 2, tags: Optional[List[str]] = None,
                            source_chat_id: Optional[str] = None,
                            memory_type: str = "conversation_summary",
                            session: Optional[AsyncSession] = None) -> UserMemory:
        if owner_id <= 0:
            raise ValueError("memory records belong to authenticated users only")
        importance = max(1, min(5, int(importance)))
        async with self.database.session(session) as db:
            memory = UserMemory(
                owner_id=owner_id,
                memory_type=memory_type,
                title=title,
                content=content,
                importance=importance,
                tags=list(tags or []),
                source_chat_id=source_chat_id,
            )
            db.add(memory)
            await db.flush()
        self.logger.info(f"Created memory {memory.id} for user {owner_id} from chat {source_chat_id}")
        return memory

    async def get_top_memories(self, owner_id: int, limit: int = 5,
                               session: Optional[AsyncSession] = None) -> List[UserMemory]:
        """Most important live memories first, newest breaking ties."""
        async with self.database.session(session) as db:
            result = await db.execute(
                select(UserMemory)
                .where(UserMemory.owner_id == owner_id)
                .where(UserMemory.deleted_at.is_(None))
                .order_by(UserMemory.importance.desc(), UserMemory.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def latest_for_chat(self, chat_id: str,
                              session: Optional[AsyncSession] = None) -> Optional[datetime]:
        async with self.database.session(session) as db:
            result = await db.execute(
                select(func.max(UserMemory.created_at))
                .where(UserMemory.source_chat_id == chat_id)
                .where(UserMemory.deleted_at.is_(None))
            )
            return ensure_utc(result.scalar_one_or_none())

    async def orphan_chat_memories(self, chat_id: str, session: Optional[AsyncSession] = None) -> int:
        """Detach memories from a chat that is being removed."""
        async with self.database.session(session) as db:
            result = await db.execute(
                update(UserMemory)
                .where(UserMemory.source_chat_id == chat_id)
                .values(source_chat_id=None)
            )
            return result.rowcount or 0

    async def list_for_owner(self, owner_id: int, limit: int = 50,
                             session: Optional[AsyncSession] = None) -> List[UserMemory]:
        """Live memories of one user, newest first."""
        async with self.database.session(session) as db:
            result = await db.execute(
                select(UserMemory)
                .where(UserMemory.owner_id == owner_id)
                .where(UserMemory.deleted_at.is_(None))
                .order_by(UserMemory.created_at.desc(), UserMemory.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def soft_delete(self, memory_id: int, owner_id: int,
                          session: Optional[AsyncSession] = None) -> bool:
        """Hide a memory from its owner; other users' rows are never matched."""
        async with self.database.session(session) as db:
            result = await db.execute(
                update(UserMemory)
                .where(UserMemory.id == memory_id)
                .where(UserMemory.owner_id == owner_id)
                .where(UserMemory.deleted_at.is_(None))
                .values(deleted_at=utc_now())
            )
            deleted = (result.rowcount or 0) > 0
        if deleted:
            self.logger.info(f"Soft-deleted memory {memory_id} for user {owner_id}")
        return deleted
