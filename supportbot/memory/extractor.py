"""
Memory Extraction Service

Distils the most recent conversation contexts into a single summary memory.
"""

import logging
from typing import Optional, Sequence

from ..db.models.memory import UserMemory
from ..db.repositories.memory import MemoryRepository
from ..utils.datetime import utc_now

logger = logging.getLogger("supportbot.memory.extractor")

MAX_POINTS = 3
MIN_POINT_LENGTH = 10
MAX_POINT_LENGTH = 100
SUMMARY_TAGS = ["conversation-summary", "auto-generated"]


class MemoryExtractor:
    def __init__(self, memory_repo: MemoryRepository):
        self.memory_repo = memory_repo

    @staticmethod
    def key_points(contexts: Sequence[str]):
        usable = [c.strip() for c in contexts if c and len(c.strip()) > MIN_POINT_LENGTH]
        points = []
        for i, context in enumerate(usable[-MAX_POINTS:], start=1):
            if len(context) > MAX_POINT_LENGTH:
                context = context[:MAX_POINT_LENGTH] + "..."
            points.append(f"Point {i}: {context}")
        return points

    async def extract_and_save(self, owner_id: int, chat_id: str,
                               contexts: Sequence[str]) -> Optional[UserMemory]:
        """
        Store a summary memory for `chat_id`.

        Returns None when there is nothing worth keeping. Failures are
        logged and swallowed: extraction never affects answer delivery.
        """
        points = self.key_points(contexts)
        if not points:
            logger.debug(f"No usable contexts to remember for chat {chat_id}")
            return None
        try:
            return await self.memory_repo.create_memory(
                owner_id,
                title=f"Conversation summary - {utc_now().strftime('%Y-%m-%d')}",
                content="\n".join(points),
                importance=2,
                tags=list(SUMMARY_TAGS),
                source_chat_id=chat_id,
                memory_type="conversation_summary",
            )
        except Exception as e:
            logger.error(f"Memory extraction failed for chat {chat_id}: {e}", exc_info=True)
            return None
