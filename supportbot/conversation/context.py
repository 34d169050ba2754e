"""
Context accumulation for a new turn.

Gathers the chat's prior per-turn summaries, the owner's most important
long-term memories and a short window of raw turns.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.identity import Authenticated, Identity
from ..db.models.chat import Message
from ..db.models.memory import UserMemory
from ..db.repositories.chat import ChatRepository
from ..db.repositories.memory import MemoryRepository

logger = logging.getLogger("supportbot.conversation.context")


@dataclass
class ContextBundle:
    contexts: List[str] = field(default_factory=list)
    memories: List[UserMemory] = field(default_factory=list)
    recent_turns: List[Message] = field(default_factory=list)


class ContextAccumulator:
    def __init__(self, chat_repo: ChatRepository, memory_repo: MemoryRepository,
                 recent_turn_limit: int = 10, memory_limit: int = 5):
        self.chat_repo = chat_repo
        self.memory_repo = memory_repo
        self.recent_turn_limit = recent_turn_limit
        self.memory_limit = memory_limit

    async def gather(self, chat_id: str, identity: Identity,
                     exclude_turn_id: Optional[int] = None) -> ContextBundle:
        contexts = await self.chat_repo.get_context_history(chat_id)

        memories: List[UserMemory] = []
        if isinstance(identity, Authenticated) and self.memory_limit > 0:
            memories = await self.memory_repo.get_top_memories(identity.user_id, limit=self.memory_limit)

        # One extra row so the excluded (current) turn does not shrink the window
        recent = await self.chat_repo.get_recent_turns(chat_id, limit=self.recent_turn_limit + 1)
        recent = [t for t in recent if t.id != exclude_turn_id][-self.recent_turn_limit:]

        logger.debug(
            f"Context for chat {chat_id}: {len(contexts)} contexts, "
            f"{len(memories)} memories, {len(recent)} recent turns"
        )
        return ContextBundle(contexts=contexts, memories=memories, recent_turns=recent)
