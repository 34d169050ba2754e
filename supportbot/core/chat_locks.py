"""Per-chat turn serialization."""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class ChatLockRegistry:
    """
    Hands out one asyncio.Lock per chat id.

    Entries are reference counted and removed once no turn holds or waits
    on them, so the registry only grows with the number of active chats.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, chat_id: str):
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        self._refs[chat_id] = self._refs.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[chat_id] -= 1
            if self._refs[chat_id] == 0:
                del self._refs[chat_id]
                del self._locks[chat_id]

    def active_chats(self) -> int:
        return len(self._locks)
