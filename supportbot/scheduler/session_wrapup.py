"""
Idle session wrap-up.

Conversations often just stop. This background loop finds chats whose last
turn is older than the inactivity threshold and gives the memory gate a
chance to distil them, which is where the inactivity trigger fires.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..core.identity import Authenticated
from ..utils.datetime import ensure_utc, utc_now

logger = logging.getLogger("supportbot.scheduler.wrapup")


async def wrapup_idle_sessions(services: Dict[str, Any], inactivity_minutes: float,
                               now: Optional[datetime] = None, batch_size: int = 200) -> int:
    """Run one scan; returns the number of memories created."""
    chat_repo = services["chat_repo"]
    memory_repo = services["memory_repo"]
    gate = services["memory_gate"]
    extractor = services["memory_extractor"]

    now = now or utc_now()
    idle_before = now - timedelta(minutes=inactivity_minutes)
    created = 0

    for chat, last_at in await chat_repo.list_idle_sessions(idle_before, limit=batch_size):
        # Only authenticated owners keep memories
        if chat.owner_user_id is None:
            continue
        last_at = ensure_utc(last_at)
        last_memory_at = await memory_repo.latest_for_chat(chat.id)
        if last_memory_at is not None and last_at is not None and last_memory_at >= last_at:
            # Already wrapped up since the last turn
            continue

        try:
            identity = Authenticated(chat.owner_user_id)
            contexts = await chat_repo.get_context_history(chat.id)
            decision = await gate.evaluate(identity, chat.id, contexts)
            if not decision.extract:
                continue
            memory = await extractor.extract_and_save(chat.owner_user_id, chat.id, contexts)
            if memory is not None:
                created += 1
                logger.info(f"Wrapped up idle chat {chat.id} into memory {memory.id}")
        except Exception as e:
            logger.error(f"Wrap-up failed for chat {chat.id}: {e}", exc_info=True)

    return created


async def session_wrapup_loop(services: Dict[str, Any], inactivity_minutes: float,
                              scan_interval_s: float = 120.0) -> None:
    logger.info(f"Session wrap-up loop started (idle > {inactivity_minutes} min, every {scan_interval_s}s)")
    while True:
        try:
            created = await wrapup_idle_sessions(services, inactivity_minutes)
            if created:
                logger.info(f"Session wrap-up created {created} memories")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Session wrap-up scan failed: {e}", exc_info=True)
        await asyncio.sleep(max(10.0, scan_interval_s))
