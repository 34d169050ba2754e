"""
Chat Repository

Persistence gateway for chat sessions and turns. This is the only place
where a caller Identity is projected onto storage columns.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.errors import PersistenceConflict, PersistenceError
from ...core.identity import Anonymous, Authenticated, Identity, describe_identity
from ...core.outcome import Err, Ok, Outcome
from ...utils.datetime import utc_now
from ..models.chat import ChatSession, Message, TurnSender, hash_turn_text
from ..session import Database

logger = logging.getLogger("supportbot.db.chat")

TURN_UNIQUE_CONSTRAINT = "uq_messages_chat_sender_text"


def owner_columns(identity: Identity) -> dict:
    """Storage projection of an identity."""
    if isinstance(identity, Authenticated):
        return {"owner_user_id": identity.user_id, "owner_fingerprint": None}
    if isinstance(identity, Anonymous):
        return {"owner_user_id": None, "owner_fingerprint": identity.fingerprint}
    return {"owner_user_id": None, "owner_fingerprint": None}


def is_owned_by(chat: ChatSession, identity: Identity) -> bool:
    expected = owner_columns(identity)
    return (chat.owner_user_id == expected["owner_user_id"]
            and chat.owner_fingerprint == expected["owner_fingerprint"])


def is_duplicate_turn_error(error: IntegrityError) -> bool:
    """True only for the (chat_id, sender, text) uniqueness violation."""
    message = str(error.orig if error.orig is not None else error)
    if TURN_UNIQUE_CONSTRAINT in message:
        return True
    # SQLite names the columns instead of the constraint
    return "UNIQUE constraint failed" in message and "messages.text_hash" in message


class ChatRepository:
    """
    Repository for chat sessions and their turns.

    `save_turn` is idempotent on (chat_id, sender, text): a duplicate insert
    resolves to the row that won the race.
    """

    def __init__(self, database: Database, conflict_retry_delay: float = 0.05):
        self.database = database
        self.conflict_retry_delay = conflict_retry_delay
        self.logger = logger

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def get_session_for(self, chat_id: str, identity: Identity,
                              session: Optional[AsyncSession] = None) -> Outcome[ChatSession]:
        """Look up a live session owned by `identity`."""
        async with self.database.session(session) as db:
            chat = await db.get(ChatSession, chat_id)
            if chat is None or chat.deleted_at is not None or not is_owned_by(chat, identity):
                return Err("chat_not_found", f"chat {chat_id} not found")
            return Ok(chat)

    async def get_or_create_session(self, chat_id: str, identity: Identity) -> Outcome[ChatSession]:
        """
        Return the caller's session, creating it on the first turn.

        A session that exists but belongs to someone else (or was deleted)
        is reported as not found rather than exposed.
        """
        async with self.database.session() as db:
            chat = await db.get(ChatSession, chat_id)
        if chat is None:
            chat = await self.save_session(chat_id, identity)
        if chat.deleted_at is not None or not is_owned_by(chat, identity):
            self.logger.info(f"Chat {chat_id} not available to {describe_identity(identity)}")
            return Err("chat_not_found", f"chat {chat_id} not found")
        return Ok(chat)

    async def list_sessions_for(self, identity: Identity, limit: int = 50,
                                session: Optional[AsyncSession] = None) -> List[ChatSession]:
        """Live sessions owned by `identity`, most recently active first."""
        if isinstance(identity, Authenticated):
            owner_filter = ChatSession.owner_user_id == identity.user_id
        elif isinstance(identity, Anonymous):
            owner_filter = and_(
                ChatSession.owner_user_id.is_(None),
                ChatSession.owner_fingerprint == identity.fingerprint,
            )
        else:
            # Without an owner there is nothing to list
            return []
        async with self.database.session(session) as db:
            result = await db.execute(
                select(ChatSession)
                .where(owner_filter)
                .where(ChatSession.deleted_at.is_(None))
                .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def save_session(self, chat_id: str, identity: Identity,
                           title: Optional[str] = None) -> ChatSession:
        try:
            async with self.database.session() as db:
                chat = ChatSession(id=chat_id, title=title, **owner_columns(identity))
                db.add(chat)
                await db.flush()
            self.logger.info(f"Created chat session {chat_id} for {describe_identity(identity)}")
            return chat
        except IntegrityError:
            # Another turn created it first
            self.logger.warning(f"Chat session {chat_id} already exists, reusing")
            async with self.database.session() as db:
                existing = await db.get(ChatSession, chat_id)
            if existing is None:
                raise PersistenceError(f"Could not create chat session {chat_id}")
            return existing

    async def update_session_title(self, chat_id: str, title: str,
                                   session: Optional[AsyncSession] = None) -> bool:
        """Set the title once; later calls leave an existing title untouched."""
        if not title:
            return False
        async with self.database.session(session) as db:
            result = await db.execute(
                update(ChatSession)
                .where(ChatSession.id == chat_id)
                .where(ChatSession.title.is_(None))
                .values(title=title, updated_at=utc_now())
            )
            return (result.rowcount or 0) > 0

    async def save_session_context(self, chat_id: str, context: str,
                                   session: Optional[AsyncSession] = None) -> None:
        async with self.database.session(session) as db:
            await db.execute(
                update(ChatSession)
                .where(ChatSession.id == chat_id)
                .values(context=context, updated_at=utc_now())
            )

    async def soft_delete_session(self, chat_id: str, session: Optional[AsyncSession] = None) -> bool:
        async with self.database.session(session) as db:
            result = await db.execute(
                update(ChatSession)
                .where(ChatSession.id == chat_id)
                .where(ChatSession.deleted_at.is_(None))
                .values(deleted_at=utc_now())
            )
            deleted = (result.rowcount or 0) > 0
        if deleted:
            self.logger.info(f"Soft-deleted chat session {chat_id}")
        return deleted

    async def list_idle_sessions(self, idle_before: datetime, limit: int = 200,
                                 session: Optional[AsyncSession] = None) -> List[Tuple[ChatSession, datetime]]:
        """Live sessions whose newest turn is older than `idle_before`, oldest first."""
        async with self.database.session(session) as db:
            last_turn = (
                select(Message.chat_id, func.max(Message.timestamp).label("last_at"))
                .group_by(Message.chat_id)
                .subquery()
            )
            result = await db.execute(
                select(ChatSession, last_turn.c.last_at)
                .join(last_turn, last_turn.c.chat_id == ChatSession.id)
                .where(ChatSession.deleted_at.is_(None))
                .where(last_turn.c.last_at < idle_before)
                .order_by(last_turn.c.last_at)
                .limit(limit)
            )
            return [(row[0], row[1]) for row in result.all()]

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def save_turn(self, chat_id: str, identity: Identity, sender: TurnSender,
                        text: str, context: Optional[str] = None) -> Message:
        """
        Persist one turn, resolving duplicate-insert races.

        On a unique-constraint conflict the existing row is returned. If the
        conflicting row cannot be found, the insert is retried once after a
        short delay before giving up with PersistenceError.
        """
        sender = TurnSender(sender)
        for attempt in range(2):
            try:
                return await self._insert_turn(chat_id, sender, text, context)
            except PersistenceConflict:
                existing = await self._find_turn(chat_id, sender, text)
                if existing is not None:
                    self.logger.info(
                        f"Duplicate {sender.value} turn in chat {chat_id} for "
                        f"{describe_identity(identity)}; returning message {existing.id}"
                    )
                    return existing
                if attempt == 0:
                    self.logger.warning(f"Turn conflict in chat {chat_id} without a matching row, retrying")
                    await asyncio.sleep(self.conflict_retry_delay)
        raise PersistenceError(
            f"Could not persist {sender.value} turn for chat {chat_id}",
            details={"chat_id": chat_id, "sender": sender.value},
        )

    async def _insert_turn(self, chat_id: str, sender: TurnSender, text: str,
                           context: Optional[str]) -> Message:
        try:
            async with self.database.session() as db:
                message = Message(
                    chat_id=chat_id,
                    sender=sender.value,
                    text=text,
                    text_hash=hash_turn_text(text),
                    context=context,
                    timestamp=utc_now(),
                )
                db.add(message)
                await db.flush()
                await db.execute(
                    update(ChatSession).where(ChatSession.id == chat_id).values(updated_at=utc_now())
                )
            return message
        except IntegrityError as e:
            if is_duplicate_turn_error(e):
                raise PersistenceConflict(str(e.orig) if e.orig else str(e)) from e
            self.logger.error(f"Integrity error storing {sender.value} turn in chat {chat_id}: {e.orig or e}")
            raise PersistenceError(
                f"Could not persist {sender.value} turn for chat {chat_id}",
                details={"chat_id": chat_id, "sender": sender.value},
            ) from e

    async def _find_turn(self, chat_id: str, sender: TurnSender, text: str) -> Optional[Message]:
        async with self.database.session() as db:
            result = await db.execute(
                select(Message)
                .where(Message.chat_id == chat_id)
                .where(Message.sender == sender.value)
                .where(Message.text_hash == hash_turn_text(text))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_context_history(self, chat_id: str, session: Optional[AsyncSession] = None) -> List[str]:
        """
        Non-empty per-turn contexts in turn order.

        Every paragraph of one answer carries the same context, so adjacent
        repeats collapse to a single entry.
        """
        async with self.database.session(session) as db:
            result = await db.execute(
                select(Message.context)
                .where(Message.chat_id == chat_id)
                .where(Message.context.is_not(None))
                .order_by(Message.id)
            )
            contexts: List[str] = []
            for (context,) in result.all():
                value = (context or "").strip()
                if value and (not contexts or contexts[-1] != value):
                    contexts.append(value)
            return contexts

    async def get_recent_turns(self, chat_id: str, limit: int = 10,
                               session: Optional[AsyncSession] = None) -> List[Message]:
        """The last `limit` turns, oldest first."""
        async with self.database.session(session) as db:
            result = await db.execute(
                select(Message)
                .where(Message.chat_id == chat_id)
                .order_by(Message.id.desc())
                .limit(limit)
            )
            return list(reversed(result.scalars().all()))

    async def list_turns(self, chat_id: str, session: Optional[AsyncSession] = None) -> List[Message]:
        async with self.database.session(session) as db:
            result = await db.execute(
                select(Message).where(Message.chat_id == chat_id).order_by(Message.id)
            )
            return list(result.scalars().all())

    async def count_turns(self, chat_id: str, sender: Optional[TurnSender] = None,
                          session: Optional[AsyncSession] = None) -> int:
        async with self.database.session(session) as db:
            stmt = select(func.count(Message.id)).where(Message.chat_id == chat_id)
            if sender is not None:
                stmt = stmt.where(Message.sender == TurnSender(sender).value)
            result = await db.execute(stmt)
            return int(result.scalar_one() or 0)
