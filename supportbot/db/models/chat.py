"""
Chat session and turn models.

A session owns an ordered list of turns. Every user submission and every
assistant paragraph is one `Message` row; rows are never updated after
insert. `text_hash` carries the uniqueness of (chat_id, sender, text) so the
constraint stays indexable for long paragraphs.
"""

import enum
import hashlib
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Column, String, DateTime, Text, Integer, BigInteger, ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from ..base import Base
from ...utils.datetime import isoformat_utc as iso_utc


class TurnSender(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


def hash_turn_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ChatSession(Base):
    """
    One conversation. Owned either by a user row or by an anonymous
    fingerprint, never both.
    """
    __tablename__ = "chat_sessions"

    id = Column(String(64), primary_key=True)

    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    owner_fingerprint = Column(BigInteger, nullable=True, index=True)

    title = Column(String(200), nullable=True)
    # Latest accumulated context reported by the completion service
    context = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship("Message", back_populates="chat", order_by="Message.id")

    def __repr__(self):
        return f"<ChatSession(id={self.id}, title={self.title!r})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "context": self.context,
            "created_at": iso_utc(self.created_at),
            "updated_at": iso_utc(self.updated_at),
            "deleted_at": iso_utc(self.deleted_at),
        }


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("chat_id", "sender", "text_hash", name="uq_messages_chat_sender_text"),
        Index("ix_messages_chat_timestamp", "chat_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(64), ForeignKey("chat_sessions.id"), nullable=False)
    sender = Column(String(16), nullable=False)
    text = Column(Text, nullable=False)
    text_hash = Column(String(64), nullable=False)
    # Per-turn summary attached to assistant paragraphs
    context = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    chat = relationship("ChatSession", back_populates="messages")

    def __repr__(self):
        return f"<Message(id={self.id}, chat_id={self.chat_id}, sender={self.sender})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "sender": self.sender,
            "text": self.text,
            "context": self.context,
            "timestamp": iso_utc(self.timestamp),
        }
