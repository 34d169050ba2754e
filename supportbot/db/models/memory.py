"""
Long-term memory records distilled from conversations.

Only authenticated users own memories. A memory outlives its source chat:
deleting the chat clears `source_chat_id` instead of removing the row.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey, JSON, CheckConstraint

from ..base import Base
from ...utils.datetime import isoformat_utc as iso_utc


class UserMemory(Base):
    __tablename__ = "user_memories"
    __table_args__ = (
        CheckConstraint("importance BETWEEN 1 AND 5", name="ck_user_memories_importance"),
        CheckConstraint("owner_id > 0", name="ck_user_memories_owner_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    memory_type = Column(String(50), nullable=False, default="conversation_summary")
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    importance = Column(Integer, nullable=False, default=2)
    tags = Column(JSON, nullable=False, default=list)
    source_chat_id = Column(String(64), ForeignKey("chat_sessions.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<UserMemory(id={self.id}, owner_id={self.owner_id}, importance={self.importance})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "memory_type": self.memory_type,
            "title": self.title,
            "content": self.content,
            "importance": self.importance,
            "tags": list(self.tags or []),
            "source_chat_id": self.source_chat_id,
            "created_at": iso_utc(self.created_at),
        }
