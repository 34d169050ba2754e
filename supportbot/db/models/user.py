"""
User Model

Authenticated callers map onto rows here. Profile management lives outside
this service; the chat pipeline only needs to know a user exists and is active.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime, timezone

from ..base import Base
from ...utils.datetime import isoformat_utc as iso_utc


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=True)
    display_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, active={self.is_active})>"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "created_at": iso_utc(self.created_at),
        }
