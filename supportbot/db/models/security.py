"""
Security threat records.

Written whenever the screener fires. Only `handled` changes afterwards.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, JSON

from ..base import Base
from ...utils.datetime import isoformat_utc as iso_utc


class SecurityThreat(Base):
    __tablename__ = "security_threats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    threat_type = Column(String(50), nullable=False, index=True)
    threat_level = Column(String(20), nullable=False, index=True)
    original_text = Column(Text, nullable=False)
    matched_patterns = Column(JSON, nullable=False, default=list)

    # Masked before insert
    origin_ip = Column(String(64), nullable=True)
    user_agent = Column(String(200), nullable=True)

    chat_id = Column(String(64), ForeignKey("chat_sessions.id"), nullable=True, index=True)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    handled = Column(Boolean, default=False, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "threat_type": self.threat_type,
            "threat_level": self.threat_level,
            "original_text": self.original_text,
            "matched_patterns": list(self.matched_patterns or []),
            "origin_ip": self.origin_ip,
            "user_agent": self.user_agent,
            "chat_id": self.chat_id,
            "timestamp": iso_utc(self.timestamp),
            "handled": self.handled,
        }
