"""
Security Threat Repository

Records screener hits with masked origin metadata and serves the
moderation listing.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...security.masking import mask_ip, sanitize_user_agent
from ...security.screener import ScreeningResult, ThreatLevel
from ..models.security import SecurityThreat
from ..session import Database

logger = logging.getLogger("supportbot.db.security")


class SecurityThreatRepository:
    def __init__(self, database: Database):
        self.database = database
        self.logger = logger

    async def record_threat(self, result: ScreeningResult, original_text: str, *,
                            origin_ip: Optional[str] = None,
                            user_agent: Optional[str] = None,
                            chat_id: Optional[str] = None,
                            session: Optional[AsyncSession] = None) -> SecurityThreat:
        if not result.is_threat:
            raise ValueError("record_threat called for a clean screening result")
        async with self.database.session(session) as db:
            threat = SecurityThreat(
                threat_type=result.kind.value,
                threat_level=result.level.value,
                original_text=original_text,
                matched_patterns=list(result.matched_patterns),
                origin_ip=mask_ip(origin_ip),
                user_agent=sanitize_user_agent(user_agent),
                chat_id=chat_id,
            )
            db.add(threat)
            await db.flush()

        self.logger.info(
            f"Security threat recorded: {threat.threat_type} ({threat.threat_level}) "
            f"chat={chat_id} patterns={threat.matched_patterns}"
        )
        if result.level in (ThreatLevel.HIGH, ThreatLevel.CRITICAL):
            self.logger.warning(
                f"Security alert: {threat.threat_type} at level {threat.threat_level}",
                extra={"threat_id": threat.id, "origin_ip": threat.origin_ip, "chat_id": chat_id},
            )
        return threat

    async def recent_threats(self, limit: int = 50, unhandled_only: bool = False,
                             session: Optional[AsyncSession] = None) -> List[SecurityThreat]:
        async with self.database.session(session) as db:
            stmt = select(SecurityThreat).order_by(SecurityThreat.id.desc()).limit(limit)
            if unhandled_only:
                stmt = stmt.where(SecurityThreat.handled.is_(False))
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def mark_handled(self, threat_id: int, session: Optional[AsyncSession] = None) -> bool:
        async with self.database.session(session) as db:
            result = await db.execute(
                update(SecurityThreat).where(SecurityThreat.id == threat_id).values(handled=True)
            )
            return (result.rowcount or 0) > 0
