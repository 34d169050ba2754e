"""
User Repository

Read access for the identity check at the HTTP edge, plus creation for
seeding and tests. Profile management is handled elsewhere.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User
from ..session import Database

logger = logging.getLogger("supportbot.db.user")


class UserRepository:
    def __init__(self, database: Database):
        self.database = database
        self.logger = logger

    async def get_active_user(self, user_id: int, session: Optional[AsyncSession] = None) -> Optional[User]:
        async with self.database.session(session) as db:
            user = await db.get(User, user_id)
            if user is None or not user.is_active:
                return None
            return user

    async def create_user(self, email: Optional[str] = None, display_name: Optional[str] = None,
                          session: Optional[AsyncSession] = None) -> User:
        async with self.database.session(session) as db:
            user = User(email=email, display_name=display_name, is_active=True)
            db.add(user)
            await db.flush()
        self.logger.info(f"Created user {user.id}")
        return user
