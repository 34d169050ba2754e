from .chat import ChatRepository
from .memory import MemoryRepository
from .security import SecurityThreatRepository
from .user import UserRepository

__all__ = [
    "ChatRepository",
    "MemoryRepository",
    "SecurityThreatRepository",
    "UserRepository",
]
