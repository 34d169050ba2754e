"""
Database models for the support chatbot.
"""

from .user import User
from .chat import ChatSession, Message, TurnSender
from .security import SecurityThreat
from .memory import UserMemory

__all__ = [
    "User",
    "ChatSession",
    "Message",
    "TurnSender",
    "SecurityThreat",
    "UserMemory",
]
