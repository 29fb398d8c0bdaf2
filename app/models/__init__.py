"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from app.models.chat_session import ChatSession

All models are imported here so Alembic can detect them during migration
autogenerate. This module is imported by alembic/env.py.
"""

from app.models.chat_message import ChatMessage
from app.models.chat_session import ChatSession
from app.models.counselor import Counselor
from app.models.user import User

__all__ = [
    "User",
    "Counselor",
    "ChatSession",
    "ChatMessage",
]
