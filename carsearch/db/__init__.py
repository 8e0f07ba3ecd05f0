# carsearch/db/__init__.py
from .base_class import Base
from .session import init_db, close_db, async_session_factory
from .models import Car, Chat, ConversationIntentRecord, Message
from .repositories.chat_repository import ChatRepository

__all__ = [
    'Base',
    'init_db',
    'close_db',
    'async_session_factory',
    'Car',
    'Chat',
    'ConversationIntentRecord',
    'Message',
    'ChatRepository'
]
