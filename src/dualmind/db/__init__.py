"""データ層（データベース抽象化）."""

from .base import StoreProtocol
from .models import ChatSession, Message, MessagePage, MessageRole
from .postgres import PostgreSQLStore
from .sqlite import SQLiteStore

__all__ = [
    "StoreProtocol",
    "SQLiteStore",
    "PostgreSQLStore",
    "ChatSession",
    "Message",
    "MessagePage",
    "MessageRole",
]
