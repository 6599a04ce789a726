"""サービス層."""

from .chat import ChatReply, ChatService
from .comparison import ComparisonService
from .dispatcher import RequestDispatcher, validate
from .session import SessionGateway, derive_session_title

__all__ = [
    "ChatReply",
    "ChatService",
    "ComparisonService",
    "RequestDispatcher",
    "SessionGateway",
    "derive_session_title",
    "validate",
]
