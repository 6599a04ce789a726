"""テスト用フィクスチャ."""

from .factories import MessageFactory, SessionFactory
from .providers import StubAdapter

__all__ = [
    "SessionFactory",
    "MessageFactory",
    "StubAdapter",
]
