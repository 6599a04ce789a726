"""エラーハンドリングモジュール"""

from .ai import (
    NoReasoningAvailableError,
    ProviderError,
    ProviderErrorKind,
    get_user_friendly_message,
)
from .database import (
    StoreError,
    StoreErrorKind,
    classify_database_error,
    get_database_error_message,
)
from .request import InvalidRequestError, PersistenceError, SessionNotFoundError

__all__ = [
    "ProviderError",
    "ProviderErrorKind",
    "NoReasoningAvailableError",
    "get_user_friendly_message",
    "StoreError",
    "StoreErrorKind",
    "classify_database_error",
    "get_database_error_message",
    "InvalidRequestError",
    "SessionNotFoundError",
    "PersistenceError",
]
