"""データベースエラーの分類.

PostgreSQL（asyncpg）と SQLite（aiosqlite）の例外を StoreErrorKind に分類します。
"""

import logging
from enum import Enum

import aiosqlite
import asyncpg

logger = logging.getLogger(__name__)


class StoreErrorKind(str, Enum):
    """永続化層エラーのタイプ."""

    TIMEOUT = "timeout"  # タイムアウト・ロック競合（ローカルでリトライ可能）
    NOT_FOUND = "not_found"  # 対象のセッションが存在しない
    WRITE_FAILURE = "write_failure"  # その他の読み書き失敗


class StoreError(Exception):
    """永続化層のエラー.

    Attributes:
        kind: エラーのタイプ
    """

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        """ローカルでリトライ可能かどうか."""
        return self.kind == StoreErrorKind.TIMEOUT


def classify_database_error(error: Exception) -> StoreErrorKind:
    """データベースエラーを分類.

    Args:
        error: データベースエラー

    Returns:
        エラータイプ
    """
    if isinstance(error, StoreError):
        return error.kind
    if isinstance(error, TimeoutError):
        return StoreErrorKind.TIMEOUT

    # PostgreSQL（asyncpg）のエラーをチェック
    if isinstance(error, asyncpg.exceptions.ForeignKeyViolationError):
        return StoreErrorKind.NOT_FOUND
    if isinstance(
        error,
        (
            asyncpg.exceptions.DeadlockDetectedError,
            asyncpg.exceptions.LockNotAvailableError,
            asyncpg.exceptions.QueryCanceledError,
        ),
    ):
        return StoreErrorKind.TIMEOUT
    if isinstance(error, asyncpg.exceptions.PostgresError):
        error_msg = str(error).lower()
        if "lock" in error_msg or "deadlock" in error_msg or "timeout" in error_msg:
            return StoreErrorKind.TIMEOUT
        return StoreErrorKind.WRITE_FAILURE

    # SQLite のエラーをチェック
    if isinstance(error, aiosqlite.OperationalError):
        error_msg = str(error).lower()
        if "locked" in error_msg or "busy" in error_msg:
            return StoreErrorKind.TIMEOUT
        return StoreErrorKind.WRITE_FAILURE
    if isinstance(error, aiosqlite.IntegrityError):
        if "foreign key" in str(error).lower():
            return StoreErrorKind.NOT_FOUND
        return StoreErrorKind.WRITE_FAILURE

    return StoreErrorKind.WRITE_FAILURE


def get_database_error_message(error_type: StoreErrorKind) -> str:
    """ユーザーフレンドリーなデータベースエラーメッセージを取得.

    Args:
        error_type: エラータイプ

    Returns:
        エラーメッセージ
    """
    messages = {
        StoreErrorKind.TIMEOUT: (
            "The database is busy right now. Please wait a moment and try again."
        ),
        StoreErrorKind.NOT_FOUND: "The requested chat session does not exist.",
        StoreErrorKind.WRITE_FAILURE: (
            "The conversation could not be saved. Please try again."
        ),
    }

    return messages.get(error_type, messages[StoreErrorKind.WRITE_FAILURE])
