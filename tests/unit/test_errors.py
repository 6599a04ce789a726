"""エラーハンドリングのテスト"""

import aiosqlite
import asyncpg
import pytest

from dualmind.errors.ai import (
    NoReasoningAvailableError,
    ProviderError,
    ProviderErrorKind,
    get_user_friendly_message,
)
from dualmind.errors.database import (
    StoreError,
    StoreErrorKind,
    classify_database_error,
    get_database_error_message,
)


class TestProviderError:
    """ProviderError のテスト"""

    @pytest.mark.parametrize(
        ("kind", "status_code", "retryable"),
        [
            (ProviderErrorKind.NETWORK_ERROR, None, True),
            (ProviderErrorKind.UPSTREAM_HTTP_ERROR, 500, True),
            (ProviderErrorKind.UPSTREAM_HTTP_ERROR, 503, True),
            (ProviderErrorKind.UPSTREAM_HTTP_ERROR, 429, False),
            (ProviderErrorKind.UPSTREAM_HTTP_ERROR, 400, False),
            (ProviderErrorKind.MALFORMED_RESPONSE, None, False),
            (ProviderErrorKind.TIMEOUT, None, False),
            (ProviderErrorKind.AUTH_MISSING, None, False),
        ],
    )
    def test_retryable(self, kind, status_code, retryable):
        """ネットワークエラーと5xxのみリトライ可能"""
        error = ProviderError(kind, "message", status_code=status_code)

        assert error.retryable is retryable

    def test_str_includes_status(self):
        """文字列表現にステータスを含める"""
        error = ProviderError(
            ProviderErrorKind.UPSTREAM_HTTP_ERROR, "API error", status_code=502
        )

        assert str(error) == "API error (status=502)"


class TestUserFriendlyMessage:
    """get_user_friendly_message のテスト"""

    @pytest.mark.parametrize("kind", list(ProviderErrorKind))
    def test_every_kind_has_message(self, kind):
        """すべての種類にモデル名入りのメッセージがある"""
        message = get_user_friendly_message(
            ProviderError(kind, "internal detail"), model="deepseek"
        )

        assert message.startswith("Error:")
        assert "deepseek" in message
        assert "internal detail" not in message

    def test_status_code_in_message(self):
        """HTTP ステータスを含める"""
        message = get_user_friendly_message(
            ProviderError(
                ProviderErrorKind.UPSTREAM_HTTP_ERROR, "x", status_code=503
            ),
            model="claude",
        )

        assert "(503)" in message

    def test_no_reasoning(self):
        """推論が無い場合のメッセージ"""
        message = get_user_friendly_message(
            NoReasoningAvailableError("none"), model="claude_reasoning"
        )

        assert "no reasoning" in message

    def test_unexpected_error(self):
        """想定外の例外は詳細を含めない"""
        message = get_user_friendly_message(RuntimeError("stack trace"))

        assert "stack trace" not in message


class TestClassifyDatabaseError:
    """classify_database_error のテスト"""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (TimeoutError(), StoreErrorKind.TIMEOUT),
            (aiosqlite.OperationalError("database is locked"), StoreErrorKind.TIMEOUT),
            (aiosqlite.OperationalError("no such table"), StoreErrorKind.WRITE_FAILURE),
            (
                aiosqlite.IntegrityError("FOREIGN KEY constraint failed"),
                StoreErrorKind.NOT_FOUND,
            ),
            (
                aiosqlite.IntegrityError("UNIQUE constraint failed"),
                StoreErrorKind.WRITE_FAILURE,
            ),
            (
                asyncpg.exceptions.ForeignKeyViolationError("fk"),
                StoreErrorKind.NOT_FOUND,
            ),
            (
                asyncpg.exceptions.LockNotAvailableError("lock"),
                StoreErrorKind.TIMEOUT,
            ),
            (
                asyncpg.exceptions.QueryCanceledError("canceled"),
                StoreErrorKind.TIMEOUT,
            ),
            (StoreError(StoreErrorKind.NOT_FOUND, "x"), StoreErrorKind.NOT_FOUND),
            (ValueError("other"), StoreErrorKind.WRITE_FAILURE),
        ],
    )
    def test_classify(self, error, expected):
        """例外をエラータイプに分類"""
        assert classify_database_error(error) == expected

    @pytest.mark.parametrize("kind", list(StoreErrorKind))
    def test_every_kind_has_message(self, kind):
        """すべてのエラータイプにメッセージがある"""
        assert get_database_error_message(kind)

    def test_only_timeout_is_retryable(self):
        """ローカルでリトライ可能なのは TIMEOUT のみ"""
        assert StoreError(StoreErrorKind.TIMEOUT, "x").retryable is True
        assert StoreError(StoreErrorKind.NOT_FOUND, "x").retryable is False
        assert StoreError(StoreErrorKind.WRITE_FAILURE, "x").retryable is False
