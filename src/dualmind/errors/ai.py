"""AI関連の例外（抽象化の徹底）.

上位層（ディスパッチャー・API）が anthropic / openai SDK の例外を知らずに済むよう、
各アダプターで SDK の例外を ProviderError にラッピングします。
"""

from enum import Enum

from ..constants import ProviderConstants


class ProviderErrorKind(str, Enum):
    """プロバイダーエラーの種類."""

    AUTH_MISSING = "auth_missing"  # 認証情報が未設定（通信前に失敗）
    TIMEOUT = "timeout"  # 時間予算を超過
    UPSTREAM_HTTP_ERROR = "upstream_http_error"  # 非2xxのHTTPステータス
    MALFORMED_RESPONSE = "malformed_response"  # 成功応答だが本文が欠落・空
    NETWORK_ERROR = "network_error"  # 接続エラーなど


class ProviderError(Exception):
    """プロバイダー呼び出しの失敗.

    Attributes:
        kind: エラーの種類
        provider: プロバイダー名（例: "claude"）
        status_code: HTTPステータス（UPSTREAM_HTTP_ERROR の場合）
        body: 上流の生レスポンス本文（診断用）
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        """一時的なエラー（ネットワーク・5xx）かどうか."""
        if self.kind == ProviderErrorKind.NETWORK_ERROR:
            return True
        return (
            self.kind == ProviderErrorKind.UPSTREAM_HTTP_ERROR
            and self.status_code is not None
            and self.status_code >= ProviderConstants.RETRYABLE_STATUS_MIN
        )

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"{message} (status={self.status_code})"
        return message


class NoReasoningAvailableError(Exception):
    """推論合成の前提条件エラー.

    ドナー推論モードが要求されたが、推論トレースが得られない場合に発生します。
    """

    pass


def get_user_friendly_message(error: Exception, model: str | None = None) -> str:
    """ユーザー向けのエラーメッセージを取得.

    スタックトレースや認証情報を含めず、モデルごとのスロットに表示できる文言を返す。

    Args:
        error: 発生した例外
        model: モデル識別子（メッセージに含める）

    Returns:
        エラーメッセージ
    """
    name = model or getattr(error, "provider", None) or "The model"

    if isinstance(error, NoReasoningAvailableError):
        return (
            f"Error: {name} could not run because no reasoning was available "
            "from the reasoning model."
        )
    if not isinstance(error, ProviderError):
        return f"Error: {name} failed unexpectedly. Please try again."

    messages = {
        ProviderErrorKind.AUTH_MISSING: (
            f"Error: {name} is not configured (API key missing)."
        ),
        ProviderErrorKind.TIMEOUT: (
            f"Error: {name} did not respond in time. Please try again."
        ),
        ProviderErrorKind.UPSTREAM_HTTP_ERROR: (
            f"Error: {name} API returned an error"
            + (f" ({error.status_code})." if error.status_code else ".")
        ),
        ProviderErrorKind.MALFORMED_RESPONSE: (
            f"Error: {name} returned an empty or invalid response."
        ),
        ProviderErrorKind.NETWORK_ERROR: (
            f"Error: could not reach {name}. Please check the connection and retry."
        ),
    }
    return messages[error.kind]
