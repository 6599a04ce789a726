"""リクエスト処理の例外."""

from typing import Any


class InvalidRequestError(ValueError):
    """呼び出し側の入力エラー（400相当）.

    上流への呼び出しや永続化を行う前に発生します。
    """

    pass


class SessionNotFoundError(LookupError):
    """参照されたセッションが存在しない（404相当）."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class PersistenceError(Exception):
    """モデルは応答したが、会話の保存に失敗した.

    モデル生成の失敗とは区別して呼び出し側に返します。

    Attributes:
        results: 保存できなかったモデルごとの結果
        kind: 原因となった StoreErrorKind
    """

    def __init__(self, message: str, results: dict[Any, Any], kind: Any = None):
        super().__init__(message)
        self.results = results
        self.kind = kind
