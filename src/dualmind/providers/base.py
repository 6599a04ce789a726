"""プロバイダーアダプターの抽象クラスと正規化された結果型."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from ..errors.ai import ProviderErrorKind


class ModelIdentifier(str, Enum):
    """呼び出すアダプターを選択するモデル識別子."""

    CLAUDE = "claude"
    DEEPSEEK = "deepseek"
    CLAUDE_REASONING = "claude_reasoning"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """既知の識別子かどうか."""
        try:
            cls(value)
        except ValueError:
            return False
        return True


@dataclass(frozen=True, kw_only=True)
class ModelResult:
    """プロバイダー差異を吸収した正規化済みの応答.

    Attributes:
        content: ユーザー向けの回答テキスト
        reasoning: 推論トレース（モデル自身のもの、または合成時のドナー推論）
    """

    content: str
    reasoning: str | None = None

    @property
    def is_error(self) -> bool:
        return False

    def to_dict(self) -> dict:
        """辞書形式に変換."""
        return {"content": self.content, "reasoning": self.reasoning}


@dataclass(frozen=True, kw_only=True)
class ErrorDescriptor:
    """失敗したモデルのスロットに置くプレースホルダー.

    content にはユーザー向けのエラーメッセージが入り、通常の結果と同様に保存・返却される。
    """

    kind: str
    message: str

    @property
    def content(self) -> str:
        return self.message

    @property
    def reasoning(self) -> None:
        return None

    @property
    def is_error(self) -> bool:
        return True

    @property
    def is_timeout(self) -> bool:
        return self.kind == ProviderErrorKind.TIMEOUT.value

    def to_dict(self) -> dict:
        """辞書形式に変換."""
        return {"content": self.message, "reasoning": None, "error": self.kind}


class ProviderAdapter(ABC):
    """上流モデル1種類ごとのアダプター.

    上流固有のJSON形式を ModelResult に変換し、タイムアウト・リトライ方針を所有する。
    共有状態は変更しない。
    """

    name: str

    @abstractmethod
    async def invoke(self, prompt: str) -> ModelResult:
        """プロンプトを送信して正規化済みの結果を返す.

        Args:
            prompt: ユーザープロンプト

        Returns:
            正規化済みの結果

        Raises:
            ProviderError: 認証情報未設定・タイムアウト・HTTPエラー・不正な応答・通信エラー
        """
        pass

    async def aclose(self) -> None:
        """保持しているHTTPクライアントを閉じる."""
        pass
