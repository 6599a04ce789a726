"""データベース抽象化レイヤー"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ChatSession, Message, MessagePage


class StoreProtocol(ABC):
    """セッションとメッセージの永続化を抽象化するプロトコル（インターフェース）

    ストアはプロセス起動時に一度だけ initialize() され、終了時に close() される。
    書き込み系の操作は明示的なトランザクション内で実行し、失敗時は StoreError を送出する。
    """

    @abstractmethod
    async def initialize(self) -> None:
        """データベースの初期化（接続とスキーマ作成）"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """データベース接続のクローズ"""
        pass

    @abstractmethod
    async def create_session(self, session: "ChatSession") -> "ChatSession":
        """セッションを作成"""
        pass

    @abstractmethod
    async def get_session(
        self, session_id: str, include_ephemeral: bool = False
    ) -> "ChatSession | None":
        """セッションを読み込み（メッセージは含まない）"""
        pass

    @abstractmethod
    async def list_sessions(self) -> list["ChatSession"]:
        """一時セッション以外を更新日時の新しい順に読み込み"""
        pass

    @abstractmethod
    async def append_messages(
        self, session_id: str, messages: list["Message"]
    ) -> None:
        """メッセージを追加し、セッションの updated_at を更新（同一トランザクション）

        Raises:
            StoreError: セッションが存在しない場合（NOT_FOUND）や書き込み失敗時
        """
        pass

    async def append_message(self, session_id: str, message: "Message") -> None:
        """メッセージを1件追加"""
        await self.append_messages(session_id, [message])

    @abstractmethod
    async def list_messages(
        self, session_id: str, page: int, page_size: int
    ) -> "MessagePage":
        """メッセージをページ単位で読み込み（古い順で返す）"""
        pass

    @abstractmethod
    async def rename_session(self, session_id: str, title: str) -> "ChatSession":
        """セッションのタイトルを変更"""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        """セッションを削除（メッセージもカスケード削除）"""
        pass

    @abstractmethod
    async def purge_ephemeral_sessions(self) -> int:
        """削除に失敗して残った一時セッションを一括削除し、件数を返す"""
        pass
