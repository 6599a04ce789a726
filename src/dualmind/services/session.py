"""セッション・メッセージのストアゲートウェイ."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..cache.ttl_cache import ConversationCache
from ..config import Config
from ..constants import SessionConstants
from ..db.base import StoreProtocol
from ..db.models import ChatSession, Message, MessagePage, coerce_model_type
from ..errors.database import StoreError, StoreErrorKind
from ..metrics import store_errors_counter, store_operation_duration

logger = logging.getLogger(__name__)

T = TypeVar("T")


def derive_session_title(prompt: str) -> str:
    """最初のプロンプトからセッションタイトルを作成.

    先頭50文字を使い、それより長い場合は "..." を付ける。
    空のプロンプトの場合はデフォルトタイトル。
    """
    text = prompt.strip()
    if not text:
        return SessionConstants.DEFAULT_TITLE
    limit = SessionConstants.TITLE_MAX_LENGTH
    return text[:limit] + ("..." if len(text) > limit else "")


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StoreError) and error.retryable


class SessionGateway:
    """ストアへのアクセス窓口.

    すべてのストア呼び出しに DB_TIMEOUT_SECONDS のタイムアウトをかけ、
    タイムアウト（ロック競合を含む）は DB_MAX_ATTEMPTS 回までローカルでリトライする。
    読み込みはキャッシュを経由し、書き込み時は該当するキャッシュを破棄する。
    """

    def __init__(
        self,
        store: StoreProtocol,
        cache: ConversationCache,
        config: Config | None = None,
    ):
        """ゲートウェイの初期化.

        Args:
            store: ストア（DIパターン、起動時に initialize 済みであること）
            cache: 会話キャッシュ
            config: 設定インスタンス（依存性注入、必須）

        Raises:
            ValueError: config が None の場合
        """
        if config is None:
            raise ValueError("config parameter is required (DI pattern)")
        self.store = store
        self.cache = cache
        self.config = config

    async def _call(
        self, operation: str, fn: Callable[..., Awaitable[T]], *args
    ) -> T:
        """タイムアウト・リトライ・メトリクス付きでストア操作を実行."""

        @retry(
            stop=stop_after_attempt(self.config.DB_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=0.1, max=1.0),
            # タイムアウト・ロック競合のみリトライ
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async def _call_with_retry() -> T:
            try:
                async with asyncio.timeout(self.config.DB_TIMEOUT_SECONDS):
                    return await fn(*args)
            except TimeoutError as e:
                logger.warning(
                    f"Store operation {operation} timed out after "
                    f"{self.config.DB_TIMEOUT_SECONDS}s"
                )
                raise StoreError(
                    StoreErrorKind.TIMEOUT, f"Store operation {operation} timed out"
                ) from e

        start_time = time.perf_counter()
        try:
            return await _call_with_retry()
        except StoreError as e:
            store_errors_counter.labels(kind=e.kind.value).inc()
            raise
        finally:
            store_operation_duration.labels(operation=operation).observe(
                time.perf_counter() - start_time
            )

    async def create_session(
        self,
        model_type: str | None,
        title: str | None = None,
        *,
        ephemeral: bool = False,
    ) -> ChatSession:
        """セッションを作成.

        Args:
            model_type: セッションのモデル種別（不明な値は claude 扱い）
            title: タイトル（省略時は "New Chat"）
            ephemeral: 一時セッションとして作成するか

        Returns:
            作成したセッション
        """
        session = ChatSession(
            title=title or SessionConstants.DEFAULT_TITLE,
            model_type=coerce_model_type(model_type),
            ephemeral=ephemeral,
        )
        if ephemeral:
            session.title = f"{SessionConstants.EPHEMERAL_TITLE_PREFIX}{session.title}"
        created = await self._call(
            "create_session", self.store.create_session, session
        )
        if not ephemeral:
            await self.cache.prepend_session(created)
            self.cache.set_session(created.id, created)
        return created

    async def get_session(self, session_id: str) -> ChatSession | None:
        """セッションを取得（一時セッションは見えない）."""
        cached = self.cache.get_session(session_id)
        if cached is not None:
            return cached
        generation = self.cache.generation()
        session = await self._call("get_session", self.store.get_session, session_id)
        if session is not None:
            self.cache.set_session(session_id, session, generation=generation)
        return session

    async def list_sessions(self) -> list[ChatSession]:
        """セッション一覧を取得（更新日時の新しい順）."""
        cached = self.cache.get_sessions()
        if cached is not None:
            return list(cached)
        generation = self.cache.generation()
        sessions = await self._call("list_sessions", self.store.list_sessions)
        self.cache.set_sessions(sessions, generation=generation)
        return list(sessions)

    async def append_messages(self, session_id: str, messages: list[Message]) -> None:
        """メッセージを1トランザクションで追加."""
        try:
            await self._call(
                "append_messages", self.store.append_messages, session_id, messages
            )
        finally:
            self.cache.invalidate_session(session_id)

    async def list_messages(
        self, session_id: str, page: int = 0, page_size: int | None = None
    ) -> MessagePage:
        """メッセージをページ単位で取得（ページ0が最新）."""
        page_size = page_size or self.config.MESSAGE_PAGE_SIZE
        cached = self.cache.get_messages(session_id, page, page_size)
        if cached is not None:
            return cached
        # 問い合わせ中に書き込みがあった場合、古いページはキャッシュしない
        generation = self.cache.generation()
        result = await self._call(
            "list_messages", self.store.list_messages, session_id, page, page_size
        )
        self.cache.set_messages(
            session_id, page, page_size, result, generation=generation
        )
        return result

    async def rename_session(self, session_id: str, title: str) -> ChatSession:
        """セッションのタイトルを変更."""
        try:
            session = await self._call(
                "rename_session", self.store.rename_session, session_id, title
            )
        finally:
            self.cache.invalidate_session(session_id)
        self.cache.set_session(session_id, session)
        return session

    async def delete_session(self, session_id: str) -> None:
        """セッションを削除（メッセージも削除される）."""
        try:
            await self._call("delete_session", self.store.delete_session, session_id)
        finally:
            self.cache.invalidate_session(session_id)

    async def discard_ephemeral_session(self, session_id: str) -> None:
        """一時セッションを削除.

        削除の失敗はログに記録するのみで、呼び出し側には伝えない。
        残ったセッションは読み込み系の操作から見えず、次回起動時に purge される。
        """
        try:
            await self._call("delete_session", self.store.delete_session, session_id)
        except Exception as e:
            logger.warning(
                f"Failed to delete ephemeral session {session_id}: {e}", exc_info=True
            )
        finally:
            self.cache.invalidate_session(session_id)

    async def purge_ephemeral_sessions(self) -> int:
        """削除に失敗して残った一時セッションを一括削除."""
        count = await self._call(
            "purge_ephemeral_sessions", self.store.purge_ephemeral_sessions
        )
        if count:
            logger.info(f"Purged {count} leftover ephemeral sessions")
        return count

    def clear_cache(self) -> None:
        """キャッシュをすべて破棄."""
        self.cache.clear()
