"""PostgreSQL データベース実装"""

import asyncpg
import structlog

from ..errors.database import StoreError, StoreErrorKind, classify_database_error
from .base import StoreProtocol
from .models import (
    ChatSession,
    Message,
    MessagePage,
    MessageRole,
    coerce_model_type,
    utcnow,
)

logger = structlog.get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_sessions (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    model_type TEXT NOT NULL,
    ephemeral BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    seq BIGSERIAL PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    reasoning TEXT,
    model_type TEXT,
    created_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_updated_at
    ON chat_sessions(updated_at);

CREATE INDEX IF NOT EXISTS idx_messages_session_created
    ON messages(session_id, created_at, seq);
"""


def _affected_rows(status: str) -> int:
    """asyncpg のコマンドステータス（例: "DELETE 3"）から件数を取り出す"""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


class PostgreSQLStore(StoreProtocol):
    """PostgreSQL データベース（非同期）

    プロセス全体で1つの接続プールを共有し、各操作はプールから接続を借りて実行する。
    """

    def __init__(
        self,
        connection_string: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 5.0,
    ):
        """PostgreSQL データベースの初期化

        Args:
            connection_string: 接続文字列（postgresql://...）
            min_size: プールの最小接続数
            max_size: プールの最大接続数
            command_timeout: 1クエリあたりのタイムアウト（秒）
        """
        if not connection_string:
            raise ValueError("connection_string must be provided")
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        """データベースの初期化（プール作成とスキーマ作成）"""
        if self.pool is not None:
            return

        logger.info(
            f"Creating database connection pool "
            f"(min={self.min_size}, max={self.max_size})..."
        )
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except (asyncpg.PostgresError, OSError) as e:
            raise StoreError(
                classify_database_error(e), f"Failed to initialize database: {e}"
            ) from e
        logger.info("Database connection pool created successfully")

    async def close(self) -> None:
        """データベース接続のクローズ

        asyncpgのpool.close()は、すべての接続が確実にクローズされるまで待機します。
        """
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise StoreError(
                StoreErrorKind.WRITE_FAILURE, "PostgreSQL store is not initialized"
            )
        return self.pool

    async def create_session(self, session: ChatSession) -> ChatSession:
        """セッションを作成"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        INSERT INTO chat_sessions
                        (id, title, model_type, ephemeral, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5, $6)
                    """,
                        session.id,
                        session.title,
                        session.model_type,
                        session.ephemeral,
                        session.created_at,
                        session.updated_at,
                    )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to create session: {e}"
            ) from e
        return session

    async def get_session(
        self, session_id: str, include_ephemeral: bool = False
    ) -> ChatSession | None:
        """セッションを読み込み"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, title, model_type, ephemeral, created_at, updated_at
                    FROM chat_sessions
                    WHERE id = $1 AND ($2 OR NOT ephemeral)
                """,
                    session_id,
                    include_ephemeral,
                )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load session: {e}"
            ) from e

        if not row:
            return None
        return self._row_to_session(row)

    async def list_sessions(self) -> list[ChatSession]:
        """全セッションを読み込み（更新日時の新しい順）"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT id, title, model_type, ephemeral, created_at, updated_at
                    FROM chat_sessions
                    WHERE NOT ephemeral
                    ORDER BY updated_at DESC
                """)
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load sessions: {e}"
            ) from e
        return [self._row_to_session(row) for row in rows]

    async def append_messages(self, session_id: str, messages: list[Message]) -> None:
        """メッセージを追加し、セッションの updated_at を更新（トランザクション付き）"""
        if not messages:
            return
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(
                        "UPDATE chat_sessions SET updated_at = $1 WHERE id = $2",
                        utcnow(),
                        session_id,
                    )
                    if _affected_rows(status) == 0:
                        raise StoreError(
                            StoreErrorKind.NOT_FOUND,
                            f"Session not found: {session_id}",
                        )
                    await conn.executemany(
                        """
                        INSERT INTO messages
                        (id, session_id, role, content, reasoning, model_type,
                         created_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                        [
                            (
                                message.id,
                                session_id,
                                message.role.value,
                                message.content,
                                message.reasoning,
                                message.model_type,
                                message.created_at,
                            )
                            for message in messages
                        ],
                    )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to append messages: {e}"
            ) from e

    async def list_messages(
        self, session_id: str, page: int, page_size: int
    ) -> MessagePage:
        """メッセージをページ単位で読み込み（古い順で返す）"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                exists = await conn.fetchval(
                    "SELECT 1 FROM chat_sessions WHERE id = $1 AND NOT ephemeral",
                    session_id,
                )
                if exists is None:
                    raise StoreError(
                        StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
                    )
                rows = await conn.fetch(
                    """
                    SELECT id, session_id, role, content, reasoning, model_type,
                           created_at
                    FROM messages
                    WHERE session_id = $1
                    ORDER BY created_at DESC, seq DESC
                    LIMIT $2 OFFSET $3
                """,
                    session_id,
                    page_size + 1,
                    page * page_size,
                )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load messages: {e}"
            ) from e

        has_more = len(rows) > page_size
        messages = [self._row_to_message(row) for row in rows[:page_size]]
        messages.reverse()
        return MessagePage(messages=messages, has_more=has_more)

    async def rename_session(self, session_id: str, title: str) -> ChatSession:
        """セッションのタイトルを変更"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE chat_sessions SET title = $1, updated_at = $2
                    WHERE id = $3 AND NOT ephemeral
                    RETURNING id, title, model_type, ephemeral, created_at, updated_at
                """,
                    title,
                    utcnow(),
                    session_id,
                )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to rename session: {e}"
            ) from e

        if row is None:
            raise StoreError(
                StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
            )
        return self._row_to_session(row)

    async def delete_session(self, session_id: str) -> None:
        """セッションを削除（メッセージは ON DELETE CASCADE で削除される）"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM chat_sessions WHERE id = $1", session_id
                )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to delete session: {e}"
            ) from e

        if _affected_rows(status) == 0:
            raise StoreError(
                StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
            )

    async def purge_ephemeral_sessions(self) -> int:
        """残っている一時セッションを削除"""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM chat_sessions WHERE ephemeral"
                )
        except asyncpg.PostgresError as e:
            raise StoreError(
                classify_database_error(e), f"Failed to purge ephemeral sessions: {e}"
            ) from e
        return _affected_rows(status)

    @staticmethod
    def _row_to_session(row: asyncpg.Record) -> ChatSession:
        return ChatSession(
            id=row["id"],
            title=row["title"],
            model_type=coerce_model_type(row["model_type"]),
            ephemeral=row["ephemeral"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_message(row: asyncpg.Record) -> Message:
        return Message(
            id=row["id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            reasoning=row["reasoning"],
            model_type=row["model_type"],
            created_at=row["created_at"],
        )
