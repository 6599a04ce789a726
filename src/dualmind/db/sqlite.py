"""SQLiteデータベース操作"""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite
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
    ephemeral INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    reasoning TEXT,
    model_type TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_updated_at
    ON chat_sessions(updated_at);

CREATE INDEX IF NOT EXISTS idx_messages_session_created
    ON messages(session_id, created_at, seq);
"""


def _to_text(value: datetime) -> str:
    """ソート可能な固定長のISO文字列に変換（マイクロ秒まで）"""
    return value.isoformat(timespec="microseconds")


class SQLiteStore(StoreProtocol):
    """SQLiteデータベース

    接続は initialize() で一度だけ開き、close() で閉じる。
    同一接続上でトランザクションが交錯しないよう、書き込みは asyncio.Lock で直列化する。
    """

    def __init__(self, db_path: Path, busy_timeout: float = 4.0):
        """SQLite ストアの初期化

        Args:
            db_path: データベースファイルのパス
            busy_timeout: 他の接続が書き込みロックを保持している場合の待機上限（秒）。
                呼び出し側のタイムアウトより短くし、ロック待ちが SQLite 側で失敗するようにする
        """
        # パスを絶対パスに解決
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        self.db_path = db_path.resolve()
        self.busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """データベースの初期化（非同期）"""
        if self._conn is not None:
            return

        # データベースファイルの親ディレクトリが存在することを確認
        parent_dir = self.db_path.parent
        try:
            parent_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise StoreError(
                StoreErrorKind.WRITE_FAILURE,
                f"Permission denied when creating database directory: {parent_dir}",
            ) from e

        # ディレクトリの書き込み権限を確認
        if not os.access(parent_dir, os.W_OK):
            raise StoreError(
                StoreErrorKind.WRITE_FAILURE,
                f"Cannot write to database directory: {parent_dir}\n"
                f"Please check directory permissions.",
            )

        try:
            # isolation_level=None: トランザクションは BEGIN/COMMIT で明示的に管理する
            conn = await aiosqlite.connect(
                str(self.db_path), timeout=self.busy_timeout, isolation_level=None
            )
            conn.row_factory = aiosqlite.Row
            # WALモードを有効化（長時間稼働時のファイルロック問題を回避）
            await conn.execute("PRAGMA journal_mode=WAL")
            # 外部キー制約を有効化（メッセージのカスケード削除に必要）
            await conn.execute("PRAGMA foreign_keys=ON")
            await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
            await conn.executescript(SCHEMA)
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e),
                f"Failed to open database file: {self.db_path}\nError: {e}",
            ) from e

        self._conn = conn
        logger.info(f"SQLite store initialized: {self.db_path}")

    async def close(self) -> None:
        """データベース接続を閉じる"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite store closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError(
                StoreErrorKind.WRITE_FAILURE, "SQLite store is not initialized"
            )
        return self._conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """書き込みトランザクション（例外時はロールバック）"""
        conn = self.conn
        async with self._write_lock:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                yield conn
            except BaseException:
                # キャンセルされても BEGIN の後に ROLLBACK が必ず実行されるようにする
                await asyncio.shield(self._rollback(conn))
                raise
            else:
                await conn.execute("COMMIT")

    @staticmethod
    async def _rollback(conn: aiosqlite.Connection) -> None:
        """トランザクションをロールバック

        aiosqlite は接続ごとに1つのスレッドで順番に実行するため、ROLLBACK は
        キャンセル済みの BEGIN よりも後に実行される。BEGIN 自体が失敗していた場合は
        ロールバックするトランザクションが無い。
        """
        try:
            await conn.execute("ROLLBACK")
        except aiosqlite.OperationalError as e:
            if conn.in_transaction:
                raise
            logger.debug(f"No transaction to roll back: {e}")

    async def create_session(self, session: ChatSession) -> ChatSession:
        """セッションを作成"""
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO chat_sessions
                    (id, title, model_type, ephemeral, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        session.id,
                        session.title,
                        session.model_type,
                        1 if session.ephemeral else 0,
                        _to_text(session.created_at),
                        _to_text(session.updated_at),
                    ),
                )
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to create session: {e}"
            ) from e
        return session

    async def get_session(
        self, session_id: str, include_ephemeral: bool = False
    ) -> ChatSession | None:
        """セッションを読み込み"""
        query = """
            SELECT id, title, model_type, ephemeral, created_at, updated_at
            FROM chat_sessions
            WHERE id = ?
        """
        if not include_ephemeral:
            query += " AND ephemeral = 0"
        try:
            async with self.conn.execute(query, (session_id,)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load session: {e}"
            ) from e

        if not row:
            return None
        return self._row_to_session(row)

    async def list_sessions(self) -> list[ChatSession]:
        """全セッションを読み込み（更新日時の新しい順）"""
        try:
            async with self.conn.execute("""
                SELECT id, title, model_type, ephemeral, created_at, updated_at
                FROM chat_sessions
                WHERE ephemeral = 0
                ORDER BY updated_at DESC
            """) as cursor:
                return [self._row_to_session(row) async for row in cursor]
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load sessions: {e}"
            ) from e

    async def append_messages(self, session_id: str, messages: list[Message]) -> None:
        """メッセージを追加し、セッションの updated_at を更新"""
        if not messages:
            return
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    "UPDATE chat_sessions SET updated_at = ? WHERE id = ?",
                    (_to_text(utcnow()), session_id),
                )
                if cursor.rowcount == 0:
                    raise StoreError(
                        StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
                    )
                await conn.executemany(
                    """
                    INSERT INTO messages
                    (id, session_id, role, content, reasoning, model_type, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    [
                        (
                            message.id,
                            session_id,
                            message.role.value,
                            message.content,
                            message.reasoning,
                            message.model_type,
                            _to_text(message.created_at),
                        )
                        for message in messages
                    ],
                )
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to append messages: {e}"
            ) from e

    async def list_messages(
        self, session_id: str, page: int, page_size: int
    ) -> MessagePage:
        """メッセージをページ単位で読み込み

        新しい順に page_size + 1 件取得して続きの有無を判定し、古い順に並べ替えて返す。
        """
        try:
            async with self.conn.execute(
                "SELECT 1 FROM chat_sessions WHERE id = ? AND ephemeral = 0",
                (session_id,),
            ) as cursor:
                if await cursor.fetchone() is None:
                    raise StoreError(
                        StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
                    )

            async with self.conn.execute(
                """
                SELECT id, session_id, role, content, reasoning, model_type, created_at
                FROM messages
                WHERE session_id = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ? OFFSET ?
            """,
                (session_id, page_size + 1, page * page_size),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to load messages: {e}"
            ) from e

        has_more = len(rows) > page_size
        messages = [self._row_to_message(row) for row in rows[:page_size]]
        messages.reverse()
        return MessagePage(messages=messages, has_more=has_more)

    async def rename_session(self, session_id: str, title: str) -> ChatSession:
        """セッションのタイトルを変更"""
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    """
                    UPDATE chat_sessions SET title = ?, updated_at = ?
                    WHERE id = ? AND ephemeral = 0
                """,
                    (title, _to_text(utcnow()), session_id),
                )
                if cursor.rowcount == 0:
                    raise StoreError(
                        StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
                    )
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to rename session: {e}"
            ) from e

        session = await self.get_session(session_id)
        if session is None:
            raise StoreError(
                StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
            )
        return session

    async def delete_session(self, session_id: str) -> None:
        """セッションを削除"""
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM chat_sessions WHERE id = ?", (session_id,)
                )
                if cursor.rowcount == 0:
                    raise StoreError(
                        StoreErrorKind.NOT_FOUND, f"Session not found: {session_id}"
                    )
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to delete session: {e}"
            ) from e

    async def purge_ephemeral_sessions(self) -> int:
        """残っている一時セッションを削除"""
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM chat_sessions WHERE ephemeral = 1"
                )
                return cursor.rowcount
        except aiosqlite.Error as e:
            raise StoreError(
                classify_database_error(e), f"Failed to purge ephemeral sessions: {e}"
            ) from e

    @staticmethod
    def _row_to_session(row: aiosqlite.Row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            title=row["title"],
            model_type=coerce_model_type(row["model_type"]),
            ephemeral=bool(row["ephemeral"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        return Message(
            id=row["id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            reasoning=row["reasoning"],
            model_type=row["model_type"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
