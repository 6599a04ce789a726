"""有効期限付きのインメモリキャッシュ"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..constants import CacheConstants
from ..metrics import cache_lookups_counter


@dataclass
class CacheEntry:
    """キャッシュエントリ

    Attributes:
        timestamp: 書き込み時刻（clock の値）
        data: キャッシュされた値
    """

    timestamp: float
    data: Any


class TTLCache:
    """有効期限付きのキー・値キャッシュ

    期限切れのエントリは読み込み時に削除される（遅延削除）。
    書き込みは常に timestamp を更新する。
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # update 中（待機を含む）の呼び出し数。0 になったロックは破棄する
        self._lock_users: dict[str, int] = {}

    def get(self, key: str) -> Any | None:
        """値を取得（期限切れまたは未登録なら None）"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        self._evict_expired(now)
        self._entries[key] = CacheEntry(timestamp=now, data=value)

    def _evict_expired(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.timestamp > self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def update(
        self, key: str, fn: Callable[[Any | None], Awaitable[Any] | Any]
    ) -> Any:
        """キーごとに直列化された読み込み・変更・書き込み

        同じキーへの並行した update は順番に実行され、更新が失われない。

        Args:
            key: キャッシュキー
            fn: 現在の値（未登録なら None）を受け取り新しい値を返す関数（async も可）。
                None を返した場合はエントリを削除する

        Returns:
            書き込んだ値
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                value = fn(self.get(key))
                if inspect.isawaitable(value):
                    value = await value
                if value is None:
                    self.invalidate(key)
                else:
                    self.set(key, value)
                return value
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]


class ConversationCache:
    """セッション一覧・セッション・メッセージページ用のキャッシュ

    書き込み（破棄）のたびに世代番号を進める。読み込み側はストアへの問い合わせ前に
    generation() を取得して set_* に渡し、その間に書き込みがあった場合は古い値を保存しない。
    """

    def __init__(self, cache: TTLCache):
        self.cache = cache
        self._generation = 0

    def generation(self) -> int:
        return self._generation

    def _set(self, key: str, value: Any, generation: int | None) -> bool:
        if generation is not None and generation != self._generation:
            return False
        self.cache.set(key, value)
        return True

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{CacheConstants.SESSION_KEY_PREFIX}{session_id}"

    @staticmethod
    def _messages_prefix(session_id: str) -> str:
        return f"{CacheConstants.MESSAGES_KEY_PREFIX}{session_id}_"

    def _messages_key(self, session_id: str, page: int, page_size: int) -> str:
        return f"{self._messages_prefix(session_id)}{page}_{page_size}"

    def _lookup(self, key: str) -> Any | None:
        value = self.cache.get(key)
        cache_lookups_counter.labels(result="miss" if value is None else "hit").inc()
        return value

    def get_sessions(self) -> Any | None:
        return self._lookup(CacheConstants.SESSIONS_KEY)

    def set_sessions(self, sessions: Any, generation: int | None = None) -> bool:
        return self._set(CacheConstants.SESSIONS_KEY, sessions, generation)

    def get_session(self, session_id: str) -> Any | None:
        return self._lookup(self._session_key(session_id))

    def set_session(
        self, session_id: str, session: Any, generation: int | None = None
    ) -> bool:
        return self._set(self._session_key(session_id), session, generation)

    def get_messages(self, session_id: str, page: int, page_size: int) -> Any | None:
        return self._lookup(self._messages_key(session_id, page, page_size))

    def set_messages(
        self,
        session_id: str,
        page: int,
        page_size: int,
        messages: Any,
        generation: int | None = None,
    ) -> bool:
        return self._set(
            self._messages_key(session_id, page, page_size), messages, generation
        )

    async def prepend_session(self, session: Any) -> None:
        """キャッシュ済みのセッション一覧の先頭に追加（未キャッシュなら何もしない）"""
        self._generation += 1
        await self.cache.update(
            CacheConstants.SESSIONS_KEY,
            lambda sessions: [session, *sessions] if sessions is not None else None,
        )

    def invalidate_sessions(self) -> None:
        """セッション一覧のキャッシュを破棄"""
        self._generation += 1
        self.cache.invalidate(CacheConstants.SESSIONS_KEY)

    def invalidate_session(self, session_id: str) -> None:
        """セッションとそのメッセージのキャッシュを破棄（一覧も含む）"""
        self._generation += 1
        self.cache.invalidate(self._session_key(session_id))
        self.cache.invalidate_prefix(self._messages_prefix(session_id))
        self.invalidate_sessions()

    def clear(self) -> None:
        """すべてのキャッシュを破棄"""
        self._generation += 1
        self.cache.clear()
