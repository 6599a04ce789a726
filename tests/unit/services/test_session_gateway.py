"""SessionGateway のテスト"""

import asyncio
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from dualmind.constants import SessionConstants
from dualmind.errors.database import StoreError, StoreErrorKind
from dualmind.services.session import SessionGateway, derive_session_title
from tests.fixtures import MessageFactory, SessionFactory


class TestDeriveSessionTitle:
    """derive_session_title のテスト"""

    def test_short_prompt(self):
        """50文字以下はそのまま"""
        assert derive_session_title("How many widgets?") == "How many widgets?"

    def test_long_prompt_is_truncated(self):
        """50文字を超える場合は先頭50文字 + ..."""
        prompt = "a" * 60

        assert derive_session_title(prompt) == "a" * 50 + "..."

    def test_exactly_limit(self):
        """ちょうど50文字なら ... を付けない"""
        assert derive_session_title("b" * 50) == "b" * 50

    def test_empty_prompt(self):
        """空のプロンプトはデフォルトタイトル"""
        assert derive_session_title("   ") == SessionConstants.DEFAULT_TITLE


@pytest.fixture
def mock_store():
    """モックストア"""
    store = AsyncMock()
    store.get_session.return_value = None
    return store


@pytest.fixture
def mock_gateway(mock_store, conversation_cache, config):
    config.DB_TIMEOUT_SECONDS = 0.05
    return SessionGateway(mock_store, conversation_cache, config=config)


def test_config_is_required(store, conversation_cache):
    """config は必須（DIパターン）"""
    with pytest.raises(ValueError):
        SessionGateway(store, conversation_cache)


async def test_create_session_defaults(gateway):
    """タイトル未指定は New Chat、未知のモデル種別は claude"""
    session = await gateway.create_session("unknown-model")

    assert session.title == "New Chat"
    assert session.model_type == "claude"
    assert session.ephemeral is False


async def test_created_session_appears_in_cached_list(gateway):
    """作成したセッションはキャッシュ済みの一覧の先頭に入る"""
    first = await gateway.create_session("claude", "first")
    assert [s.id for s in await gateway.list_sessions()] == [first.id]

    second = await gateway.create_session("deepseek", "second")

    assert [s.id for s in await gateway.list_sessions()] == [second.id, first.id]


async def test_ephemeral_session_is_hidden(gateway):
    """一時セッションはタイトルに印が付き、一覧や取得から見えない"""
    session = await gateway.create_session("claude", "temp", ephemeral=True)

    assert session.title == "[ephemeral] temp"
    assert await gateway.get_session(session.id) is None
    assert await gateway.list_sessions() == []


async def test_get_session_is_cached(mock_gateway, mock_store):
    """取得したセッションはキャッシュから返る"""
    session = SessionFactory.build()
    mock_store.get_session.return_value = session

    assert await mock_gateway.get_session(session.id) is session
    assert await mock_gateway.get_session(session.id) is session
    assert mock_store.get_session.await_count == 1


async def test_list_messages_uses_configured_page_size(
    mock_gateway, mock_store, config
):
    """page_size 未指定なら設定値を使い、結果をキャッシュする"""
    mock_store.list_messages.return_value = "page"

    assert await mock_gateway.list_messages("s1") == "page"
    assert await mock_gateway.list_messages("s1") == "page"

    mock_store.list_messages.assert_awaited_once_with(
        "s1", 0, config.MESSAGE_PAGE_SIZE
    )


async def test_append_invalidates_message_pages(gateway):
    """メッセージの追加でページのキャッシュが破棄される"""
    session = await gateway.create_session("claude", "chat")
    assert (await gateway.list_messages(session.id)).messages == []

    await gateway.append_messages(
        session.id, [MessageFactory.create_user_message(session.id, "hi")]
    )

    page = await gateway.list_messages(session.id)
    assert [m.content for m in page.messages] == ["hi"]


async def test_append_moves_session_to_top(gateway):
    """メッセージを追加したセッションが一覧の先頭になる"""
    older = await gateway.create_session("claude", "older")
    await gateway.create_session("claude", "newer")

    await gateway.append_messages(
        older.id, [MessageFactory.create_user_message(older.id)]
    )

    assert (await gateway.list_sessions())[0].id == older.id


async def test_rename_session_refreshes_cache(gateway):
    """タイトル変更後の取得・一覧は新しいタイトル"""
    session = await gateway.create_session("claude", "before")
    await gateway.list_sessions()

    await gateway.rename_session(session.id, "after")

    assert (await gateway.get_session(session.id)).title == "after"
    assert (await gateway.list_sessions())[0].title == "after"


async def test_delete_session(gateway):
    """削除したセッションは取得できず、メッセージ取得は NOT_FOUND"""
    session = await gateway.create_session("claude", "doomed")
    await gateway.list_messages(session.id)

    await gateway.delete_session(session.id)

    assert await gateway.get_session(session.id) is None
    with pytest.raises(StoreError) as exc_info:
        await gateway.list_messages(session.id)
    assert exc_info.value.kind == StoreErrorKind.NOT_FOUND


def slow_reader(read):
    """読み込み結果を取得した後、release されるまで返さないラッパー"""
    started = asyncio.Event()
    release = asyncio.Event()

    async def wrapper(*args):
        result = await read(*args)
        started.set()
        await release.wait()
        return result

    return wrapper, started, release


async def test_slow_page_read_does_not_cache_stale_page(gateway, store):
    """読み込み中にメッセージが追加された場合、古いページはキャッシュされない"""
    session = await gateway.create_session("claude", "chat")
    wrapper, started, release = slow_reader(store.list_messages)

    with patch.object(store, "list_messages", wrapper):
        reader = asyncio.create_task(gateway.list_messages(session.id))
        await started.wait()
        await gateway.append_messages(
            session.id, [MessageFactory.create_user_message(session.id, "hi")]
        )
        release.set()
        assert (await reader).messages == []

    page = await gateway.list_messages(session.id)
    assert [m.content for m in page.messages] == ["hi"]


async def test_slow_session_list_does_not_cache_stale_list(gateway, store):
    """一覧の読み込み中にタイトルが変更された場合、古い一覧はキャッシュされない"""
    session = await gateway.create_session("claude", "before")
    wrapper, started, release = slow_reader(store.list_sessions)

    with patch.object(store, "list_sessions", wrapper):
        reader = asyncio.create_task(gateway.list_sessions())
        await started.wait()
        await gateway.rename_session(session.id, "after")
        release.set()
        await reader

    assert [s.title for s in await gateway.list_sessions()] == ["after"]


async def test_slow_session_list_sees_created_session(gateway, store):
    """一覧の読み込み中に作成されたセッションが後続の一覧から欠けない"""
    wrapper, started, release = slow_reader(store.list_sessions)

    with patch.object(store, "list_sessions", wrapper):
        reader = asyncio.create_task(gateway.list_sessions())
        await started.wait()
        created = await gateway.create_session("claude", "new")
        release.set()
        assert await reader == []

    assert [s.id for s in await gateway.list_sessions()] == [created.id]


async def test_lock_timeout_does_not_block_later_writes(gateway, store, temp_db_path):
    """別の接続が書き込みロックを保持していても、解放後の書き込みは成功する"""
    session = await gateway.create_session("claude", "chat")
    blocker = sqlite3.connect(temp_db_path, isolation_level=None)
    blocker.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(StoreError) as exc_info:
            await gateway.append_messages(
                session.id, [MessageFactory.create_user_message(session.id, "lost")]
            )
    finally:
        blocker.execute("COMMIT")
        blocker.close()

    assert exc_info.value.kind == StoreErrorKind.TIMEOUT
    assert store.conn.in_transaction is False

    await gateway.append_messages(
        session.id, [MessageFactory.create_user_message(session.id, "hi")]
    )
    page = await gateway.list_messages(session.id)
    assert [m.content for m in page.messages] == ["hi"]


async def test_timeout_is_retried(mock_gateway, mock_store):
    """タイムアウトは1回リトライされる"""
    session = SessionFactory.build()
    calls = 0

    async def slow_then_fast(*args):
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(1.0)
        return session

    mock_store.get_session.side_effect = slow_then_fast

    assert await mock_gateway.get_session(session.id) is session
    assert calls == 2


async def test_timeout_exhausts_attempts(mock_gateway, mock_store, config):
    """タイムアウトが続く場合は StoreError(TIMEOUT)"""

    async def slow(*args):
        await asyncio.sleep(1.0)

    mock_store.list_sessions.side_effect = slow

    with pytest.raises(StoreError) as exc_info:
        await mock_gateway.list_sessions()

    assert exc_info.value.kind == StoreErrorKind.TIMEOUT
    assert mock_store.list_sessions.await_count == config.DB_MAX_ATTEMPTS


async def test_not_found_is_not_retried(mock_gateway, mock_store):
    """NOT_FOUND はリトライしない"""
    mock_store.delete_session.side_effect = StoreError(
        StoreErrorKind.NOT_FOUND, "missing"
    )

    with pytest.raises(StoreError):
        await mock_gateway.delete_session("missing")

    assert mock_store.delete_session.await_count == 1


async def test_discard_ephemeral_session_never_raises(mock_gateway, mock_store):
    """一時セッションの削除失敗は呼び出し側に伝わらない"""
    mock_store.delete_session.side_effect = StoreError(
        StoreErrorKind.WRITE_FAILURE, "disk full"
    )

    await mock_gateway.discard_ephemeral_session("ephemeral-id")

    mock_store.delete_session.assert_awaited_once_with("ephemeral-id")


async def test_purge_ephemeral_sessions(gateway, store):
    """残った一時セッションを一括削除"""
    await gateway.create_session("claude", "a", ephemeral=True)
    await gateway.create_session("claude", "b", ephemeral=True)
    kept = await gateway.create_session("claude", "kept")

    assert await gateway.purge_ephemeral_sessions() == 2
    assert await store.get_session(kept.id) is not None
