"""pytest フィクスチャ"""

import logging
import os

import pytest

# テスト環境ではログファイルを無効化（main.pyのインポート前に設定）
if "LOG_FILE" not in os.environ:
    os.environ["LOG_FILE"] = ""

from dualmind.cache.ttl_cache import ConversationCache, TTLCache
from dualmind.config import Config
from dualmind.db.sqlite import SQLiteStore
from dualmind.providers.base import ModelIdentifier, ModelResult
from dualmind.providers.composer import ReasoningComposer
from dualmind.services.chat import ChatService
from dualmind.services.comparison import ComparisonService
from dualmind.services.dispatcher import RequestDispatcher
from dualmind.services.session import SessionGateway
from tests.fixtures import StubAdapter


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """テスト環境のセットアップ（テストセッション開始時に実行）"""
    # 既存のログハンドラーをクリーンアップ
    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)

    yield

    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)


@pytest.fixture
def temp_db_path(tmp_path):
    """一時的なデータベースパス"""
    return tmp_path / "data" / "chat.db"


@pytest.fixture
def config(temp_db_path):
    """テスト用の設定（.env は読み込まない）"""
    return Config(
        _env_file=None,
        CLAUDE_API_KEY="test-claude-key",
        DEEPSEEK_API_KEY="test-deepseek-key",
        DATABASE_URL=None,
        DATABASE_PATH=temp_db_path,
        ADAPTER_TIMEOUT_SECONDS=2.0,
        DISPATCH_TIMEOUT_SECONDS=5.0,
        DEEPSEEK_RETRY_DELAY_BASE=0.0,
        DB_TIMEOUT_SECONDS=1.0,
        DB_BUSY_TIMEOUT_SECONDS=0.3,
        LOG_FILE="",
    )


@pytest.fixture
async def store(config):
    """SQLite ストアのフィクスチャ"""
    sqlite_store = SQLiteStore(
        db_path=config.DATABASE_PATH, busy_timeout=config.DB_BUSY_TIMEOUT_SECONDS
    )
    await sqlite_store.initialize()
    yield sqlite_store
    await sqlite_store.close()


@pytest.fixture
def conversation_cache():
    """会話キャッシュのフィクスチャ"""
    return ConversationCache(TTLCache(ttl_seconds=300.0))


@pytest.fixture
def gateway(store, conversation_cache, config):
    """SessionGateway のフィクスチャ"""
    return SessionGateway(store, conversation_cache, config=config)


@pytest.fixture
def claude_adapter():
    """Claude のスタブ"""
    return StubAdapter(
        ModelIdentifier.CLAUDE.value, ModelResult(content="Claude says hi")
    )


@pytest.fixture
def deepseek_adapter():
    """DeepSeek のスタブ（推論トレース付き）"""
    return StubAdapter(
        ModelIdentifier.DEEPSEEK.value,
        ModelResult(content="DeepSeek says hi", reasoning="step 1, step 2"),
    )


@pytest.fixture
def composer(claude_adapter, deepseek_adapter):
    """ドナー推論モードの ReasoningComposer"""
    return ReasoningComposer(primary=claude_adapter, secondary=deepseek_adapter)


@pytest.fixture
def dispatcher(claude_adapter, deepseek_adapter, composer, config):
    """RequestDispatcher のフィクスチャ"""
    return RequestDispatcher(
        adapters={
            ModelIdentifier.CLAUDE: claude_adapter,
            ModelIdentifier.DEEPSEEK: deepseek_adapter,
        },
        composer=composer,
        config=config,
    )


@pytest.fixture
def chat_service(dispatcher, gateway):
    """ChatService のフィクスチャ"""
    return ChatService(dispatcher, gateway)


@pytest.fixture
def comparison_service(chat_service):
    """ComparisonService のフィクスチャ"""
    return ComparisonService(chat_service)


@pytest.fixture(autouse=True)
def cleanup_log_handlers():
    """テスト後にログハンドラーをクリーンアップ"""
    yield
    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)
