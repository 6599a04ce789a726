"""依存関係の組み立て（DIコンテナ）."""

import logging
from dataclasses import dataclass, field

from .cache.ttl_cache import ConversationCache, TTLCache
from .config import Config
from .db.base import StoreProtocol
from .db.postgres import PostgreSQLStore
from .db.sqlite import SQLiteStore
from .providers.base import ModelIdentifier, ProviderAdapter
from .providers.claude import ClaudeAdapter
from .providers.composer import ComposeMode, ReasoningComposer
from .providers.deepseek import DeepseekAdapter
from .services.chat import ChatService
from .services.comparison import ComparisonService
from .services.dispatcher import RequestDispatcher
from .services.session import SessionGateway

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """アプリケーション全体で共有するコンポーネント.

    ストアはプロセス起動時に一度だけ開き、終了時に閉じる（FastAPI の lifespan で管理）。
    """

    config: Config
    store: StoreProtocol
    gateway: SessionGateway
    dispatcher: RequestDispatcher
    chat_service: ChatService
    comparison_service: ComparisonService
    adapters: list[ProviderAdapter] = field(default_factory=list)

    async def startup(self) -> None:
        """ストアを開き、前回残った一時セッションを削除."""
        await self.store.initialize()
        await self.gateway.purge_ephemeral_sessions()

    async def shutdown(self) -> None:
        """HTTPクライアントとストアを閉じる."""
        for adapter in self.adapters:
            try:
                await adapter.aclose()
            except Exception as e:
                logger.warning(f"Error closing adapter {adapter.name}: {e}")
        await self.store.close()


def create_store(config: Config) -> StoreProtocol:
    """設定に応じてストアを作成（DATABASE_URL があれば PostgreSQL、なければ SQLite）."""
    if config.use_postgres:
        logger.info("Using PostgreSQL store")
        return PostgreSQLStore(
            connection_string=config.DATABASE_URL,
            min_size=config.DB_POOL_MIN_SIZE,
            max_size=config.DB_POOL_MAX_SIZE,
            command_timeout=config.DB_TIMEOUT_SECONDS,
        )
    logger.info(f"Using SQLite store: {config.DATABASE_PATH}")
    return SQLiteStore(
        config.DATABASE_PATH, busy_timeout=config.DB_BUSY_TIMEOUT_SECONDS
    )


def build_container(
    config: Config,
    store: StoreProtocol | None = None,
    claude: ProviderAdapter | None = None,
    deepseek: ProviderAdapter | None = None,
) -> Container:
    """設定からコンポーネントを組み立てる.

    Args:
        config: 設定インスタンス
        store: ストア（省略時は設定から作成）
        claude: Claude アダプター（省略時は設定から作成）
        deepseek: DeepSeek アダプター（省略時は設定から作成）

    Returns:
        組み立て済みのコンテナ
    """
    store = store or create_store(config)
    claude = claude or ClaudeAdapter(
        api_key=config.CLAUDE_API_KEY,
        model=config.CLAUDE_MODEL,
        max_tokens=config.LLM_MAX_TOKENS,
        timeout=config.ADAPTER_TIMEOUT_SECONDS,
    )
    deepseek = deepseek or DeepseekAdapter(
        api_key=config.DEEPSEEK_API_KEY,
        model=config.DEEPSEEK_MODEL,
        base_url=config.DEEPSEEK_BASE_URL,
        max_tokens=config.LLM_MAX_TOKENS,
        timeout=config.ADAPTER_TIMEOUT_SECONDS,
        max_attempts=config.DEEPSEEK_MAX_ATTEMPTS,
        retry_delay_base=config.DEEPSEEK_RETRY_DELAY_BASE,
    )

    composer = ReasoningComposer(
        primary=claude, secondary=deepseek, mode=ComposeMode(config.COMPOSER_MODE)
    )
    dispatcher = RequestDispatcher(
        adapters={
            ModelIdentifier.CLAUDE: claude,
            ModelIdentifier.DEEPSEEK: deepseek,
        },
        composer=composer,
        config=config,
    )
    cache = ConversationCache(TTLCache(ttl_seconds=config.CACHE_TTL_SECONDS))
    gateway = SessionGateway(store, cache, config=config)
    chat_service = ChatService(dispatcher, gateway)

    return Container(
        config=config,
        store=store,
        gateway=gateway,
        dispatcher=dispatcher,
        chat_service=chat_service,
        comparison_service=ComparisonService(chat_service),
        adapters=[claude, deepseek],
    )
