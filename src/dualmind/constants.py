"""定数の一箇所集約（マジックナンバーの散在を防ぐ）"""


class SessionConstants:
    """セッション関連の定数"""

    DEFAULT_TITLE = "New Chat"
    TITLE_MAX_LENGTH = 50  # プロンプトから生成するタイトルの最大文字数
    EPHEMERAL_SESSION_ID = "ephemeral"  # 一時セッションを要求する特別なID
    EPHEMERAL_TITLE_PREFIX = "[ephemeral] "


class CacheConstants:
    """キャッシュ関連の定数"""

    CACHE_VERSION = 1
    SESSIONS_KEY = f"chat_sessions_v{CACHE_VERSION}"
    SESSION_KEY_PREFIX = f"chat_session_v{CACHE_VERSION}_"
    MESSAGES_KEY_PREFIX = f"chat_messages_v{CACHE_VERSION}_"


class ProviderConstants:
    """プロバイダー関連の定数"""

    ANTHROPIC_API_VERSION = "2023-06-01"
    RETRYABLE_STATUS_MIN = 500  # これ以上のHTTPステータスは一時的なエラーとして扱う
    DEEPSEEK_SYSTEM_PROMPT = (
        "You are an AI assistant that provides thoughtful and well-reasoned "
        "responses. Before giving your answer, use Chain of Thought reasoning to "
        "think through the problem step by step."
    )
