"""設定管理モジュール."""

from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# .envファイルの読み込み（既存の環境変数は上書きしない）
load_dotenv(override=False)

# プラットフォーム側のリクエスト上限（秒）。ディスパッチ全体はこれ未満で完了する必要がある
PLATFORM_REQUEST_CEILING_SECONDS = 300


class Config(BaseSettings):
    """アプリケーション設定（pydantic-settings使用）.

    すべての環境変数を一元管理します。
    各コンポーネントにはコンストラクタ引数として明示的に渡します（DIパターン）。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # 環境変数名は大文字小文字を区別しない
        extra="ignore",  # 未定義の環境変数は無視
    )

    # ============================================
    # API キー設定（未設定でも起動は可能、呼び出し時に AUTH_MISSING）
    # ============================================

    CLAUDE_API_KEY: str = ""
    DEEPSEEK_API_KEY: str = ""

    # ============================================
    # モデル設定
    # ============================================

    CLAUDE_MODEL: str = "claude-sonnet-4-5"
    DEEPSEEK_MODEL: str = "deepseek-reasoner"
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com/v1"
    LLM_MAX_TOKENS: int = 4096

    # ============================================
    # タイムアウト・リトライ設定
    # ============================================

    # アダプター1回分の上限（リトライを含む）
    ADAPTER_TIMEOUT_SECONDS: float = 140.0
    # ディスパッチ全体の上限（合成は2回の逐次呼び出しになる）
    DISPATCH_TIMEOUT_SECONDS: float = 290.0
    DEEPSEEK_MAX_ATTEMPTS: int = 3
    DEEPSEEK_RETRY_DELAY_BASE: float = 1.0  # 指数バックオフのベース遅延（秒）

    # 推論合成モード（"donor" または "self_contained"）
    COMPOSER_MODE: str = "donor"

    # ============================================
    # データベース設定
    # ============================================

    # postgresql:// で始まる場合は PostgreSQL、未設定なら SQLite
    DATABASE_URL: str | None = None
    DATABASE_PATH: Path = Path("./data/chat.db")
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_TIMEOUT_SECONDS: float = 5.0
    # SQLite のロック待ち上限（DB_TIMEOUT_SECONDS より短くする）
    DB_BUSY_TIMEOUT_SECONDS: float = 4.0
    DB_MAX_ATTEMPTS: int = 2

    # ============================================
    # キャッシュ・ページング設定
    # ============================================

    CACHE_TTL_SECONDS: float = 300.0
    MESSAGE_PAGE_SIZE: int = 20

    # ============================================
    # ログ設定
    # ============================================

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None
    LOG_MAX_SIZE: int = 10  # MB
    LOG_BACKUP_COUNT: int = 5

    # ============================================
    # HTTPサーバー設定
    # ============================================

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @property
    def use_postgres(self) -> bool:
        """PostgreSQL を使用するかどうか."""
        return bool(self.DATABASE_URL) and self.DATABASE_URL.startswith(
            ("postgresql://", "postgres://")
        )

    def validate_config(self) -> None:
        """設定の検証.

        タイムアウトの階層（ロック待ち < DB < アダプター、アダプター2回分 < ディスパッチ < 上限）を確認する。

        Raises:
            ValueError: 設定値が不正な場合
        """
        if self.COMPOSER_MODE not in ("donor", "self_contained"):
            raise ValueError(f"Invalid COMPOSER_MODE: {self.COMPOSER_MODE}")
        if self.DEEPSEEK_MAX_ATTEMPTS < 1:
            raise ValueError("DEEPSEEK_MAX_ATTEMPTS must be at least 1")
        if self.MESSAGE_PAGE_SIZE < 1:
            raise ValueError("MESSAGE_PAGE_SIZE must be at least 1")
        if self.DISPATCH_TIMEOUT_SECONDS >= PLATFORM_REQUEST_CEILING_SECONDS:
            raise ValueError(
                f"DISPATCH_TIMEOUT_SECONDS must be below "
                f"{PLATFORM_REQUEST_CEILING_SECONDS}s"
            )
        if 2 * self.ADAPTER_TIMEOUT_SECONDS >= self.DISPATCH_TIMEOUT_SECONDS:
            raise ValueError(
                "ADAPTER_TIMEOUT_SECONDS must be less than half of "
                "DISPATCH_TIMEOUT_SECONDS"
            )
        if self.DB_TIMEOUT_SECONDS >= self.ADAPTER_TIMEOUT_SECONDS:
            raise ValueError(
                "DB_TIMEOUT_SECONDS must be less than ADAPTER_TIMEOUT_SECONDS"
            )
        if self.DB_BUSY_TIMEOUT_SECONDS >= self.DB_TIMEOUT_SECONDS:
            raise ValueError(
                "DB_BUSY_TIMEOUT_SECONDS must be less than DB_TIMEOUT_SECONDS"
            )

        if not self.use_postgres:
            # データディレクトリの作成
            self.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)


# シングルトンインスタンス（main.py とテストでのみ get_config() を使用）
_config_instance: Config | None = None


def get_config() -> Config:
    """設定のシングルトンインスタンスを取得.

    Returns:
        設定インスタンス
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance
