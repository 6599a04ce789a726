"""メインエントリーポイント."""

import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from .api.app import create_app
from .config import Config, get_config
from .container import build_container

logger = logging.getLogger(__name__)


def local_timestamper(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """ローカルタイムゾーンでタイムスタンプを追加するプロセッサー.

    フォーマット: YYYY-MM-DD HH:MM:SS.mmm (例: 2026-01-18 23:31:34.525)
    """
    now = datetime.now().astimezone()
    event_dict["timestamp"] = now.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    return event_dict


def setup_logging(config: Config) -> None:
    """ログ設定のセットアップ.

    標準の logging と structlog を統合し、コンソールには structlog の
    ConsoleRenderer、ファイルには通常のフォーマットで出力する。
    """
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
    ]

    # ファイルログが設定されている場合
    if config.LOG_FILE:
        try:
            log_path = Path(config.LOG_FILE)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=config.LOG_MAX_SIZE * 1024 * 1024,  # MB to bytes
                backupCount=config.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )
            )
            handlers.append(file_handler)
        except OSError as e:
            logging.warning(
                f"Could not set up file logging to {config.LOG_FILE}: {e}. "
                "Continuing with console logging only."
            )

    handlers[0].setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                local_timestamper,
            ],
        )
    )

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            local_timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_application(config: Config | None = None) -> FastAPI:
    """設定を検証し、アプリケーションを組み立てる."""
    config = config or get_config()
    config.validate_config()
    container = build_container(config)
    return create_app(container)


def main() -> None:
    """メイン関数."""
    config = get_config()
    setup_logging(config)

    try:
        app = create_application(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info("Starting dualmind...")
    logger.info(f"Log level: {config.LOG_LEVEL}")
    logger.info(
        f"Models: claude={config.CLAUDE_MODEL}, deepseek={config.DEEPSEEK_MODEL}"
    )
    logger.info(f"Composer mode: {config.COMPOSER_MODE}")

    try:
        # ログ設定は setup_logging のものを使う
        uvicorn.run(app, host=config.HOST, port=config.PORT, log_config=None)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
