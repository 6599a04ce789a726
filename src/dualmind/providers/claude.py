"""Anthropic SDK統合実装"""

import asyncio
import logging

import anthropic

from ..constants import ProviderConstants
from ..errors.ai import ProviderError, ProviderErrorKind
from .base import ModelIdentifier, ModelResult, ProviderAdapter

logger = logging.getLogger(__name__)


class ClaudeAdapter(ProviderAdapter):
    """Anthropic SDK を使用した Claude アダプター

    Messages API を1回呼び出し、テキストブロックを連結して返す。
    SDK 内部のリトライは無効化し（max_retries=0）、時間予算はアダプター側で管理する。
    """

    name = ModelIdentifier.CLAUDE.value

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 4096,
        timeout: float = 140.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client

        logger.info(f"Initialized Claude adapter: {model} (timeout={timeout}s)")

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                max_retries=0,
                default_headers={
                    "anthropic-version": ProviderConstants.ANTHROPIC_API_VERSION
                },
            )
        return self._client

    async def invoke(self, prompt: str) -> ModelResult:
        """Claude にプロンプトを送信して応答を取得

        Args:
            prompt: 送信するプロンプト

        Returns:
            正規化済みの結果（reasoning は常に None）

        Raises:
            ProviderError: 認証情報未設定・タイムアウト・HTTPエラー・不正な応答・通信エラー
        """
        # 認証情報は通信前に確認する
        if not self.api_key:
            raise ProviderError(
                ProviderErrorKind.AUTH_MISSING,
                "CLAUDE_API_KEY is not set",
                provider=self.name,
            )

        try:
            async with asyncio.timeout(self.timeout):
                text = await self._request(prompt)
        except TimeoutError as e:
            logger.warning(f"Claude request timed out after {self.timeout}s")
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"Claude did not respond within {self.timeout}s",
                provider=self.name,
            ) from e

        logger.info(f"Generated response: {len(text)} chars")
        return ModelResult(content=text.strip(), reasoning=None)

    async def _request(self, prompt: str) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"Claude API request timed out: {e}",
                provider=self.name,
            ) from e
        except anthropic.APIStatusError as e:
            logger.error(f"Claude API error: status={e.status_code}")
            raise ProviderError(
                ProviderErrorKind.UPSTREAM_HTTP_ERROR,
                "Claude API returned an error status",
                provider=self.name,
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except anthropic.APIConnectionError as e:
            logger.warning(f"Claude API connection error: {e}")
            raise ProviderError(
                ProviderErrorKind.NETWORK_ERROR,
                f"Could not connect to Claude API: {e}",
                provider=self.name,
            ) from e

        # テキストブロックのみを連結
        result_text = "".join(
            block.text
            for block in (response.content or [])
            if getattr(block, "type", None) == "text"
        )
        if not result_text.strip():
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                "Empty response content from Claude API",
                provider=self.name,
            )
        return result_text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
