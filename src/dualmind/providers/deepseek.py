"""DeepSeek API プロバイダー（OpenAI互換エンドポイント）"""

import asyncio

import openai
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import ProviderConstants
from ..errors.ai import ProviderError, ProviderErrorKind
from .base import ModelIdentifier, ModelResult, ProviderAdapter

logger = structlog.get_logger(__name__)


def _is_retryable(error: BaseException) -> bool:
    """ネットワークエラーと5xxのみリトライする"""
    return isinstance(error, ProviderError) and error.retryable


class DeepseekAdapter(ProviderAdapter):
    """deepseek-reasoner を使用（リトライロジック付き）

    回答本文に加えて、推論トレース（reasoning_content）を reasoning として返す。
    """

    name = ModelIdentifier.DEEPSEEK.value

    def __init__(
        self,
        api_key: str,
        model: str = "deepseek-reasoner",
        base_url: str = "https://api.deepseek.com/v1",
        max_tokens: int = 4096,
        timeout: float = 140.0,
        max_attempts: int = 3,
        retry_delay_base: float = 1.0,
        client: openai.AsyncOpenAI | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay_base = retry_delay_base
        self._client = client

        logger.info(
            f"Initialized DeepSeek adapter: {model}, "
            f"max_attempts={max_attempts}, delay_base={retry_delay_base}s"
        )

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key, base_url=self.base_url, max_retries=0
            )
        return self._client

    async def invoke(self, prompt: str) -> ModelResult:
        """DeepSeek にプロンプトを送信（リトライロジック付き）

        時間予算はリトライ・待機を含む呼び出し全体に適用される。

        Args:
            prompt: 送信するプロンプト

        Returns:
            正規化済みの結果（reasoning に推論トレース）

        Raises:
            ProviderError: リトライ上限到達後の最後のエラー、またはリトライ不可のエラー
        """
        if not self.api_key:
            raise ProviderError(
                ProviderErrorKind.AUTH_MISSING,
                "DEEPSEEK_API_KEY is not set",
                provider=self.name,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_delay_base),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async with asyncio.timeout(self.timeout):
                async for attempt in retrying:
                    with attempt:
                        return await self._request(prompt)
        except TimeoutError as e:
            logger.warning(f"DeepSeek request timed out after {self.timeout}s")
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"DeepSeek did not respond within {self.timeout}s",
                provider=self.name,
            ) from e

        # reraise=True のためこの行には到達しない
        raise RuntimeError("Unexpected error in DeepseekAdapter.invoke")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"DeepSeek API error (attempt {retry_state.attempt_number}/"
            f"{self.max_attempts}): {error}. Retrying..."
        )

    async def _request(self, prompt: str) -> ModelResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": ProviderConstants.DEEPSEEK_SYSTEM_PROMPT,
                    },
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                stream=False,
            )
        except openai.APITimeoutError as e:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"DeepSeek API request timed out: {e}",
                provider=self.name,
            ) from e
        except openai.APIStatusError as e:
            logger.error(f"DeepSeek API error: status={e.status_code}")
            raise ProviderError(
                ProviderErrorKind.UPSTREAM_HTTP_ERROR,
                "DeepSeek API returned an error status",
                provider=self.name,
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except openai.APIConnectionError as e:
            raise ProviderError(
                ProviderErrorKind.NETWORK_ERROR,
                f"Could not connect to DeepSeek API: {e}",
                provider=self.name,
            ) from e

        if not response.choices:
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                "No choices in DeepSeek API response",
                provider=self.name,
            )

        message = response.choices[0].message
        content = (message.content or "").strip()
        if not content:
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                "Empty content from DeepSeek API",
                provider=self.name,
            )

        # reasoning_content は OpenAI の型定義に無いフィールド
        reasoning = getattr(message, "reasoning_content", None)
        if reasoning is None and message.model_extra:
            reasoning = message.model_extra.get("reasoning_content")
        reasoning = reasoning.strip() if isinstance(reasoning, str) else None

        logger.info(
            f"Generated response: {len(content)} chars, "
            f"reasoning: {len(reasoning) if reasoning else 0} chars"
        )
        return ModelResult(content=content, reasoning=reasoning or None)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
