"""リクエストディスパッチャー.

1つのプロンプトを要求されたモデルへ並行に送り、モデルごとの結果またはエラーをまとめて返す。
"""

import asyncio
import time
from collections.abc import Iterable

import structlog

from ..config import Config
from ..errors.ai import (
    NoReasoningAvailableError,
    ProviderError,
    ProviderErrorKind,
    get_user_friendly_message,
)
from ..errors.request import InvalidRequestError
from ..metrics import model_request_duration, model_requests_counter
from ..providers.base import (
    ErrorDescriptor,
    ModelIdentifier,
    ModelResult,
    ProviderAdapter,
)
from ..providers.composer import ComposeMode, ReasoningComposer
from ..utils.text_normalizer import normalize

logger = structlog.get_logger(__name__)

SlotResult = ModelResult | ErrorDescriptor
SharedResult = ModelResult | Exception


async def _capture(adapter: ProviderAdapter, prompt: str) -> SharedResult:
    """例外を戻り値として返す（TaskGroup 全体をキャンセルさせないため）"""
    try:
        return await adapter.invoke(prompt)
    except Exception as e:
        return e


async def _await_shared(task: "asyncio.Task[SharedResult]") -> ModelResult:
    # 片方のスロットのキャンセルが共有タスクに波及しないよう shield する
    result = await asyncio.shield(task)
    if isinstance(result, Exception):
        raise result
    return result


def validate(prompt: str | None, models: Iterable[str] | None) -> list[ModelIdentifier]:
    """リクエストを検証し、重複を除いたモデル識別子のリストを返す.

    Args:
        prompt: ユーザープロンプト
        models: 要求されたモデル識別子（最初に現れた順を保持）

    Returns:
        検証済みのモデル識別子

    Raises:
        InvalidRequestError: プロンプトが空、モデルが空、または未知の識別子を含む場合
    """
    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidRequestError("Prompt is required")
    if not models:
        raise InvalidRequestError("At least one model is required")

    validated: list[ModelIdentifier] = []
    for model in models:
        if not isinstance(model, str) or not ModelIdentifier.is_valid(model):
            raise InvalidRequestError(f"Unknown model: {model}")
        identifier = ModelIdentifier(model)
        if identifier not in validated:
            validated.append(identifier)
    return validated


def _describe_error(error: Exception, model: ModelIdentifier) -> ErrorDescriptor:
    if isinstance(error, ProviderError):
        kind = error.kind.value
    elif isinstance(error, NoReasoningAvailableError):
        kind = "no_reasoning_available"
    else:
        kind = "internal_error"
    return ErrorDescriptor(
        kind=kind, message=get_user_friendly_message(error, model=model.value)
    )


class RequestDispatcher:
    """モデル呼び出しのファンアウト.

    - 各スロットは独立しており、1つの失敗は他のスロットに影響しない
    - deepseek と claude_reasoning が両方要求された場合、DeepSeek は1回だけ呼び出され、
      その結果を自身のスロットと推論合成の両方で使う
    - 全体に DISPATCH_TIMEOUT_SECONDS の上限があり、超過したスロットは TIMEOUT になる
    """

    def __init__(
        self,
        adapters: dict[ModelIdentifier, ProviderAdapter],
        composer: ReasoningComposer,
        config: Config | None = None,
    ):
        """ディスパッチャーの初期化.

        Args:
            adapters: 単独で呼び出すアダプター（claude / deepseek）
            composer: claude_reasoning 用の推論合成
            config: 設定インスタンス（依存性注入、必須）

        Raises:
            ValueError: config が None の場合
        """
        if config is None:
            raise ValueError("config parameter is required (DI pattern)")
        self.adapters = adapters
        self.composer = composer
        self.config = config

    async def dispatch(
        self, prompt: str, models: Iterable[str]
    ) -> dict[ModelIdentifier, SlotResult]:
        """プロンプトを要求されたモデルへ並行に送信.

        Args:
            prompt: ユーザープロンプト
            models: モデル識別子

        Returns:
            モデル識別子 → 結果（成功時は content を正規化済み）またはエラー。
            キーの順序は検証済みの models と同じ

        Raises:
            InvalidRequestError: 入力が不正な場合（上流への呼び出し前）
        """
        validated = validate(prompt, models)
        results: dict[ModelIdentifier, SlotResult] = {}

        # 両方要求された場合のみ DeepSeek の呼び出しを共有する
        shared_deepseek: asyncio.Task[SharedResult] | None = None

        try:
            async with asyncio.timeout(self.config.DISPATCH_TIMEOUT_SECONDS):
                async with asyncio.TaskGroup() as tg:
                    if (
                        ModelIdentifier.DEEPSEEK in validated
                        and ModelIdentifier.CLAUDE_REASONING in validated
                    ):
                        shared_deepseek = tg.create_task(
                            _capture(self.adapters[ModelIdentifier.DEEPSEEK], prompt)
                        )
                    for model in validated:
                        tg.create_task(
                            self._run_slot(model, prompt, shared_deepseek, results)
                        )
        except TimeoutError:
            logger.warning(
                f"Dispatch exceeded {self.config.DISPATCH_TIMEOUT_SECONDS}s, "
                f"completed slots: {[m.value for m in results]}"
            )

        ordered: dict[ModelIdentifier, SlotResult] = {}
        for model in validated:
            if model not in results:
                model_requests_counter.labels(
                    model=model.value, outcome="timeout"
                ).inc()
                results[model] = _describe_error(
                    ProviderError(
                        ProviderErrorKind.TIMEOUT,
                        "Dispatch deadline exceeded",
                        provider=model.value,
                    ),
                    model,
                )
            ordered[model] = results[model]
        return ordered

    async def _run_slot(
        self,
        model: ModelIdentifier,
        prompt: str,
        shared_deepseek: "asyncio.Task[SharedResult] | None",
        results: dict[ModelIdentifier, SlotResult],
    ) -> None:
        """1スロット分の呼び出し（例外はすべて ErrorDescriptor に変換）."""
        start_time = time.perf_counter()
        try:
            result = await self._invoke(model, prompt, shared_deepseek)
        except Exception as e:
            logger.error(f"Model {model.value} failed: {e}")
            outcome = (
                "timeout"
                if isinstance(e, ProviderError) and e.kind == ProviderErrorKind.TIMEOUT
                else "error"
            )
            model_requests_counter.labels(model=model.value, outcome=outcome).inc()
            results[model] = _describe_error(e, model)
            return
        finally:
            model_request_duration.labels(model=model.value).observe(
                time.perf_counter() - start_time
            )

        model_requests_counter.labels(model=model.value, outcome="success").inc()
        results[model] = ModelResult(
            content=normalize(result.content), reasoning=result.reasoning
        )

    async def _invoke(
        self,
        model: ModelIdentifier,
        prompt: str,
        shared_deepseek: "asyncio.Task[SharedResult] | None",
    ) -> ModelResult:
        if model == ModelIdentifier.CLAUDE_REASONING:
            if (
                shared_deepseek is None
                or self.composer.mode == ComposeMode.SELF_CONTAINED
            ):
                return await self.composer.compose_with_reasoning(prompt)
            try:
                donor = await _await_shared(shared_deepseek)
            except ProviderError as e:
                raise NoReasoningAvailableError(
                    f"Reasoning model failed: {e}"
                ) from e
            if not donor.reasoning:
                raise NoReasoningAvailableError("Reasoning model returned no reasoning")
            return await self.composer.compose_with_reasoning(
                prompt, donor_reasoning=donor.reasoning
            )

        if model == ModelIdentifier.DEEPSEEK and shared_deepseek is not None:
            return await _await_shared(shared_deepseek)

        return await self.adapters[model].invoke(prompt)
