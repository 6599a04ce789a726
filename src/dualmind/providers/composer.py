"""推論合成（2段階呼び出し）

副モデルの推論トレースを主モデルへのプロンプトに埋め込む「ドナー推論」モードと、
主モデル1回の応答を回答・推論に分割する「自己完結」モードを提供する。
"""

import re
from enum import Enum

import structlog

from ..errors.ai import NoReasoningAvailableError
from .base import ModelIdentifier, ModelResult, ProviderAdapter
from .prompts import build_donor_prompt, build_self_contained_prompt

logger = structlog.get_logger(__name__)

# "2. Reasoning" / "2. Your reasoning process:" で回答と推論を分割
_REASONING_SPLIT = re.compile(
    r"\n\s*2\.\s*(?:your\s+)?reasoning(?:\s+process)?\s*:?", re.IGNORECASE
)
# 先頭の "1. Your direct answer:" ラベル
_ANSWER_LABEL = re.compile(
    r"^\s*1\.\s*(?:your\s+)?(?:direct\s+)?answer:?\s*", re.IGNORECASE
)


class ComposeMode(str, Enum):
    """推論合成のモード"""

    DONOR = "donor"
    SELF_CONTAINED = "self_contained"


def split_answer_and_reasoning(text: str) -> ModelResult:
    """2部構成の応答テキストを回答と推論に分割

    上流モデルの出力形式は保証されないため、ベストエフォートで分割する。
    推論部分が見つからない場合も例外にはせず、reasoning=None を返す。

    Args:
        text: "1. 回答 / 2. 推論" 形式を期待した応答テキスト

    Returns:
        回答（ラベル除去済み）と推論
    """
    parts = _REASONING_SPLIT.split(text, maxsplit=1)
    content = _ANSWER_LABEL.sub("", parts[0], count=1).strip()
    reasoning = parts[1].strip() if len(parts) > 1 else ""
    return ModelResult(content=content, reasoning=reasoning or None)


class ReasoningComposer:
    """主モデルと副モデル（推論ドナー）を組み合わせて1つの結果を作る

    Attributes:
        primary: 回答を生成するアダプター（Claude）
        secondary: 推論トレースを提供するアダプター（DeepSeek）
        mode: 合成モード
    """

    name = ModelIdentifier.CLAUDE_REASONING.value

    def __init__(
        self,
        primary: ProviderAdapter,
        secondary: ProviderAdapter | None = None,
        mode: ComposeMode = ComposeMode.DONOR,
    ):
        self.primary = primary
        self.secondary = secondary
        self.mode = ComposeMode(mode)

    async def compose_with_reasoning(
        self, prompt: str, donor_reasoning: str | None = None
    ) -> ModelResult:
        """推論付きの応答を生成

        Args:
            prompt: ユーザープロンプト
            donor_reasoning: 既に取得済みのドナー推論（None なら副モデルから取得）

        Returns:
            主モデルの回答と推論（ドナーモードではドナー推論そのもの）

        Raises:
            NoReasoningAvailableError: ドナーモードで推論が得られない場合
            ProviderError: 上流呼び出しの失敗
        """
        if self.mode == ComposeMode.SELF_CONTAINED:
            result = await self.primary.invoke(build_self_contained_prompt(prompt))
            return split_answer_and_reasoning(result.content)

        if donor_reasoning is None:
            donor_reasoning = await self._fetch_donor_reasoning(prompt)
        if donor_reasoning is None or not donor_reasoning.strip():
            raise NoReasoningAvailableError(
                "Donor reasoning was requested but none is available"
            )

        result = await self.primary.invoke(build_donor_prompt(prompt, donor_reasoning))
        return ModelResult(content=result.content, reasoning=donor_reasoning)

    async def _fetch_donor_reasoning(self, prompt: str) -> str | None:
        if self.secondary is None:
            raise NoReasoningAvailableError("No reasoning model is configured")
        logger.debug(f"Fetching donor reasoning from {self.secondary.name}")
        donor = await self.secondary.invoke(prompt)
        return donor.reasoning
