"""モデル比較サービス.

同じプロンプトを3つのモデルに送り、すべて成功した場合は DeepSeek に比較分析をさせる。
どちらの呼び出しも一時セッションを使い、会話履歴には残らない。
"""

from dataclasses import dataclass

import structlog

from ..errors.request import InvalidRequestError, PersistenceError
from ..providers.base import ModelIdentifier
from .chat import ChatReply, ChatService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ComparisonPrompt:
    """プリセットの比較用プロンプト"""

    id: str
    title: str
    prompt: str

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "prompt": self.prompt}


COMPARISON_PROMPTS: tuple[ComparisonPrompt, ...] = (
    ComparisonPrompt(
        id="ethical",
        title="Ethical Dilemma",
        prompt=(
            "You are a doctor with one dose of medicine left. Two patients need it "
            "urgently - a young child and an elderly scientist who's close to curing "
            "cancer. Who should receive the medicine and why?"
        ),
    ),
    ComparisonPrompt(
        id="logic",
        title="Logic Puzzle",
        prompt=(
            "In a room there are 5 machines. Each machine takes exactly 2 minutes to "
            "produce a widget. How many widgets can be produced in 6 minutes?"
        ),
    ),
    ComparisonPrompt(
        id="creative",
        title="Creative Problem",
        prompt=(
            "Design a sustainable city transportation system that could work "
            "underwater."
        ),
    ),
    ComparisonPrompt(
        id="analysis",
        title="Complex Analysis",
        prompt=(
            "Analyze the potential long-term implications of widespread AI adoption "
            "in healthcare, considering both benefits and risks."
        ),
    ),
    ComparisonPrompt(
        id="abstract",
        title="Abstract Reasoning",
        prompt=(
            "If memories were physical objects, how would you organize and store "
            "them? Describe your system."
        ),
    ),
    ComparisonPrompt(
        id="systems",
        title="Systems Thinking",
        prompt=(
            "Explain how a small change in ocean temperature could lead to changes "
            "in global weather patterns, economies, and human migration. Map out "
            "the cascade of effects."
        ),
    ),
)

COMPARED_MODELS = (
    ModelIdentifier.DEEPSEEK,
    ModelIdentifier.CLAUDE,
    ModelIdentifier.CLAUDE_REASONING,
)

NO_REASONING_TEXT = "No explicit reasoning provided"

ANALYSIS_INSTRUCTIONS = """Provide a structured analysis using the following format. Use ### for main sections and bullet points (•) for details:

### 1. KEY DIFFERENCES IN APPROACH

Organization & Structure:
• How did DeepSeek R1 organize its solution? [quote structure]
• How did Claude structure its response? [quote structure]
• How did Claude + Reasoning organize its solution? [quote structure]

Technical Detail:
• What specific technical details did each response provide? [quote details]

Focus Areas:
• What unique elements did each response emphasize? [quote examples]

### 2. SHARED ELEMENTS

• What key ideas, challenges and priorities appeared in all responses? [quote each instance]

### 3. STANDOUT STRENGTHS

DeepSeek R1 Strengths:
• [Quote specific technical or analytical strength]

Claude Strengths:
• [Quote specific technical or analytical strength]

Combined Approach Strengths:
• [Quote specific enhancement from reasoning]

### 4. EFFECTIVENESS ANALYSIS

Most Effective Approach:
• Which response was most effective? [name and explain why]
• [Quote key evidence supporting this judgment]

Best Use Cases:
• DeepSeek R1: [quote content suggesting ideal applications]
• Claude: [quote content suggesting ideal applications]
• Combined: [quote content suggesting ideal applications]

For each point, use direct quotes from the responses to support your analysis. Focus on specific details and concrete examples rather than general observations."""


def build_analysis_prompt(prompt: str, reply: ChatReply) -> str:
    """3つの応答を並べた比較分析用のプロンプトを作成

    Args:
        prompt: 比較に使った元のプロンプト
        reply: 3モデルすべてが成功した送信結果

    Returns:
        分析用プロンプト
    """
    deepseek = reply.results[ModelIdentifier.DEEPSEEK]
    claude = reply.results[ModelIdentifier.CLAUDE]
    composed = reply.results[ModelIdentifier.CLAUDE_REASONING]

    formatted = (
        f'ORIGINAL PROMPT:\n"{prompt}"\n\n'
        f"===== RESPONSE 1: DEEPSEEK R1 =====\n{deepseek.content}\n\n"
        f"DEEPSEEK'S REASONING PROCESS:\n{deepseek.reasoning or NO_REASONING_TEXT}\n\n"
        f"===== RESPONSE 2: CLAUDE =====\n{claude.content}\n\n"
        f"===== RESPONSE 3: CLAUDE WITH DEEPSEEK REASONING =====\n"
        f"{composed.content}\n\n"
        f"REASONING PROCESS THAT ENHANCED THIS RESPONSE:\n"
        f"{composed.reasoning or NO_REASONING_TEXT}"
    )
    return (
        f'Analyze these three responses to the prompt: "{prompt}"\n\n'
        f"{formatted}\n\n{ANALYSIS_INSTRUCTIONS}"
    )


@dataclass(frozen=True)
class ComparisonResult:
    """比較結果

    Attributes:
        responses: 3モデルの結果
        analysis: DeepSeek による比較分析（失敗した場合は None）
    """

    responses: ChatReply
    analysis: str | None

    def to_dict(self) -> dict:
        return {"responses": self.responses.results_dict(), "analysis": self.analysis}


class ComparisonService:
    """3モデルの応答比較"""

    def __init__(self, chat_service: ChatService):
        self.chat_service = chat_service

    @staticmethod
    def list_prompts() -> list[ComparisonPrompt]:
        return list(COMPARISON_PROMPTS)

    @staticmethod
    def resolve_prompt(prompt_id: str | None = None, prompt: str | None = None) -> str:
        """プリセットIDまたは任意のプロンプトから比較対象のプロンプトを決定

        Raises:
            InvalidRequestError: どちらも指定されていない、または未知のIDの場合
        """
        if prompt_id:
            for preset in COMPARISON_PROMPTS:
                if preset.id == prompt_id:
                    return preset.prompt
            raise InvalidRequestError(f"Unknown comparison prompt: {prompt_id}")
        if prompt and prompt.strip():
            return prompt
        raise InvalidRequestError("Either promptId or prompt is required")

    async def compare(self, prompt: str) -> ComparisonResult:
        """3モデルに送信し、すべて成功した場合は比較分析を行う

        Args:
            prompt: 比較するプロンプト

        Returns:
            各モデルの結果と比較分析
        """
        reply = await self.chat_service.submit(
            None, prompt, [model.value for model in COMPARED_MODELS]
        )
        if any(reply.results[model].is_error for model in COMPARED_MODELS):
            logger.info("Skipping comparative analysis: not all models succeeded")
            return ComparisonResult(responses=reply, analysis=None)

        try:
            analysis_reply = await self.chat_service.submit(
                None,
                build_analysis_prompt(prompt, reply),
                [ModelIdentifier.DEEPSEEK.value],
            )
        except PersistenceError as e:
            logger.warning(f"Comparative analysis could not be recorded: {e}")
            return ComparisonResult(responses=reply, analysis=None)
        analysis = analysis_reply.results[ModelIdentifier.DEEPSEEK]
        if analysis.is_error:
            logger.warning(f"Comparative analysis failed: {analysis.content}")
            return ComparisonResult(responses=reply, analysis=None)
        return ComparisonResult(responses=reply, analysis=analysis.content)
