"""上流モデルのアダプターと推論合成."""

from .base import ErrorDescriptor, ModelIdentifier, ModelResult, ProviderAdapter
from .claude import ClaudeAdapter
from .composer import ComposeMode, ReasoningComposer, split_answer_and_reasoning
from .deepseek import DeepseekAdapter

__all__ = [
    "ModelIdentifier",
    "ModelResult",
    "ErrorDescriptor",
    "ProviderAdapter",
    "ClaudeAdapter",
    "DeepseekAdapter",
    "ComposeMode",
    "ReasoningComposer",
    "split_answer_and_reasoning",
]
