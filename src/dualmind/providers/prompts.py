"""プロンプト定義

推論合成（ドナー推論・自己完結）で上流モデルに送るプロンプトを組み立てる。
"""

SELF_CONTAINED_INSTRUCTION = (
    "Please provide your response in two parts:\n"
    "1. Your direct answer\n"
    "2. Your reasoning process, including key considerations and assumptions"
)

DONOR_PROMPT_TEMPLATE = """I'll share an analysis of this question, along with the reasoning process that led to it. Consider this reasoning and use it to inform your own response, while maintaining your independent judgment:

{reasoning}

With that reasoning process in mind, please provide your own analysis of this question:

{prompt}

Note: While you should consider the reasoning provided above, please form your own independent analysis and conclusions. You may agree or disagree with aspects of the reasoning, and should explain your own thought process."""


def build_self_contained_prompt(prompt: str) -> str:
    """回答と推論の2部構成を求めるプロンプトを作成"""
    return f"{prompt}\n\n{SELF_CONTAINED_INSTRUCTION}"


def build_donor_prompt(prompt: str, reasoning: str) -> str:
    """ドナー推論をそのまま引用したプロンプトを作成

    Args:
        prompt: ユーザープロンプト
        reasoning: 別モデルの推論トレース（加工せずに埋め込む）

    Returns:
        拡張されたプロンプト
    """
    return DONOR_PROMPT_TEMPLATE.format(reasoning=reasoning, prompt=prompt)
