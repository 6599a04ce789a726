"""応答テキストの正規化

上流モデルが出力する数式・Markdown の記法を取り除き、表示・保存用のプレーンテキストにする。
"""

import re

# 話者に帰属する直接引用（"... said ..." など）は加工しない
_QUOTED_SPAN = re.compile(r'"[^"\n]*"')
_ATTRIBUTION_VERB = re.compile(r"\b(?:said|says|wrote|writes|states|stated)\b")
# 引用の退避に使う私用領域の文字（入力に含まれない組を選ぶ）
_PRIVATE_USE = range(0xE000, 0xF900, 2)

# 1. 数式デリミタ
_MATH_DELIMITERS = re.compile(r"\\[()\[\]]|\$\$")
# 2. \boxed{...} / \text{...}
_WRAPPERS = re.compile(r"\\(?:boxed|text)\{([^{}]*)\}")
# 3. \frac{A}{B} / \dfrac{A}{B}
_FRACTION = re.compile(r"\\d?frac\{([^{}]*)\}\{([^{}]*)\}")
# 4. \times
_TIMES = re.compile(r"\\times(?![A-Za-z])")
# 5. 太字と回答ラベル
_BOLD = re.compile(r"\*\*")
_ANSWER_LABEL = re.compile(r"\b(?:Final )?Answer:[ \t]*")
# 6. 空白
_LINE_EDGES = re.compile(r"^[ \t]+|[ \t]+$", re.MULTILINE)
_BLANK_RUN = re.compile(r"\n{3,}")


def _pick_delimiters(text: str) -> tuple[str, str] | None:
    for code in _PRIVATE_USE:
        opening, closing = chr(code), chr(code + 1)
        if opening not in text and closing not in text:
            return opening, closing
    return None


def _protect_quotations(
    text: str,
) -> tuple[str, list[str], re.Pattern[str] | None]:
    delimiters = _pick_delimiters(text)
    if delimiters is None:
        return text, [], None
    opening, closing = delimiters
    protected: list[str] = []

    def replace(match: re.Match[str]) -> str:
        span = match.group(0)
        if not _ATTRIBUTION_VERB.search(span):
            return span
        protected.append(span)
        return f"{opening}{len(protected) - 1}{closing}"

    pattern = re.compile(f"{re.escape(opening)}(\\d+){re.escape(closing)}")
    return _QUOTED_SPAN.sub(replace, text), protected, pattern


def _restore_quotations(
    text: str, protected: list[str], pattern: re.Pattern[str] | None
) -> str:
    if pattern is None or not protected:
        return text
    return pattern.sub(lambda m: protected[int(m.group(1))], text)


def _normalize_once(text: str) -> str:
    text = _MATH_DELIMITERS.sub("", text)
    text = _WRAPPERS.sub(r"\1", text)
    text = _FRACTION.sub(r"\1/\2", text)
    text = _TIMES.sub("x", text)
    text = _BOLD.sub("", text)
    text = _ANSWER_LABEL.sub("", text)
    text = _LINE_EDGES.sub("", text)
    text = _BLANK_RUN.sub("\n\n", text)
    return text.strip()


def normalize(raw: str) -> str:
    """応答テキストを正規化

    以下を順に適用し、テキストが変化しなくなるまで繰り返す:

    1. 数式デリミタ（\\( \\) \\[ \\] $$）を除去（中身は残す）
    2. \\boxed{} / \\text{} を中身に置換
    3. \\frac{A}{B} を "A/B" に変換
    4. \\times を "x" に置換
    5. 太字マーカー（**）と "Answer:" ラベルを除去
    6. 各行の前後の空白を除去し、3行以上の改行を空行1つにまとめ、全体をトリム

    どのステップも変化がある場合は必ずテキストを短くするため、繰り返しは必ず終了する。
    入れ子の記法も最後まで展開されるので normalize(normalize(s)) == normalize(s) となる。

    Args:
        raw: 上流モデルの応答テキスト

    Returns:
        正規化されたテキスト
    """
    text, protected, pattern = _protect_quotations(raw)
    while True:
        cleaned = _normalize_once(text)
        if cleaned == text:
            break
        text = cleaned
    return _restore_quotations(text, protected, pattern)
