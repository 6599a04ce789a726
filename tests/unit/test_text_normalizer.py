"""応答テキストの正規化のテスト"""

import pytest

from dualmind.utils.text_normalizer import normalize


class TestNormalize:
    """normalize のテスト"""

    def test_removes_math_delimiters(self):
        """数式デリミタは除去され、中身は残る"""
        assert normalize(r"The result is \(x + 1\)") == "The result is x + 1"
        assert normalize(r"\[a = b\]") == "a = b"
        assert normalize("$$y$$") == "y"

    def test_unwraps_boxed_and_text(self):
        """\\boxed{} と \\text{} は中身に置換される"""
        assert normalize(r"\boxed{42}") == "42"
        assert normalize(r"\text{meters}") == "meters"

    def test_unwraps_nested_wrappers(self):
        """入れ子の記法も最後まで展開される"""
        assert normalize(r"\boxed{\text{yes}}") == "yes"

    def test_converts_fractions(self):
        """\\frac{A}{B} は A/B になる"""
        assert normalize(r"\(\frac{1}{2}\)") == "1/2"
        assert normalize(r"\dfrac{a}{b}") == "a/b"

    def test_converts_times(self):
        """\\times は x になる"""
        assert normalize(r"3 \times 4") == "3 x 4"

    def test_keeps_longer_commands_starting_with_times(self):
        """\\timestamp のような別コマンドは置換しない"""
        assert normalize(r"\timestamp") == r"\timestamp"

    def test_removes_bold_and_answer_label(self):
        """太字マーカーと Answer ラベルは除去される"""
        assert normalize("**Final Answer:** 15 widgets") == "15 widgets"
        assert normalize("Answer: yes") == "yes"
        assert normalize("This is **important**") == "This is important"

    def test_collapses_whitespace(self):
        """行ごとの前後の空白を除去し、連続する空行は1つにまとめる"""
        assert normalize("  first  \n\n\n\n  second  ") == "first\n\nsecond"

    def test_keeps_single_blank_line(self):
        """空行1つはそのまま"""
        assert normalize("a\n\nb") == "a\n\nb"

    def test_empty_string(self):
        """空文字列は空文字列のまま"""
        assert normalize("") == ""

    def test_plain_text_unchanged(self):
        """記法を含まないテキストは変化しない"""
        text = "Five machines produce 15 widgets in 6 minutes."
        assert normalize(text) == text

    def test_protects_attributed_quotations(self):
        """話者に帰属する直接引用は加工しない"""
        raw = 'He replied "the doctor said **wait**" and **left**'
        assert normalize(raw) == 'He replied "the doctor said **wait**" and left'

    @pytest.mark.parametrize(
        "raw",
        [
            "see \ue0007\ue001 here",
            'see \ue0000\ue001 and "she said **no**"',
            "".join(chr(c) for c in range(0xE000, 0xE010)) + ' "he said **hi**"',
        ],
    )
    def test_private_use_characters_in_input(self, raw):
        """入力に私用領域の文字が含まれていても失敗せず、そのまま残る"""
        result = normalize(raw)

        assert "\ue000" in result
        assert normalize(result) == result

    def test_private_use_characters_do_not_swap_quotations(self):
        """入力中の私用領域の文字が引用と入れ替わらない"""
        raw = 'keep \ue0000\ue001 and "she said **no**" **done**'

        assert normalize(raw) == 'keep \ue0000\ue001 and "she said **no**" done'

    def test_normalizes_unattributed_quotations(self):
        """帰属のない引用は通常どおり正規化する"""
        assert normalize('Use "**bold**" here') == 'Use "bold" here'

    @pytest.mark.parametrize(
        "raw",
        [
            r"**Answer:** \boxed{\frac{3}{4}}",
            "  \\[ 2 \\times 3 \\]  \n\n\n\n**6**",
            r"\boxed{\text{\(x\)}}",
            'She said "the **answer** is \\(x\\)" and Answer: **y**',
            "plain text",
        ],
    )
    def test_idempotent(self, raw):
        """normalize(normalize(s)) == normalize(s)"""
        once = normalize(raw)
        assert normalize(once) == once
