"""
tests/test_lexer.py – Tokenizer tests.

Run with:  python -m pytest tests/
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from PyvLexer import MAX_TOKEN_LENGTH, LexError, TokenTooLong, tokenize


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _types(source):
    return [tok.type for tok in tokenize(source)]


def _significant(source):
    return [
        (tok.type, tok.value)
        for tok in tokenize(source)
        if tok.type not in ("WHITESPACE", "TAB", "NEWLINE")
    ]


# ---------------------------------------------------------------------------
# Token classes
# ---------------------------------------------------------------------------

class TestTokenClasses(unittest.TestCase):

    def test_definition_line(self):
        self.assertEqual(
            _types("def main():"),
            ["DEF", "WHITESPACE", "IDENTIFIER", "LPAREN", "RPAREN", "COLON"],
        )

    def test_keywords_are_promoted(self):
        self.assertEqual(
            _significant("int return if while for def"),
            [("INT", "int"), ("RETURN", "return"), ("IF", "if"),
             ("WHILE", "while"), ("FOR", "for"), ("DEF", "def")],
        )

    def test_identifier_with_keyword_prefix(self):
        self.assertEqual(_significant("define"), [("IDENTIFIER", "define")])

    def test_integer_value_is_int(self):
        (tok,) = tokenize("42")
        self.assertEqual(tok.type, "INTEGER")
        self.assertEqual(tok.value, 42)

    def test_operators(self):
        self.assertEqual(
            _significant("= += -= -> == !="),
            [("EQUAL", "="), ("PLUSEQUAL", "+="), ("MINUSEQUAL", "-="),
             ("RARROW", "->"), ("EQEQ", "=="), ("NOTEQ", "!=")],
        )

    def test_unrecognised_punctuation_is_unknown(self):
        self.assertEqual(_significant("x ! y"),
                         [("IDENTIFIER", "x"), ("UNKNOWN", "!"), ("IDENTIFIER", "y")])

    def test_operator_needs_surrounding_separation(self):
        # "=-" is one run and matches no operator
        self.assertEqual(_significant("x =-1")[1], ("UNKNOWN", "=-"))

    def test_tabs_are_never_merged(self):
        self.assertEqual(_types("\t\tx"), ["TAB", "TAB", "IDENTIFIER"])

    def test_punctuation_runs_are_merged(self):
        self.assertEqual(_significant("(("), [("LPAREN", "((")])

    def test_carriage_return_is_whitespace(self):
        self.assertEqual(_types("x\r\n"), ["IDENTIFIER", "WHITESPACE", "NEWLINE"])

    def test_comment_runs_to_end_of_line(self):
        toks = tokenize("x # it's a note\ny")
        self.assertEqual([t.type for t in toks],
                         ["IDENTIFIER", "WHITESPACE", "COMMENT", "NEWLINE", "IDENTIFIER"])
        self.assertEqual(toks[2].value, "# it's a note")


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

class TestStrings(unittest.TestCase):

    def test_string_then_newline(self):
        toks = tokenize('"abc"\n')
        self.assertEqual([t.type for t in toks], ["STRING", "NEWLINE"])
        self.assertEqual(toks[0].value, "abc")

    def test_single_quotes(self):
        self.assertEqual(_significant("'abc'"), [("STRING", "abc")])

    def test_escapes_are_substituted(self):
        (tok,) = tokenize('"a\\nb\\tc"')
        self.assertEqual(tok.value, "a\nb\tc")

    def test_string_keeps_inner_whitespace_and_punctuation(self):
        (tok,) = tokenize('"  x = (1) # no comment"')
        self.assertEqual(tok.value, "  x = (1) # no comment")

    def test_unterminated_string(self):
        with self.assertRaises(LexError) as cm:
            tokenize('print("abc')
        self.assertEqual(cm.exception.lineno, 1)

    def test_multiline_string_advances_line_numbers(self):
        toks = tokenize('"a\nb"\nc')
        self.assertEqual(toks[0].value, "a\nb")
        self.assertEqual(toks[-1].lineno, 3)


# ---------------------------------------------------------------------------
# Line numbers, determinism and limits
# ---------------------------------------------------------------------------

class TestLexerBehaviour(unittest.TestCase):

    SOURCE = 'def main():\n\tx = 3\n\tif x == 3:\n\t\tprint("yes")\n\treturn x\n'

    def test_deterministic(self):
        first = [(t.type, t.value, t.lineno, t.lexpos) for t in tokenize(self.SOURCE)]
        second = [(t.type, t.value, t.lineno, t.lexpos) for t in tokenize(self.SOURCE)]
        self.assertEqual(first, second)

    def test_line_numbers(self):
        toks = [t for t in tokenize(self.SOURCE) if t.type == "RETURN"]
        self.assertEqual(toks[0].lineno, 5)

    def test_each_call_starts_at_line_one(self):
        tokenize("a\nb\nc\n")
        self.assertEqual(tokenize("x")[0].lineno, 1)

    def test_token_at_limit(self):
        (tok,) = tokenize("a" * MAX_TOKEN_LENGTH)
        self.assertEqual(len(tok.value), MAX_TOKEN_LENGTH)

    def test_token_over_limit(self):
        with self.assertRaises(TokenTooLong):
            tokenize("a" * (MAX_TOKEN_LENGTH + 1))

    def test_integer_over_limit(self):
        with self.assertRaises(TokenTooLong):
            tokenize("1" * (MAX_TOKEN_LENGTH + 1))

    def test_custom_limit(self):
        with self.assertRaises(TokenTooLong):
            tokenize("abcde", max_token_length=4)
        self.assertEqual(len(tokenize("abcd", max_token_length=4)), 1)

    def test_layout_is_exempt(self):
        toks = tokenize(" " * 200 + "x")
        self.assertEqual([t.type for t in toks], ["WHITESPACE", "IDENTIFIER"])

    def test_comment_is_exempt(self):
        toks = tokenize("#" + "c" * 200)
        self.assertEqual([t.type for t in toks], ["COMMENT"])

    def test_too_long_is_a_lex_error(self):
        self.assertTrue(issubclass(TokenTooLong, LexError))


if __name__ == "__main__":
    unittest.main()
