"""
tests/test_parser.py – Single-statement grammar tests.

Run with:  python -m pytest tests/
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from PyvLexer import tokenize
from PyvParser import (
    Assignment,
    FunctionCall,
    FunctionDefinition,
    IfStatement,
    Literal,
    ParseError,
    ReturnStatement,
    parse_statement,
)


def _parse(source):
    return parse_statement(tokenize(source))


class TestDefinitions(unittest.TestCase):

    def test_no_parameters(self):
        node = _parse("def main():")
        self.assertIsInstance(node, FunctionDefinition)
        self.assertEqual(node.name, "main")
        self.assertEqual(node.params, [])
        self.assertIsNone(node.return_size_class)

    def test_parameters_and_size_classes(self):
        node = _parse("def f(a: byte, b) -> word:")
        self.assertEqual([(p.identifier, p.size_class) for p in node.params],
                         [("a", "byte"), ("b", None)])
        self.assertEqual(node.return_size_class, "word")

    def test_missing_colon(self):
        with self.assertRaises(ParseError):
            _parse("def main()")


class TestStatements(unittest.TestCase):

    def test_call_arguments(self):
        node = _parse('print("hi", x, 3)')
        self.assertIsInstance(node, FunctionCall)
        self.assertEqual(node.call_name, "print")
        first, second, third = node.params
        self.assertIsInstance(first, Literal)
        self.assertEqual(first.value, "hi")
        self.assertEqual(second, "x")
        self.assertEqual(third.value, 3)

    def test_call_without_arguments(self):
        node = _parse("f()")
        self.assertEqual(node.params, [])

    def test_assign_integer(self):
        node = _parse("x = 3")
        self.assertIsInstance(node, Assignment)
        self.assertEqual(node.identifier, "x")
        self.assertEqual(node.value.value, 3)

    def test_assign_identifier(self):
        self.assertEqual(_parse("x = y").value, "y")

    def test_assign_call(self):
        node = _parse("x = f(1)")
        self.assertIsInstance(node.value, FunctionCall)
        self.assertEqual(node.value.call_name, "f")

    def test_return_integer(self):
        node = _parse("return 5")
        self.assertIsInstance(node, ReturnStatement)
        self.assertEqual(node.value.value, 5)

    def test_return_identifier(self):
        self.assertEqual(_parse("return x").value, "x")

    def test_if_equal(self):
        node = _parse("if x == 5:")
        self.assertIsInstance(node, IfStatement)
        self.assertEqual((node.identifier, node.operator, node.value.value), ("x", "==", 5))

    def test_if_not_equal(self):
        self.assertEqual(_parse("if x != 0:").operator, "!=")

    def test_trailing_comment_is_ignored(self):
        self.assertEqual(_parse("return 1 # done").value.value, 1)


class TestErrors(unittest.TestCase):

    def test_empty_line(self):
        with self.assertRaises(ParseError):
            _parse("   ")

    def test_incomplete_statement(self):
        with self.assertRaises(ParseError) as cm:
            _parse("return")
        self.assertIn("end of line", cm.exception.message)

    def test_unexpected_token_has_line(self):
        with self.assertRaises(ParseError) as cm:
            _parse("x = = 3")
        self.assertEqual(cm.exception.lineno, 1)

    def test_merged_punctuation(self):
        with self.assertRaises(ParseError):
            _parse("f((1)")

    def test_unsupported_keyword(self):
        with self.assertRaises(ParseError):
            _parse("while x:")

    def test_two_statements_on_one_line(self):
        with self.assertRaises(ParseError):
            _parse("return 1 2")

    def test_parser_recovers_between_calls(self):
        with self.assertRaises(ParseError):
            _parse("x = ")
        self.assertEqual(_parse("return 2").value.value, 2)


if __name__ == "__main__":
    unittest.main()
