#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

import unittest

from txscript.errors import ErrorPhase
from txscript.lexer import Lexer, TokenType, tokenize


class TestLexer(unittest.TestCase):
    def token_types(self, source, include_eof=False):
        tokens, _ = tokenize(source)
        types = [tok.type for tok in tokens]
        if not include_eof:
            types = [t for t in types if t != TokenType.EOF]
        return types

    def tokens(self, source, include_eof=False):
        toks, _ = tokenize(source)
        if not include_eof:
            toks = [t for t in toks if t.type != TokenType.EOF]
        return toks

    def errors(self, source):
        _, errors = tokenize(source)
        return errors

    def test_empty(self):
        tokens = self.tokens("", include_eof=True)
        self.assertEqual(len(tokens), 1)
        self.assertEqual(tokens[0].type, TokenType.EOF)

    def test_newline(self):
        tokens = self.tokens("\n")
        self.assertEqual([t.type for t in tokens], [TokenType.NEWLINE])
        self.assertEqual(tokens[0].line, 1)
        self.assertEqual(tokens[0].column, 1)

    def test_identifiers(self):
        tokens = self.tokens("foo bar _baz")
        self.assertEqual([t.type for t in tokens], [TokenType.IDENTIFIER] * 3)
        self.assertEqual([t.text for t in tokens], ["foo", "bar", "_baz"])

    def test_keywords(self):
        keywords = {
            "var": TokenType.VAR,
            "send": TokenType.SEND,
            "delay": TokenType.DELAY,
            "repeat": TokenType.REPEAT,
            "loop": TokenType.LOOP,
            "if": TokenType.IF,
            "else": TokenType.ELSE,
            "wait_for": TokenType.WAIT_FOR,
            "random": TokenType.RANDOM,
            "random_bytes": TokenType.RANDOM_BYTES,
            "function": TokenType.FUNCTION,
            "return": TokenType.RETURN,
            "on_receive": TokenType.ON_RECEIVE,
            "on_interval": TokenType.ON_INTERVAL,
            "break": TokenType.BREAK,
            "continue": TokenType.CONTINUE,
            "print": TokenType.PRINT,
            "ext": TokenType.EXT,
            "timeout": TokenType.TIMEOUT,
            "data": TokenType.DATA,
            "true": TokenType.TRUE,
            "false": TokenType.FALSE,
        }
        for word, expected in keywords.items():
            with self.subTest(word=word):
                self.assertEqual(self.token_types(word), [expected])

    def test_keyword_prefix_is_identifier(self):
        self.assertEqual(self.token_types("sender loops"), [TokenType.IDENTIFIER] * 2)

    def test_hex_number(self):
        tokens = self.tokens("0x7DF")
        self.assertEqual(len(tokens), 1)
        self.assertEqual(tokens[0].type, TokenType.HEX_NUMBER)
        self.assertEqual(tokens[0].text, "0x7DF")

    def test_hex_uppercase_prefix(self):
        tokens = self.tokens("0X1a")
        self.assertEqual(tokens[0].type, TokenType.HEX_NUMBER)

    def test_hex_without_digits(self):
        tokens, errors = tokenize("0x")
        self.assertEqual(tokens[0].type, TokenType.ERROR)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].phase, ErrorPhase.LEX)

    def test_decimal_and_float(self):
        tokens = self.tokens("42 3.14")
        self.assertEqual([t.type for t in tokens], [TokenType.NUMBER, TokenType.FLOAT_NUMBER])
        self.assertEqual(tokens[1].text, "3.14")

    def test_dot_without_fraction_is_not_float(self):
        self.assertEqual(
            self.token_types("1.x"),
            [TokenType.NUMBER, TokenType.DOT, TokenType.IDENTIFIER],
        )

    def test_time_suffix(self):
        tokens = self.tokens("500s")
        self.assertEqual(len(tokens), 1)
        self.assertEqual(tokens[0].type, TokenType.NUMBER)
        self.assertEqual(tokens[0].text, "500s")

    def test_time_suffix_requires_word_boundary(self):
        self.assertEqual(self.token_types("5sec"), [TokenType.NUMBER, TokenType.IDENTIFIER])

    def test_string_escapes(self):
        tokens = self.tokens(r'"a\n\t\"\\b"')
        self.assertEqual(tokens[0].type, TokenType.STRING)
        self.assertEqual(tokens[0].value, 'a\n\t"\\b')
        self.assertEqual(tokens[0].text, r'"a\n\t\"\\b"')

    def test_unknown_escape(self):
        tokens, errors = tokenize(r'"a\qb"')
        self.assertEqual(tokens[0].type, TokenType.STRING)
        self.assertEqual(tokens[0].value, "aqb")
        self.assertEqual(len(errors), 1)
        self.assertIn("escape", errors[0].message)
        self.assertEqual(errors[0].column, 3)

    def test_unterminated_string(self):
        tokens, errors = tokenize('print "abc')
        self.assertGreaterEqual(len(errors), 1)
        self.assertEqual(errors[0].phase, ErrorPhase.LEX)
        self.assertEqual((errors[0].line, errors[0].column), (1, 7))
        self.assertEqual(tokens[-1].type, TokenType.EOF)
        self.assertIn(TokenType.ERROR, [t.type for t in tokens])

    def test_unterminated_string_resumes_next_line(self):
        tokens, errors = tokenize('var s = "abc\nvar t = 1')
        self.assertEqual(len(errors), 1)
        types = [t.type for t in tokens]
        self.assertEqual(types.count(TokenType.VAR), 2)
        self.assertIn(TokenType.NEWLINE, types)

    def test_operators(self):
        ops = {
            "+": TokenType.PLUS,
            "-": TokenType.MINUS,
            "*": TokenType.STAR,
            "/": TokenType.SLASH,
            "%": TokenType.PERCENT,
            "&": TokenType.AMPERSAND,
            "|": TokenType.PIPE,
            "^": TokenType.CARET,
            "~": TokenType.TILDE,
            "<<": TokenType.SHL,
            ">>": TokenType.SHR,
            "==": TokenType.EQ,
            "!=": TokenType.NE,
            "<": TokenType.LT,
            "<=": TokenType.LE,
            ">": TokenType.GT,
            ">=": TokenType.GE,
            "&&": TokenType.AND,
            "||": TokenType.OR,
            "!": TokenType.NOT,
            "=": TokenType.ASSIGN,
            "?": TokenType.QUESTION,
        }
        for op, expected in ops.items():
            with self.subTest(op=op):
                self.assertEqual(self.token_types(op), [expected])

    def test_maximal_munch(self):
        self.assertEqual(
            self.token_types("a<<=b"),
            [TokenType.IDENTIFIER, TokenType.SHL, TokenType.ASSIGN, TokenType.IDENTIFIER],
        )

    def test_line_comment(self):
        self.assertEqual(
            self.token_types("x // comment\ny"),
            [TokenType.IDENTIFIER, TokenType.NEWLINE, TokenType.IDENTIFIER],
        )

    def test_nested_block_comment(self):
        self.assertEqual(self.token_types("a /* x /* y */ z */ b"), [TokenType.IDENTIFIER] * 2)

    def test_unterminated_block_comment(self):
        tokens, errors = tokenize("a /* never closed")
        self.assertEqual(len(errors), 1)
        self.assertEqual((errors[0].line, errors[0].column), (1, 3))
        self.assertEqual(tokens[-1].type, TokenType.EOF)

    def test_block_comment_column_accounting(self):
        tokens = self.tokens("/* one\ntwo */ x")
        self.assertEqual((tokens[0].line, tokens[0].column), (2, 8))

    def test_columns(self):
        tokens = self.tokens("var  x = 1")
        self.assertEqual([t.column for t in tokens], [1, 6, 8, 10])

    def test_unexpected_character(self):
        tokens, errors = tokenize("x @ y")
        self.assertEqual(
            [t.type for t in tokens],
            [TokenType.IDENTIFIER, TokenType.ERROR, TokenType.IDENTIFIER, TokenType.EOF],
        )
        self.assertEqual(len(errors), 1)
        self.assertIn("'@'", errors[0].message)
        self.assertEqual(errors[0].column, 3)

    def test_only_ascii_digits_start_numbers(self):
        tokens, errors = tokenize("var x = 5²")
        self.assertEqual(
            [t.type for t in tokens],
            [
                TokenType.VAR,
                TokenType.IDENTIFIER,
                TokenType.ASSIGN,
                TokenType.NUMBER,
                TokenType.ERROR,
                TokenType.EOF,
            ],
        )
        self.assertEqual(tokens[3].text, "5")
        self.assertEqual(len(errors), 1)
        self.assertIn("'²'", errors[0].message)
        self.assertEqual(errors[0].phase, ErrorPhase.LEX)

    def test_non_ascii_digit_in_hex_and_float(self):
        self.assertEqual(self.tokens("0x1٣")[0].text, "0x1")
        self.assertEqual(self.tokens("1.٣")[0].type, TokenType.NUMBER)

    def test_newline_suppressed_in_brackets(self):
        types = self.token_types("send(0x100,\n  [1,\n 2])\nx")
        self.assertEqual(types.count(TokenType.NEWLINE), 1)

    def test_newline_kept_in_braces(self):
        types = self.token_types("loop {\nx\n}")
        self.assertEqual(types.count(TokenType.NEWLINE), 2)

    def test_always_ends_with_eof(self):
        samples = ["", '"', "/*", "0x", "@@@", "((((", "\n\n", '"\\']
        for source in samples:
            with self.subTest(source=source):
                tokens = self.tokens(source, include_eof=True)
                self.assertEqual(tokens[-1].type, TokenType.EOF)

    def test_lexer_class_interface(self):
        tokens, errors = Lexer("x = 1").tokenize()
        self.assertEqual(errors, [])
        self.assertEqual(len(tokens), 4)


if __name__ == "__main__":
    unittest.main()
