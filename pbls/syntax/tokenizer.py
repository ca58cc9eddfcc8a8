"""Tokenizer for the protobuf schema language."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ..models import Span


class TokenKind(str, Enum):
    IDENT = "identifier"
    INT = "integer"
    FLOAT = "float"
    STRING = "string"
    SYMBOL = "symbol"
    EOF = "end of file"


@dataclass(frozen=True)
class Token:
    """A lexical token. ``value`` holds the decoded contents of string literals."""

    kind: TokenKind
    text: str
    span: Span
    line_start: bool = False
    value: Optional[str] = None
    terminated: bool = True

    @property
    def start(self) -> int:
        return self.span.start

    @property
    def end(self) -> int:
        return self.span.end

    def is_symbol(self, *symbols: str) -> bool:
        return self.kind is TokenKind.SYMBOL and self.text in symbols

    def is_ident(self, *names: str) -> bool:
        if self.kind is not TokenKind.IDENT:
            return False
        return not names or self.text in names

    def describe(self) -> str:
        if self.kind is TokenKind.EOF:
            return "end of file"
        return f"'{self.text}'"


@dataclass(frozen=True)
class LexError:
    """A tokenizer problem, reported by the parser as a syntax diagnostic."""

    message: str
    span: Span


_PUNCTUATION = frozenset("{}[]()<>;,.=-+:/")
_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "?": "?",
}


def tokenize(text: str) -> Tuple[List[Token], List[LexError]]:
    """Split ``text`` into tokens; comments and whitespace are dropped.

    The returned list always ends with an EOF token.
    """
    tokens: List[Token] = []
    errors: List[LexError] = []
    length = len(text)
    index = 0
    line_start = True

    while index < length:
        char = text[index]

        if char == "\n":
            line_start = True
            index += 1
            continue
        if char.isspace():
            index += 1
            continue

        if text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline < 0 else newline
            continue
        if text.startswith("/*", index):
            close = text.find("*/", index + 2)
            if close < 0:
                errors.append(LexError("unterminated block comment", Span(index, length)))
                index = length
            else:
                if "\n" in text[index:close]:
                    line_start = True
                index = close + 2
            continue

        start = index
        if char.isalpha() or char == "_":
            while index < length and (text[index].isalnum() or text[index] == "_"):
                index += 1
            tokens.append(Token(TokenKind.IDENT, text[start:index], Span(start, index), line_start))
        elif char.isdigit() or (char == "." and index + 1 < length and text[index + 1].isdigit()):
            index, kind = _scan_number(text, index)
            tokens.append(Token(kind, text[start:index], Span(start, index), line_start))
        elif char in {'"', "'"}:
            index, value, terminated = _scan_string(text, index)
            if not terminated:
                errors.append(LexError("unterminated string literal", Span(start, index)))
            tokens.append(
                Token(
                    TokenKind.STRING,
                    text[start:index],
                    Span(start, index),
                    line_start,
                    value=value,
                    terminated=terminated,
                )
            )
        elif char in _PUNCTUATION:
            index += 1
            tokens.append(Token(TokenKind.SYMBOL, char, Span(start, index), line_start))
        else:
            index += 1
            errors.append(LexError(f"unexpected character '{char}'", Span(start, index)))
            continue
        line_start = False

    tokens.append(Token(TokenKind.EOF, "", Span(length, length), line_start))
    return tokens, errors


def _scan_number(text: str, index: int) -> Tuple[int, TokenKind]:
    length = len(text)
    if text.startswith(("0x", "0X"), index):
        index += 2
        while index < length and (text[index].isdigit() or text[index].lower() in "abcdef"):
            index += 1
        return index, TokenKind.INT

    kind = TokenKind.INT
    while index < length and text[index].isdigit():
        index += 1
    if index < length and text[index] == ".":
        kind = TokenKind.FLOAT
        index += 1
        while index < length and text[index].isdigit():
            index += 1
    if index < length and text[index] in "eE":
        lookahead = index + 1
        if lookahead < length and text[lookahead] in "+-":
            lookahead += 1
        if lookahead < length and text[lookahead].isdigit():
            kind = TokenKind.FLOAT
            index = lookahead
            while index < length and text[index].isdigit():
                index += 1
    # Trailing identifier characters (e.g. "1abc") stay attached so the
    # parser reports a single bad token.
    while index < length and (text[index].isalnum() or text[index] == "_"):
        index += 1
    return index, kind


def _scan_string(text: str, index: int) -> Tuple[int, str, bool]:
    quote = text[index]
    index += 1
    length = len(text)
    chars: List[str] = []
    while index < length:
        char = text[index]
        if char == quote:
            return index + 1, "".join(chars), True
        if char == "\n":
            return index, "".join(chars), False
        if char == "\\" and index + 1 < length:
            escaped = text[index + 1]
            chars.append(_ESCAPES.get(escaped, escaped))
            index += 2
            continue
        chars.append(char)
        index += 1
    return index, "".join(chars), False


__all__ = ["LexError", "Token", "TokenKind", "tokenize"]
