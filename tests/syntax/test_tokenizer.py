"""Tests for the schema tokenizer."""

from __future__ import annotations

from pbls.syntax import TokenKind, tokenize


def test_tokenize_skips_comments_and_tracks_line_starts() -> None:
    text = 'syntax = "proto3"; // trailing\n/* block\ncomment */ message Foo {}\n'
    tokens, errors = tokenize(text)

    assert errors == []
    assert [token.text for token in tokens[:-1]] == [
        "syntax",
        "=",
        '"proto3"',
        ";",
        "message",
        "Foo",
        "{",
        "}",
    ]
    assert tokens[-1].kind is TokenKind.EOF
    message = tokens[4]
    assert message.line_start is True
    assert tokens[5].line_start is False
    assert text[message.start : message.end] == "message"


def test_tokenize_decodes_string_escapes() -> None:
    tokens, errors = tokenize(r'"a\"b\n" ' + "'single'")

    assert errors == []
    assert tokens[0].kind is TokenKind.STRING
    assert tokens[0].value == 'a"b\n'
    assert tokens[1].value == "single"


def test_tokenize_classifies_numbers() -> None:
    tokens, _ = tokenize("1 0x1F 017 1.5 2e10 .5")

    kinds = [token.kind for token in tokens[:-1]]
    assert kinds == [
        TokenKind.INT,
        TokenKind.INT,
        TokenKind.INT,
        TokenKind.FLOAT,
        TokenKind.FLOAT,
        TokenKind.FLOAT,
    ]


def test_unterminated_string_stops_at_line_end() -> None:
    text = 'import "foo\nmessage A {}'
    tokens, errors = tokenize(text)

    string = tokens[1]
    assert string.kind is TokenKind.STRING
    assert string.terminated is False
    assert string.value == "foo"
    assert tokens[2].text == "message"
    assert tokens[2].line_start is True
    assert [error.message for error in errors] == ["unterminated string literal"]


def test_unknown_characters_and_open_comments_are_reported() -> None:
    tokens, errors = tokenize("message A { @ } /* never closed")

    assert [token.text for token in tokens[:-1]] == ["message", "A", "{", "}"]
    assert [error.message for error in errors] == [
        "unexpected character '@'",
        "unterminated block comment",
    ]
