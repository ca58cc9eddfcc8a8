"""Tokenizer, syntax tree and error-tolerant parser for schema files."""

from __future__ import annotations

from .parser import ParseResult, parse
from .tokenizer import LexError, Token, TokenKind, tokenize
from .tree import (
    CONTAINER_TYPES,
    EnumNode,
    EnumValueNode,
    ErrorNode,
    ExtendNode,
    FieldNode,
    ImportNode,
    InvariantError,
    MessageNode,
    MethodNode,
    Node,
    NodeKind,
    OneofNode,
    OptionNode,
    PackageNode,
    ReservedNode,
    ServiceNode,
    SyntaxNode,
    SyntaxTree,
)

__all__ = [
    "CONTAINER_TYPES",
    "EnumNode",
    "EnumValueNode",
    "ErrorNode",
    "ExtendNode",
    "FieldNode",
    "ImportNode",
    "InvariantError",
    "LexError",
    "MessageNode",
    "MethodNode",
    "Node",
    "NodeKind",
    "OneofNode",
    "OptionNode",
    "PackageNode",
    "ParseResult",
    "ReservedNode",
    "ServiceNode",
    "SyntaxNode",
    "SyntaxTree",
    "Token",
    "TokenKind",
    "parse",
    "tokenize",
]
