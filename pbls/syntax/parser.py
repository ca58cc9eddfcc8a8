"""Error-tolerant recursive-descent parser for protobuf schema files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Type, TypeVar

from ..constants import DECLARATION_KEYWORDS, FIELD_LABELS
from ..logging import get_logger
from ..models import Diagnostic, DiagnosticCode, DiagnosticSource, Severity, Span
from ..text import LineIndex
from .tokenizer import Token, TokenKind, tokenize
from .tree import (
    EnumNode,
    EnumValueNode,
    ErrorNode,
    ExtendNode,
    FieldNode,
    ImportNode,
    MessageNode,
    MethodNode,
    Node,
    OneofNode,
    OptionNode,
    PackageNode,
    ReservedNode,
    ServiceNode,
    SyntaxNode,
    SyntaxTree,
)

_LOGGER = get_logger("syntax.parser")

_MEMORY_PATH = Path("<memory>")

NodeT = TypeVar("NodeT", bound=Node)


@dataclass(frozen=True)
class ParseResult:
    """Syntax tree plus the syntax diagnostics found while building it."""

    tree: SyntaxTree
    diagnostics: Tuple[Diagnostic, ...]


def parse(text: str, path: Path | None = None) -> ParseResult:
    """Parse ``text`` into a syntax tree; never raises on malformed input."""
    return _Parser(text, path or _MEMORY_PATH).parse()


class _Parser:
    def __init__(self, text: str, path: Path) -> None:
        self._text = text
        self._path = path
        self._lines = LineIndex(text)
        tokens, lex_errors = tokenize(text)
        self._tokens = tokens
        self._pos = 0
        self._last_end = 0
        self._diagnostics: List[Diagnostic] = []
        for error in lex_errors:
            self._report(error.message, error.span)

    # ------------------------------------------------------------------
    # Entry point

    def parse(self) -> ParseResult:
        children: List[Node] = []
        while not self._at_eof():
            node = self._top_level_statement()
            if node is not None:
                children.append(node)
        tree = SyntaxTree(
            text=self._text,
            children=tuple(children),
            tokens=tuple(self._tokens),
            line_index=self._lines,
        )
        diagnostics = tuple(sorted(self._diagnostics, key=lambda d: d.span if d.span is not None else Span(0, 0)))
        _LOGGER.debug(
            "Parsed %s: %d top-level nodes, %d syntax diagnostics",
            self._path,
            len(children),
            len(diagnostics),
        )
        return ParseResult(tree=tree, diagnostics=diagnostics)

    # ------------------------------------------------------------------
    # Token helpers

    def _peek(self, ahead: int = 0) -> Token:
        index = min(self._pos + ahead, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.EOF:
            self._pos += 1
            self._last_end = token.end
        return token

    def _at_eof(self) -> bool:
        return self._peek().kind is TokenKind.EOF

    def _accept_symbol(self, symbol: str) -> Optional[Token]:
        if self._peek().is_symbol(symbol):
            return self._advance()
        return None

    def _report(self, message: str, span: Span) -> None:
        self._diagnostics.append(
            Diagnostic(
                path=self._path,
                message=message,
                severity=Severity.ERROR,
                source=DiagnosticSource.SYNTAX,
                code=DiagnosticCode.SYNTAX_ERROR,
                range=self._lines.range(span),
                span=span,
            )
        )

    def _unexpected(self, expected: str) -> str:
        token = self._peek()
        message = f"unexpected {token.describe()}, expected {expected}"
        self._report(message, token.span)
        return message

    def _node(self, node_type: Type[NodeT], start: int, children: List[Node], **fields: object) -> NodeT:
        span = Span(start, max(start, self._last_end))
        return node_type(
            span=span,
            range=self._lines.range(span),
            children=tuple(children),
            **fields,
        )

    # ------------------------------------------------------------------
    # Recovery

    def _skip_block(self) -> None:
        depth = 0
        while not self._at_eof():
            token = self._advance()
            if token.is_symbol("{"):
                depth += 1
            elif token.is_symbol("}"):
                depth -= 1
                if depth <= 0:
                    return

    def _starts_declaration(self, token: Token) -> bool:
        return token.line_start and token.is_ident(*DECLARATION_KEYWORDS)

    def _recover(self) -> None:
        """Skip to the next statement boundary."""
        while not self._at_eof():
            token = self._peek()
            if token.is_symbol(";"):
                self._advance()
                return
            if token.is_symbol("{"):
                self._skip_block()
                return
            if token.is_symbol("}") or self._starts_declaration(token):
                return
            self._advance()

    def _fail(self, expected: str, children: List[Node]) -> None:
        """Report the current token and attach the skipped region as an ErrorNode."""
        message = self._unexpected(expected)
        token = self._peek()
        if token.kind is TokenKind.EOF or token.is_symbol("}") or self._starts_declaration(token):
            return
        start = token.start
        self._recover()
        if self._last_end > start:
            children.append(self._node(ErrorNode, start, [], message=message))

    def _error_statement(self, expected: str) -> ErrorNode:
        """Consume an unparseable statement, always making progress."""
        message = self._unexpected(expected)
        token = self._peek()
        start = token.start
        if token.is_symbol("{"):
            self._skip_block()
        else:
            self._advance()
            if not token.is_symbol("}"):
                self._recover()
        return self._node(ErrorNode, start, [], message=message)

    def _expect_semicolon(self, children: List[Node]) -> None:
        if self._accept_symbol(";"):
            return
        token = self._peek()
        if token.line_start or token.kind is TokenKind.EOF or token.is_symbol("}"):
            # Missing terminator: the next line starts a fresh statement.
            self._unexpected("';'")
            return
        self._fail("';'", children)

    # ------------------------------------------------------------------
    # Shared constructs

    def _full_ident(self, allow_leading_dot: bool = True) -> Optional[Tuple[str, Span]]:
        start_pos = self._pos
        start = self._peek().start
        parts: List[str] = []
        if allow_leading_dot and self._peek().is_symbol(".") and self._peek(1).kind is TokenKind.IDENT:
            self._advance()
            parts.append(".")
        if self._peek().kind is not TokenKind.IDENT:
            self._pos = start_pos
            return None
        parts.append(self._advance().text)
        while self._peek().is_symbol(".") and self._peek(1).kind is TokenKind.IDENT:
            self._advance()
            parts.append(".")
            parts.append(self._advance().text)
        return "".join(parts), Span(start, self._last_end)

    def _int_literal(self) -> Optional[int]:
        negative = False
        if self._peek().is_symbol("-") and self._peek(1).kind is TokenKind.INT:
            self._advance()
            negative = True
        token = self._peek()
        if token.kind is not TokenKind.INT:
            return None
        self._advance()
        value = _parse_int(token.text)
        if value is None:
            self._report(f"invalid integer literal '{token.text}'", token.span)
            return None
        return -value if negative else value

    def _string_literal(self) -> Optional[Token]:
        token = self._peek()
        if token.kind is not TokenKind.STRING:
            return None
        self._advance()
        # Adjacent literals concatenate.
        while self._peek().kind is TokenKind.STRING and token.terminated:
            following = self._advance()
            token = Token(
                TokenKind.STRING,
                self._text[token.start : following.end],
                Span(token.start, following.end),
                token.line_start,
                value=(token.value or "") + (following.value or ""),
                terminated=following.terminated,
            )
        return token

    def _option_name(self) -> Optional[Tuple[str, Span, Optional[str], Optional[Span]]]:
        start = self._peek().start
        extension: Optional[str] = None
        extension_span: Optional[Span] = None
        expect_part = True
        while expect_part:
            token = self._peek()
            if token.is_symbol("("):
                self._advance()
                ident = self._full_ident()
                if ident is None:
                    return None
                if extension is None:
                    extension, extension_span = ident
                if not self._accept_symbol(")"):
                    return None
            elif token.kind is TokenKind.IDENT:
                self._advance()
            else:
                return None
            expect_part = False
            if self._peek().is_symbol(".") and (
                self._peek(1).kind is TokenKind.IDENT or self._peek(1).is_symbol("(")
            ):
                self._advance()
                expect_part = True
        span = Span(start, self._last_end)
        return self._text[span.start : span.end], span, extension, extension_span

    def _option_value(self) -> Optional[str]:
        start = self._peek().start
        token = self._peek()
        if token.is_symbol("{"):
            self._skip_block()
        elif token.is_symbol("-", "+") and self._peek(1).kind in (
            TokenKind.INT,
            TokenKind.FLOAT,
            TokenKind.IDENT,
        ):
            self._advance()
            self._advance()
        elif token.kind is TokenKind.STRING:
            self._string_literal()
        elif token.kind in (TokenKind.INT, TokenKind.FLOAT):
            self._advance()
        elif token.kind is TokenKind.IDENT:
            self._full_ident()
        else:
            return None
        return self._text[start : self._last_end]

    def _option_entry(self, start: int, children: List[Node]) -> Optional[OptionNode]:
        """Parse ``name = value`` after any leading keyword; returns None if no name was read."""
        name = self._option_name()
        if name is None:
            self._fail("option name", children)
            return None
        text, name_span, extension, extension_span = name
        fields = dict(
            name=text,
            name_span=name_span,
            extension=extension,
            extension_span=extension_span,
        )
        if not self._accept_symbol("="):
            self._fail("'='", children)
            return self._node(OptionNode, start, children, **fields)
        value = self._option_value()
        if value is None:
            self._fail("option value", children)
        return self._node(OptionNode, start, children, value=value, **fields)

    def _option_statement(self) -> OptionNode:
        start = self._advance().start
        children: List[Node] = []
        reported = len(self._diagnostics)
        entry = self._option_entry(start, children)
        if entry is None:
            return self._node(OptionNode, start, children)
        if len(self._diagnostics) == reported:
            self._expect_semicolon(children)
        return self._node(
            OptionNode,
            start,
            children,
            name=entry.name,
            name_span=entry.name_span,
            extension=entry.extension,
            extension_span=entry.extension_span,
            value=entry.value,
        )

    def _field_options(self, children: List[Node]) -> bool:
        """Parse ``[a = 1, b = 2]``; returns False when recovery already ended the statement."""
        self._advance()
        while True:
            reported = len(self._diagnostics)
            entry_children: List[Node] = []
            entry = self._option_entry(self._peek().start, entry_children)
            if entry is None:
                children.extend(entry_children)
                return False
            children.append(entry)
            if len(self._diagnostics) != reported:
                return False
            if self._accept_symbol(","):
                continue
            if self._accept_symbol("]"):
                return True
            self._fail("',' or ']'", children)
            return False

    def _body(self, statement: Callable[[], Optional[Node]], children: List[Node]) -> Optional[Span]:
        """Parse ``{ statements }`` into ``children``; returns the brace-delimited span."""
        open_brace = self._advance()
        while not self._at_eof() and not self._peek().is_symbol("}"):
            node = statement()
            if node is not None:
                children.append(node)
        if self._accept_symbol("}") is None:
            self._unexpected("'}'")
        return Span(open_brace.start, self._last_end)

    def _container(
        self,
        node_type: Type[NodeT],
        statement: Callable[[], Optional[Node]],
    ) -> NodeT:
        start = self._advance().start
        children: List[Node] = []
        name: Optional[str] = None
        name_span: Optional[Span] = None
        token = self._peek()
        if token.kind is TokenKind.IDENT:
            self._advance()
            name, name_span = token.text, token.span
        elif token.is_symbol("{"):
            self._unexpected("identifier")
        else:
            self._fail("identifier", children)
            return self._node(node_type, start, children)
        body: Optional[Span] = None
        if self._peek().is_symbol("{"):
            body = self._body(statement, children)
        else:
            self._fail("'{'", children)
        return self._node(node_type, start, children, name=name, name_span=name_span, body=body)

    # ------------------------------------------------------------------
    # Statements

    def _top_level_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("syntax", "edition"):
            return self._syntax()
        if token.is_ident("package"):
            return self._package()
        if token.is_ident("import"):
            return self._import()
        if token.is_ident("option"):
            return self._option_statement()
        if token.is_ident("message"):
            return self._container(MessageNode, self._message_statement)
        if token.is_ident("enum"):
            return self._container(EnumNode, self._enum_statement)
        if token.is_ident("service"):
            return self._container(ServiceNode, self._service_statement)
        if token.is_ident("extend"):
            return self._extend()
        return self._error_statement("top-level declaration")

    def _syntax(self) -> SyntaxNode:
        keyword = self._advance()
        children: List[Node] = []
        value: Optional[str] = None
        if not self._accept_symbol("="):
            self._fail("'='", children)
        else:
            literal = self._string_literal()
            if literal is None:
                self._fail("string literal", children)
            else:
                value = literal.value
                self._expect_semicolon(children)
        return self._node(SyntaxNode, keyword.start, children, keyword=keyword.text, value=value)

    def _package(self) -> PackageNode:
        start = self._advance().start
        children: List[Node] = []
        ident = self._full_ident(allow_leading_dot=False)
        if ident is None:
            self._fail("package name", children)
            return self._node(PackageNode, start, children)
        self._expect_semicolon(children)
        return self._node(PackageNode, start, children, name=ident[0], name_span=ident[1])

    def _import(self) -> ImportNode:
        start = self._advance().start
        children: List[Node] = []
        modifier: Optional[str] = None
        if self._peek().is_ident("public", "weak") and self._peek(1).kind is TokenKind.STRING:
            modifier = self._advance().text
        literal = self._string_literal()
        if literal is None:
            self._fail("import path string", children)
            return self._node(ImportNode, start, children, modifier=modifier)
        if literal.terminated:
            self._expect_semicolon(children)
        return self._node(
            ImportNode,
            start,
            children,
            path=literal.value,
            path_span=literal.span,
            modifier=modifier,
            terminated=literal.terminated,
        )

    def _message_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("message") and self._peek(1).kind is TokenKind.IDENT:
            return self._container(MessageNode, self._message_statement)
        if token.is_ident("enum") and self._peek(1).kind is TokenKind.IDENT:
            return self._container(EnumNode, self._enum_statement)
        if token.is_ident("oneof") and self._peek(1).kind is TokenKind.IDENT:
            return self._container(OneofNode, self._oneof_statement)
        if token.is_ident("extend"):
            return self._extend()
        if token.is_ident("option"):
            return self._option_statement()
        if token.is_ident("reserved", "extensions"):
            return self._reserved()
        if token.is_ident("map") and self._peek(1).is_symbol("<"):
            return self._map_field()
        if token.kind is TokenKind.IDENT or token.is_symbol("."):
            return self._field()
        return self._error_statement("field or declaration")

    def _oneof_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("option"):
            return self._option_statement()
        if token.kind is TokenKind.IDENT or token.is_symbol("."):
            return self._field()
        return self._error_statement("field")

    def _enum_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("option"):
            return self._option_statement()
        if token.is_ident("reserved"):
            return self._reserved()
        if token.kind is TokenKind.IDENT:
            return self._enum_value()
        return self._error_statement("enum value")

    def _service_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("option"):
            return self._option_statement()
        if token.is_ident("rpc"):
            return self._rpc()
        return self._error_statement("'rpc' or 'option'")

    def _method_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.is_ident("option"):
            return self._option_statement()
        return self._error_statement("'option'")

    def _field(self) -> FieldNode:
        start = self._peek().start
        children: List[Node] = []
        label: Optional[str] = None
        if self._peek().is_ident(*FIELD_LABELS) and (
            self._peek(1).kind is TokenKind.IDENT or self._peek(1).is_symbol(".")
        ):
            label = self._advance().text
        fields: dict[str, object] = {"label": label}

        type_ident = self._full_ident()
        if type_ident is None:
            self._fail("field type", children)
            return self._node(FieldNode, start, children, **fields)
        fields.update(type_name=type_ident[0], type_span=type_ident[1])
        self._field_tail(children, fields)
        return self._node(FieldNode, start, children, **fields)

    def _map_field(self) -> FieldNode:
        start = self._advance().start
        self._advance()  # '<'
        children: List[Node] = []
        fields: dict[str, object] = {}
        key = self._peek()
        if key.kind is not TokenKind.IDENT:
            self._fail("map key type", children)
            return self._node(FieldNode, start, children, **fields)
        fields["map_key"] = self._advance().text
        if not self._accept_symbol(","):
            self._fail("','", children)
            return self._node(FieldNode, start, children, **fields)
        value_type = self._full_ident()
        if value_type is None:
            self._fail("map value type", children)
            return self._node(FieldNode, start, children, **fields)
        fields.update(type_name=value_type[0], type_span=value_type[1])
        if not self._accept_symbol(">"):
            self._fail("'>'", children)
            return self._node(FieldNode, start, children, **fields)
        self._field_tail(children, fields)
        return self._node(FieldNode, start, children, **fields)

    def _field_tail(self, children: List[Node], fields: dict[str, object]) -> None:
        """Parse ``name = number [options];`` into ``fields``, keeping partial results."""
        name = self._peek()
        if name.kind is not TokenKind.IDENT:
            self._fail("field name", children)
            return
        self._advance()
        fields.update(name=name.text, name_span=name.span)
        if not self._accept_symbol("="):
            self._fail("'='", children)
            return
        number = self._int_literal()
        if number is None:
            self._fail("field number", children)
            return
        fields["number"] = number
        if self._peek().is_symbol("[") and not self._field_options(children):
            return
        self._expect_semicolon(children)

    def _enum_value(self) -> EnumValueNode:
        name = self._advance()
        children: List[Node] = []
        fields: dict[str, object] = {"name": name.text, "name_span": name.span}
        if not self._accept_symbol("="):
            self._fail("'='", children)
            return self._node(EnumValueNode, name.start, children, **fields)
        number = self._int_literal()
        if number is None:
            self._fail("enum value number", children)
            return self._node(EnumValueNode, name.start, children, **fields)
        fields["number"] = number
        if not self._peek().is_symbol("[") or self._field_options(children):
            self._expect_semicolon(children)
        return self._node(EnumValueNode, name.start, children, **fields)

    def _rpc(self) -> MethodNode:
        start = self._advance().start
        children: List[Node] = []
        fields: dict[str, object] = {}
        name = self._peek()
        if name.kind is not TokenKind.IDENT:
            self._fail("method name", children)
            return self._node(MethodNode, start, children, **fields)
        self._advance()
        fields.update(name=name.text, name_span=name.span)

        for prefix in ("input", "output"):
            if prefix == "output":
                if not self._peek().is_ident("returns"):
                    self._fail("'returns'", children)
                    return self._node(MethodNode, start, children, **fields)
                self._advance()
            if not self._accept_symbol("("):
                self._fail("'('", children)
                return self._node(MethodNode, start, children, **fields)
            if self._peek().is_ident("stream") and (
                self._peek(1).kind is TokenKind.IDENT or self._peek(1).is_symbol(".")
            ):
                self._advance()
                fields[f"{prefix}_stream"] = True
            type_ident = self._full_ident()
            if type_ident is None:
                self._fail("message type", children)
                return self._node(MethodNode, start, children, **fields)
            fields[f"{prefix}_type"] = type_ident[0]
            fields[f"{prefix}_span"] = type_ident[1]
            if not self._accept_symbol(")"):
                self._fail("')'", children)
                return self._node(MethodNode, start, children, **fields)

        if self._peek().is_symbol("{"):
            fields["body"] = self._body(self._method_statement, children)
        else:
            self._expect_semicolon(children)
        return self._node(MethodNode, start, children, **fields)

    def _extend(self) -> ExtendNode:
        start = self._advance().start
        children: List[Node] = []
        fields: dict[str, object] = {}
        type_ident = self._full_ident()
        if type_ident is None:
            self._fail("extended message type", children)
            return self._node(ExtendNode, start, children, **fields)
        fields.update(type_name=type_ident[0], type_span=type_ident[1])
        if self._peek().is_symbol("{"):
            fields["body"] = self._body(self._extend_statement, children)
        else:
            self._fail("'{'", children)
        return self._node(ExtendNode, start, children, **fields)

    def _extend_statement(self) -> Optional[Node]:
        token = self._peek()
        if token.is_symbol(";"):
            self._advance()
            return None
        if token.kind is TokenKind.IDENT or token.is_symbol("."):
            return self._field()
        return self._error_statement("field")

    def _reserved(self) -> ReservedNode:
        keyword = self._advance()
        children: List[Node] = []
        names: List[str] = []
        while not self._at_eof():
            token = self._peek()
            if token.is_symbol(";"):
                self._advance()
                break
            if token.is_symbol("}") or token.line_start:
                self._unexpected("';'")
                break
            if token.is_symbol("["):
                if not self._field_options(children):
                    break
                continue
            if token.kind is TokenKind.STRING:
                names.append(token.value or "")
            elif token.kind is TokenKind.IDENT and token.text not in {"to", "max"}:
                names.append(token.text)
            self._advance()
        return self._node(
            ReservedNode,
            keyword.start,
            children,
            keyword=keyword.text,
            names=tuple(names),
        )


def _parse_int(text: str) -> Optional[int]:
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        if len(text) > 1 and text.startswith("0"):
            return int(text, 8)
        return int(text)
    except ValueError:
        return None


__all__ = ["ParseResult", "parse"]
