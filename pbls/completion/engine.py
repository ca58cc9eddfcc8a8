"""Context-sensitive completion."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..constants import (
    ENUM_KEYWORDS,
    FIELD_LABELS,
    MAP_KEY_TYPES,
    MESSAGE_KEYWORDS,
    ONEOF_KEYWORDS,
    OPTION_TABLES,
    SCALAR_TYPES,
    SERVICE_KEYWORDS,
    SYNTAX_SNIPPETS,
    TOP_LEVEL_KEYWORDS,
    WELL_KNOWN_TYPES,
)
from ..documents import Document
from ..index import WELL_KNOWN_ROOT, ImportResolver, WorkspaceIndex, relative_name
from ..logging import get_logger
from ..models import TYPE_KINDS, CompletionItem, CompletionKind, SymbolKind
from ..syntax import (
    EnumNode,
    ExtendNode,
    MessageNode,
    MethodNode,
    Node,
    OneofNode,
    ServiceNode,
    Token,
    TokenKind,
)

_WORD = re.compile(r"[\w.]*$")

_CONTAINER_KINDS = {
    MessageNode: "message",
    EnumNode: "enum",
    ServiceNode: "service",
    OneofNode: "oneof",
    MethodNode: "method",
    ExtendNode: "extend",
}

_STATEMENT_KEYWORDS = {
    "file": TOP_LEVEL_KEYWORDS,
    "message": MESSAGE_KEYWORDS,
    "enum": ENUM_KEYWORDS,
    "service": SERVICE_KEYWORDS,
    "oneof": ONEOF_KEYWORDS,
    "method": ("option",),
    "extend": FIELD_LABELS,
}

# Containers whose statements may begin with a type name.
_TYPED_BODIES = frozenset({"message", "oneof", "extend"})

_MESSAGE_KINDS = frozenset({SymbolKind.MESSAGE})


@dataclass(frozen=True)
class CompletionContext:
    """Where the cursor sits: enclosing container, scope and the word being typed."""

    container: str
    scope: str
    prefix: str
    previous: Tuple[Token, ...]

    def previous_token(self, back: int = 1) -> Optional[Token]:
        if len(self.previous) < back:
            return None
        return self.previous[-back]


class CompletionEngine:
    """Proposes ranked candidates for a cursor position in a parsed document."""

    def __init__(self, index: WorkspaceIndex, resolver: ImportResolver) -> None:
        self._index = index
        self._resolver = resolver
        self.logger = get_logger("completion")

    def complete(self, document: Document, offset: int) -> List[CompletionItem]:
        offset = min(max(offset, 0), len(document.text))
        if not document.text.strip():
            return [
                CompletionItem(label=snippet, kind=CompletionKind.SNIPPET, insert_text=snippet)
                for snippet in SYNTAX_SNIPPETS
            ]
        if _in_comment(document.text, offset):
            return []

        string_token = _string_at(document.tree.tokens, offset)
        if string_token is not None:
            index = document.tree.tokens.index(string_token)
            if _is_import_string(document.tree.tokens, index):
                prefix = document.text[string_token.start + 1 : offset]
                return rank(self._import_items(document, string_token, quoted=False), prefix)
            return []

        context = self._context(document, offset)
        self.logger.debug(
            "Completion at %s:%d container=%s prefix=%r", document.path, offset, context.container, context.prefix
        )
        return rank(self._candidates(document, context), context.prefix)

    # ------------------------------------------------------------------
    # Context classification

    def _context(self, document: Document, offset: int) -> CompletionContext:
        prefix = _WORD.search(document.text[:offset])
        word = prefix.group(0) if prefix else ""
        word_start = offset - len(word)
        previous = tuple(
            token
            for token in document.tree.tokens
            if token.kind is not TokenKind.EOF and token.end <= word_start
        )
        container, scope = _enclosing(document, offset)
        return CompletionContext(container=container, scope=scope, prefix=word, previous=previous)

    def _candidates(self, document: Document, context: CompletionContext) -> List[CompletionItem]:
        prev = context.previous_token()
        prev2 = context.previous_token(2)
        prev3 = context.previous_token(3)
        prev4 = context.previous_token(4)

        if prev is not None and prev.is_ident("import", "public", "weak"):
            if prev.is_ident("import") or (prev2 is not None and prev2.is_ident("import")):
                return self._import_items(document, None, quoted=True)

        if prev is not None and prev.is_ident("option") and (prev2 is None or prev2.is_symbol(";", "{", "}")):
            return self._option_items(document, context, _option_kind(context.container), parens=True)
        if prev is not None and prev.is_symbol("("):
            if prev2 is not None and prev2.is_ident("option"):
                return self._option_items(document, context, _option_kind(context.container), parens=False, builtin=False)
            if _inside_brackets(context.previous[:-1]):
                return self._option_items(document, context, _bracket_option_kind(context.container), parens=False, builtin=False)
        if prev is not None and prev.is_symbol("[", ",") and _inside_brackets(context.previous):
            return self._option_items(document, context, _bracket_option_kind(context.container), parens=True)

        if prev is not None and prev.is_symbol("<") and prev2 is not None and prev2.is_ident("map"):
            return [CompletionItem(label=name, kind=CompletionKind.SCALAR) for name in MAP_KEY_TYPES]
        if (
            prev is not None
            and prev.is_symbol(",")
            and prev3 is not None
            and prev3.is_symbol("<")
            and prev4 is not None
            and prev4.is_ident("map")
        ):
            return self._type_items(document, context, scalars=True)

        if _is_rpc_type_position(context.previous):
            return self._type_items(document, context, scalars=False)
        if prev is not None and prev.is_ident("extend") and (prev2 is None or prev2.is_symbol(";", "{", "}")):
            return self._type_items(document, context, scalars=False)
        if prev is not None and prev.is_ident(*FIELD_LABELS) and context.container in _TYPED_BODIES:
            return self._type_items(document, context, scalars=True)

        if prev is None or prev.is_symbol(";", "{", "}"):
            items = [
                CompletionItem(label=keyword, kind=CompletionKind.KEYWORD)
                for keyword in _STATEMENT_KEYWORDS.get(context.container, ())
            ]
            if context.container in _TYPED_BODIES:
                items.extend(self._type_items(document, context, scalars=True))
            return items
        return []

    # ------------------------------------------------------------------
    # Candidate sources

    def _import_items(self, document: Document, token: Optional[Token], *, quoted: bool) -> List[CompletionItem]:
        file_index = self._index.get(document.path)
        imported = set()
        if file_index is not None:
            imported = {entry.path for entry in file_index.imports if token is None or entry.span != token.span}
        own = self._resolver.import_string(document.path, document.path)
        closing = token is None or not token.terminated
        items: List[CompletionItem] = []
        for candidate in self._resolver.list_importable(document.path):
            if candidate == own or candidate in imported:
                continue
            insert = f'{candidate}";' if closing else candidate
            if quoted:
                insert = f'"{insert}'
            items.append(CompletionItem(label=candidate, kind=CompletionKind.FILE, insert_text=insert))
        return items

    def _type_items(self, document: Document, context: CompletionContext, *, scalars: bool) -> List[CompletionItem]:
        kinds = TYPE_KINDS if scalars else _MESSAGE_KINDS
        items: List[CompletionItem] = []
        for symbol in self._index.visible_symbols(document.path, kinds):
            items.append(
                CompletionItem(
                    label=relative_name(symbol, context.scope),
                    kind=CompletionKind.MESSAGE if symbol.kind is SymbolKind.MESSAGE else CompletionKind.ENUM,
                    detail=symbol.fqn,
                )
            )
        for fqn, kind_value in self._well_known_types(document):
            kind = SymbolKind(kind_value)
            if kind not in kinds:
                continue
            items.append(
                CompletionItem(
                    label=fqn,
                    kind=CompletionKind.MESSAGE if kind is SymbolKind.MESSAGE else CompletionKind.ENUM,
                    detail=fqn,
                )
            )
        if scalars:
            items.extend(CompletionItem(label=name, kind=CompletionKind.SCALAR) for name in SCALAR_TYPES)
        return items

    def _well_known_types(self, document: Document) -> List[Tuple[str, str]]:
        imported = {
            target.relative_to(WELL_KNOWN_ROOT).as_posix()
            for _, target in self._index.resolved_imports(document.path)
            if target is not None and target.is_relative_to(WELL_KNOWN_ROOT)
        }
        return [(fqn, kind) for fqn, (kind, file) in WELL_KNOWN_TYPES.items() if file in imported]

    def _option_items(
        self,
        document: Document,
        context: CompletionContext,
        kind: str,
        *,
        parens: bool,
        builtin: bool = True,
    ) -> List[CompletionItem]:
        names, descriptor = OPTION_TABLES[kind]
        items: List[CompletionItem] = []
        if builtin:
            items.extend(CompletionItem(label=name, kind=CompletionKind.OPTION, detail=descriptor) for name in names)
        for symbol in self._index.visible_extensions(document.path, descriptor):
            name = relative_name(symbol, context.scope)
            items.append(
                CompletionItem(
                    label=f"({name})" if parens else name,
                    kind=CompletionKind.OPTION,
                    detail=symbol.fqn,
                )
            )
        return items


def rank(items: Iterable[CompletionItem], prefix: str) -> List[CompletionItem]:
    """Deduplicate by label; prefix matches first, then fuzzy matches, each alphabetical."""
    unique: dict[str, CompletionItem] = {}
    for item in items:
        unique.setdefault(item.label, item)
    needle = prefix.lower()
    exact: List[CompletionItem] = []
    fuzzy: List[CompletionItem] = []
    for item in unique.values():
        label = item.label.lower()
        if label.startswith(needle):
            exact.append(item)
        elif _is_subsequence(needle, label):
            fuzzy.append(item)
    return sorted(exact, key=_label_key) + sorted(fuzzy, key=_label_key)


def _label_key(item: CompletionItem) -> Tuple[str, str]:
    return item.label.lower(), item.label


def _is_subsequence(needle: str, haystack: str) -> bool:
    remaining = iter(haystack)
    return all(char in remaining for char in needle)


def _in_comment(text: str, offset: int) -> bool:
    line_start = text.rfind("\n", 0, offset) + 1
    if "//" in re.sub(r'"[^"]*"?', "", text[line_start:offset]):
        return True
    opened = text.rfind("/*", 0, offset)
    return opened >= 0 and text.find("*/", opened + 2, offset) < 0


def _string_at(tokens: Sequence[Token], offset: int) -> Optional[Token]:
    for token in tokens:
        if token.kind is not TokenKind.STRING:
            continue
        if token.start < offset and (offset < token.end or not token.terminated):
            return token
    return None


def _is_import_string(tokens: Sequence[Token], index: int) -> bool:
    before = list(tokens[max(index - 2, 0) : index])
    if before and before[-1].is_ident("import"):
        return True
    return len(before) == 2 and before[0].is_ident("import") and before[1].is_ident("public", "weak")


def _enclosing(document: Document, offset: int) -> Tuple[str, str]:
    """Return the innermost container kind around ``offset`` and its scope name."""
    text = document.text
    scope_parts: List[str] = []
    package = document.tree.package()
    if package:
        scope_parts.append(package)
    container = "file"
    for node in _container_chain(text, document.tree.children, offset):
        body = getattr(node, "body", None)
        kind = _CONTAINER_KINDS.get(type(node))
        if kind is None or body is None or not _inside_body(text, body.start, body.end, offset):
            continue
        container = kind
        if isinstance(node, MessageNode) and node.name:
            scope_parts.append(node.name)
    return container, ".".join(scope_parts)


def _container_chain(text: str, children: Sequence[Node], offset: int) -> List[Node]:
    # An unclosed body runs to the end of the text, past its node's last token.
    chain: List[Node] = []
    while True:
        match = None
        for child in children:
            body = getattr(child, "body", None)
            if child.span.start <= offset <= child.span.end:
                match = child
                if offset < child.span.end:
                    break
            elif body is not None and body.start < offset and not _is_closed(text, body.start, body.end):
                match = child
        if match is None:
            return chain
        chain.append(match)
        children = match.children


def _inside_body(text: str, start: int, end: int, offset: int) -> bool:
    if offset <= start:
        return False
    return offset < end or not _is_closed(text, start, end)


def _is_closed(text: str, start: int, end: int) -> bool:
    return end - start >= 2 and text[end - 1] == "}"


def _inside_brackets(tokens: Sequence[Token]) -> bool:
    depth = 0
    for token in reversed(tokens):
        if token.is_symbol(";", "{", "}"):
            return False
        if token.is_symbol("]"):
            depth += 1
        elif token.is_symbol("["):
            if depth == 0:
                return True
            depth -= 1
    return False


def _is_rpc_type_position(tokens: Sequence[Token]) -> bool:
    """``rpc Name(|`` / ``returns (|`` optionally followed by ``stream``."""
    tail = list(tokens[-4:])
    if tail and tail[-1].is_ident("stream"):
        tail = tail[:-1]
    if not tail or not tail[-1].is_symbol("("):
        return False
    before = tail[:-1]
    if before and before[-1].is_ident("returns"):
        return True
    return len(before) >= 2 and before[-2].is_ident("rpc") and before[-1].kind is TokenKind.IDENT


def _option_kind(container: str) -> str:
    if container in {"file", "message", "enum", "service", "oneof", "method"}:
        return container
    return "file"


def _bracket_option_kind(container: str) -> str:
    return "enum_value" if container == "enum" else "field"


__all__ = ["CompletionContext", "CompletionEngine", "rank"]
