"""Immutable, span-annotated syntax tree for one schema file."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator, List, Optional, Tuple, Type, TypeVar

from ..models import Range, Span
from ..text import LineIndex
from .tokenizer import Token


class InvariantError(AssertionError):
    """Raised when a syntax tree breaks span containment; always a parser defect."""


class NodeKind(str, Enum):
    SYNTAX = "syntax"
    PACKAGE = "package"
    IMPORT = "import"
    OPTION = "option"
    MESSAGE = "message"
    ENUM = "enum"
    ENUM_VALUE = "enum_value"
    FIELD = "field"
    ONEOF = "oneof"
    SERVICE = "service"
    METHOD = "method"
    EXTEND = "extend"
    RESERVED = "reserved"
    ERROR = "error"


@dataclass(frozen=True, kw_only=True)
class Node:
    kind: ClassVar[NodeKind]

    span: Span
    range: Range
    children: Tuple["Node", ...] = ()

    def walk(self) -> Iterator["Node"]:
        """Yield this node and its descendants in source order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True, kw_only=True)
class SyntaxNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.SYNTAX

    keyword: str = "syntax"
    value: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class PackageNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.PACKAGE

    name: Optional[str] = None
    name_span: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class ImportNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.IMPORT

    path: Optional[str] = None
    path_span: Optional[Span] = None
    modifier: Optional[str] = None
    terminated: bool = True


@dataclass(frozen=True, kw_only=True)
class OptionNode(Node):
    """``option name = value;`` or one entry of a ``[...]`` option list.

    ``extension`` holds the parenthesised part of a custom option name, if any.
    """

    kind: ClassVar[NodeKind] = NodeKind.OPTION

    name: Optional[str] = None
    name_span: Optional[Span] = None
    extension: Optional[str] = None
    extension_span: Optional[Span] = None
    value: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class MessageNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.MESSAGE

    name: Optional[str] = None
    name_span: Optional[Span] = None
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class EnumNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.ENUM

    name: Optional[str] = None
    name_span: Optional[Span] = None
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class EnumValueNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.ENUM_VALUE

    name: Optional[str] = None
    name_span: Optional[Span] = None
    number: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class FieldNode(Node):
    """A field; map fields carry ``map_key`` and the value type in ``type_name``."""

    kind: ClassVar[NodeKind] = NodeKind.FIELD

    label: Optional[str] = None
    type_name: Optional[str] = None
    type_span: Optional[Span] = None
    map_key: Optional[str] = None
    name: Optional[str] = None
    name_span: Optional[Span] = None
    number: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class OneofNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.ONEOF

    name: Optional[str] = None
    name_span: Optional[Span] = None
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class ServiceNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.SERVICE

    name: Optional[str] = None
    name_span: Optional[Span] = None
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class MethodNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.METHOD

    name: Optional[str] = None
    name_span: Optional[Span] = None
    input_type: Optional[str] = None
    input_span: Optional[Span] = None
    input_stream: bool = False
    output_type: Optional[str] = None
    output_span: Optional[Span] = None
    output_stream: bool = False
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class ExtendNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.EXTEND

    type_name: Optional[str] = None
    type_span: Optional[Span] = None
    body: Optional[Span] = None


@dataclass(frozen=True, kw_only=True)
class ReservedNode(Node):
    """``reserved`` or ``extensions`` statement."""

    kind: ClassVar[NodeKind] = NodeKind.RESERVED

    keyword: str = "reserved"
    names: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ErrorNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.ERROR

    message: str = ""


NodeT = TypeVar("NodeT", bound=Node)

CONTAINER_TYPES: Tuple[Type[Node], ...] = (
    MessageNode,
    EnumNode,
    OneofNode,
    ServiceNode,
    MethodNode,
    ExtendNode,
)


@dataclass(frozen=True)
class SyntaxTree:
    """Parse result for one file: top-level nodes, tokens and a line index."""

    text: str
    children: Tuple[Node, ...]
    tokens: Tuple[Token, ...]
    line_index: LineIndex = field(compare=False, repr=False)

    @property
    def span(self) -> Span:
        return Span(0, len(self.text))

    def walk(self) -> Iterator[Node]:
        for child in self.children:
            yield from child.walk()

    def nodes_of(self, node_type: Type[NodeT]) -> List[NodeT]:
        return [node for node in self.walk() if isinstance(node, node_type)]

    def package(self) -> Optional[str]:
        for node in self.children:
            if isinstance(node, PackageNode) and node.name:
                return node.name
        return None

    def syntax_version(self) -> Optional[str]:
        for node in self.children:
            if isinstance(node, SyntaxNode):
                return node.value
        return None

    def path_to(self, offset: int) -> List[Node]:
        """Return the chain of nodes enclosing ``offset``, outermost first."""
        chain: List[Node] = []
        children = self.children
        while True:
            match = None
            for child in children:
                if child.span.start <= offset <= child.span.end:
                    match = child
                    # Prefer the later sibling when the cursor sits on a shared edge.
                    if offset < child.span.end:
                        break
            if match is None:
                return chain
            chain.append(match)
            children = match.children

    def node_at(self, offset: int) -> Optional[Node]:
        chain = self.path_to(offset)
        return chain[-1] if chain else None

    def validate(self) -> None:
        """Check that children nest inside parents and siblings never overlap."""
        _validate_children(self.span, self.children, "file")


def _validate_children(parent: Span, children: Tuple[Node, ...], owner: str) -> None:
    previous: Optional[Node] = None
    for child in children:
        if not parent.encloses(child.span):
            raise InvariantError(
                f"{child.kind.value} span {child.span} escapes its parent {owner} span {parent}"
            )
        if previous is not None and previous.span.end > child.span.start:
            raise InvariantError(
                f"{child.kind.value} span {child.span} overlaps sibling "
                f"{previous.kind.value} span {previous.span}"
            )
        _validate_children(child.span, child.children, child.kind.value)
        previous = child


__all__ = [
    "CONTAINER_TYPES",
    "EnumNode",
    "EnumValueNode",
    "ErrorNode",
    "ExtendNode",
    "FieldNode",
    "ImportNode",
    "InvariantError",
    "MessageNode",
    "MethodNode",
    "Node",
    "NodeKind",
    "OneofNode",
    "OptionNode",
    "PackageNode",
    "ReservedNode",
    "ServiceNode",
    "SyntaxNode",
    "SyntaxTree",
]
