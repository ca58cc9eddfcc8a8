"""Analysis engine for protobuf schema workspaces."""

from __future__ import annotations

from .config import ConfigError, PblsConfig, load_config
from .documents import Document, DocumentNotOpenError, DocumentStore
from .models import (
    CompletionItem,
    CompletionKind,
    Diagnostic,
    DiagnosticCode,
    DiagnosticSource,
    Location,
    Position,
    Range,
    Severity,
    Span,
    Symbol,
    SymbolKind,
    TextChange,
)
from .workspace import Workspace

__version__ = "0.1.0"

__all__ = [
    "CompletionItem",
    "CompletionKind",
    "ConfigError",
    "Diagnostic",
    "DiagnosticCode",
    "DiagnosticSource",
    "Document",
    "DocumentNotOpenError",
    "DocumentStore",
    "Location",
    "PblsConfig",
    "Position",
    "Range",
    "Severity",
    "Span",
    "Symbol",
    "SymbolKind",
    "TextChange",
    "Workspace",
    "__version__",
    "load_config",
]
