"""Import resolution and the cross-file symbol index."""

from __future__ import annotations

from .imports import WELL_KNOWN_ROOT, ImportResolver, is_well_known_path
from .symbols import Extension, FileIndex, ImportEntry, extract, join_name
from .workspace_index import WorkspaceIndex, relative_name, symbol_matches

__all__ = [
    "Extension",
    "FileIndex",
    "ImportEntry",
    "ImportResolver",
    "WELL_KNOWN_ROOT",
    "WorkspaceIndex",
    "extract",
    "is_well_known_path",
    "join_name",
    "relative_name",
    "symbol_matches",
]
