"""Completion engine."""

from __future__ import annotations

from .engine import CompletionContext, CompletionEngine, rank

__all__ = ["CompletionContext", "CompletionEngine", "rank"]
