"""Diagnostics pipeline and external compiler integration."""

from __future__ import annotations

from .compiler import (
    CompilerNotFoundError,
    CompilerResult,
    CompilerRunner,
    parse_compiler_output,
)
from .pipeline import AnalysisSource, CompileJob, DiagnosticsPipeline, Publisher, merge_diagnostics

__all__ = [
    "AnalysisSource",
    "CompileJob",
    "CompilerNotFoundError",
    "CompilerResult",
    "CompilerRunner",
    "DiagnosticsPipeline",
    "Publisher",
    "merge_diagnostics",
    "parse_compiler_output",
]
