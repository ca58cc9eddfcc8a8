from __future__ import annotations

import os
from pathlib import Path
from typing import List

import pytest

from pbls.diagnostics import (
    CompilerNotFoundError,
    CompilerResult,
    CompilerRunner,
    parse_compiler_output,
)
from pbls.models import DiagnosticCode, DiagnosticSource, Position, Severity

TEXT = 'syntax = "proto3";\nmessage A {\n    string name = 1;\n    string name = 2;\n}\n'


def test_parse_compiler_output_converts_positions_to_zero_based() -> None:
    diagnostics = parse_compiler_output(
        'a.proto:3:5: "name" already defined\n', Path("/ws/a.proto"), "a.proto"
    )

    assert len(diagnostics) == 1
    diagnostic = diagnostics[0]
    assert diagnostic.path == Path("/ws/a.proto")
    assert diagnostic.message == '"name" already defined'
    assert diagnostic.severity is Severity.ERROR
    assert diagnostic.source is DiagnosticSource.COMPILER
    assert diagnostic.code is DiagnosticCode.COMPILER_ERROR
    assert diagnostic.range is not None
    assert diagnostic.range.start == Position(line=2, character=4)
    assert diagnostic.range.end == Position(line=2, character=4)


def test_parse_compiler_output_extends_range_over_token_when_text_known() -> None:
    [diagnostic] = parse_compiler_output("a.proto:4:12: dup\n", Path("/ws/a.proto"), "a.proto", text=TEXT)

    assert diagnostic.range is not None
    assert diagnostic.range.start == Position(line=3, character=11)
    assert diagnostic.range.end == Position(line=3, character=15)


def test_parse_compiler_output_filters_other_files_and_noise() -> None:
    output = "\n".join(
        [
            "other.proto:1:1: broken import",
            "sub/a.proto:2:1: warning: Import b.proto is unused.",
            "a.proto: File not found.",
            "--descriptor_set_out: whatever",
            "nested/sub/a.proto:1:2: Expected top-level statement.",
        ]
    )

    diagnostics = parse_compiler_output(output, Path("/ws/sub/a.proto"), "sub/a.proto")

    assert [(d.severity, d.message) for d in diagnostics] == [
        (Severity.WARNING, "Import b.proto is unused."),
        (Severity.ERROR, "Expected top-level statement."),
    ]


def test_build_command_orders_overlay_then_include_dirs() -> None:
    runner = CompilerRunner("protoc-x", ["--experimental_allow_proto3_optional"])

    command = runner.build_command("pkg/a.proto", [Path("/inc/one"), Path("/inc/two")], Path("/tmp/overlay"))

    assert command == [
        "protoc-x",
        "-I/tmp/overlay",
        "-I/inc/one",
        "-I/inc/two",
        "--experimental_allow_proto3_optional",
        f"--descriptor_set_out={os.devnull}",
        "pkg/a.proto",
    ]


def test_compile_writes_in_memory_text_into_overlay() -> None:
    seen: List[str] = []

    def fake_runner(args: List[str], *, cwd: Path) -> CompilerResult:
        seen.append((cwd / args[-1]).read_text(encoding="utf-8"))
        assert args[1] == f"-I{cwd}"
        return CompilerResult(returncode=0, output="")

    runner = CompilerRunner(runner=fake_runner)
    diagnostics = runner.diagnostics(Path("/ws/pkg/a.proto"), TEXT, "pkg/a.proto", [Path("/ws")])

    assert diagnostics == []
    assert seen == [TEXT]


def test_failed_run_without_parsable_lines_reports_tool_failure() -> None:
    runner = CompilerRunner(
        runner=lambda args, *, cwd: CompilerResult(returncode=2, output="\nprotoc: bad flag --nope\n")
    )

    [diagnostic] = runner.diagnostics(Path("/ws/a.proto"), TEXT, "a.proto", [])

    assert diagnostic.code is DiagnosticCode.EXTERNAL_TOOL_FAILURE
    assert diagnostic.range is None
    assert diagnostic.message == "protoc exited with status 2: protoc: bad flag --nope"


def test_missing_executable_raises_compiler_not_found() -> None:
    def missing(args: List[str], *, cwd: Path) -> CompilerResult:
        raise FileNotFoundError(args[0])

    runner = CompilerRunner("no-such-protoc", runner=missing)

    with pytest.raises(CompilerNotFoundError, match="no-such-protoc"):
        runner.compile(TEXT, "a.proto", [])
