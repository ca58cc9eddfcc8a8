"""CLI parser and command behaviour tests."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from pbls.cli import _build_parser, format_diagnostic, main
from pbls.models import Diagnostic, DiagnosticCode, DiagnosticSource, Position, Range, Severity


@pytest.fixture(autouse=True)
def reset_pbls_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("pbls")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "symbols"])
    assert args.verbose is True
    assert args.command == "symbols"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["check", "a.proto", "--verbose"])
    assert args.verbose is True
    assert args.command == "check"


def test_cli_collects_repeated_proto_paths() -> None:
    parser = _build_parser()
    args = parser.parse_args(["check", "-I", "inc", "--proto-path", "vendor", "--no-compiler", "a.proto", "b.proto"])
    assert args.proto_paths == ["inc", "vendor"]
    assert args.no_compiler is True
    assert args.paths == ["a.proto", "b.proto"]


def test_cli_serve_defaults() -> None:
    parser = _build_parser()
    args = parser.parse_args(["serve"])
    assert (args.host, args.port, args.root) == ("127.0.0.1", 8000, ".")


def test_format_diagnostic_uses_one_based_positions(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    diagnostic = Diagnostic(
        path=tmp_path / "a.proto",
        message="boom",
        severity=Severity.WARNING,
        source=DiagnosticSource.COMPILER,
        code=DiagnosticCode.COMPILER_ERROR,
        range=Range(Position(2, 4), Position(2, 4)),
    )
    whole_file = Diagnostic(
        path=tmp_path / "a.proto",
        message="tool failed",
        severity=Severity.ERROR,
        source=DiagnosticSource.COMPILER,
        code=DiagnosticCode.EXTERNAL_TOOL_FAILURE,
    )

    assert format_diagnostic(diagnostic) == "a.proto:3:5: warning: boom"
    assert format_diagnostic(whole_file) == "a.proto: error: tool failed"


def test_check_reports_errors_and_exits_non_zero(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "broken.proto").write_text("message {\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit) as excinfo:
        main(["check", "--root", str(tmp_path), "--no-compiler", "broken.proto"])

    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert captured.out.splitlines() == [
        "broken.proto:1:9: error: unexpected '{', expected identifier",
        "broken.proto:2:1: error: unexpected end of file, expected '}'",
    ]
    assert "2 error(s) found" in captured.err


def test_check_passes_clean_files(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "inc").mkdir()
    (tmp_path / "inc" / "dep.proto").write_text("package dep;\nmessage D {}\n", encoding="utf-8")
    (tmp_path / "ok.proto").write_text(
        'syntax = "proto3";\nimport "dep.proto";\nmessage Ok { dep.D d = 1; }\n', encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)

    main(["check", "--root", str(tmp_path), "--no-compiler", "-I", "inc", "ok.proto"])

    assert capsys.readouterr().out == ""


def test_symbols_lists_matches(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "a.proto").write_text("package a; message Foo { string name = 1; }\n", encoding="utf-8")
    (tmp_path / ".pbls.yml").write_text("compiler:\n  enabled: false\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    main(["symbols", "--root", str(tmp_path), "Foo"])

    assert capsys.readouterr().out.splitlines() == [
        "message    a.Foo  a.proto:1:20",
    ]


def test_invalid_config_exits_with_message(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".pbls.yml").write_text("proto_paths: [oops\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["symbols", "--root", str(tmp_path)])

    assert excinfo.value.code == 1
    assert "Failed to parse" in capsys.readouterr().err


def test_repeated_runs_do_not_stack_log_handlers(tmp_path: Path) -> None:
    (tmp_path / "a.proto").write_text("message A {}\n", encoding="utf-8")
    (tmp_path / ".pbls.yml").write_text("compiler:\n  enabled: false\n", encoding="utf-8")

    main(["symbols", "--root", str(tmp_path), "A"])
    main(["--log-file", str(tmp_path / "logs" / "pbls.log"), "symbols", "--root", str(tmp_path), "A"])

    handlers = logging.getLogger("pbls").handlers
    assert [type(handler) for handler in handlers] == [logging.StreamHandler, logging.FileHandler]
    assert (tmp_path / "logs" / "pbls.log").exists()
