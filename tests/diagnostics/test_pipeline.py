from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from pbls.diagnostics import (
    CompileJob,
    CompilerResult,
    CompilerRunner,
    DiagnosticsPipeline,
    merge_diagnostics,
)
from pbls.models import (
    Diagnostic,
    DiagnosticCode,
    DiagnosticSource,
    Position,
    Range,
    Severity,
)

ROOT = Path("/ws")
PATH = ROOT / "a.proto"


class FakeSource:
    """In-memory stand-in for the workspace."""

    def __init__(self) -> None:
        self.root = ROOT
        self.text = ""
        self.version = 0
        self.local: List[Diagnostic] = []
        self._lock = threading.Lock()

    def edit(self, text: str) -> None:
        with self._lock:
            self.text = text
            self.version += 1

    def compile_job(self, path: Path) -> Optional[CompileJob]:
        with self._lock:
            return CompileJob(
                path=path,
                version=self.version,
                text=self.text,
                import_path=path.name,
                include_dirs=(path.parent,),
            )

    def current_version(self, path: Path) -> Optional[int]:
        with self._lock:
            return self.version

    def local_diagnostics(self, path: Path) -> List[Diagnostic]:
        return list(self.local)


class RecordingRunner:
    def __init__(self, output: str = "", on_call: Optional[Callable[[], None]] = None) -> None:
        self.texts: List[str] = []
        self.output = output
        self.on_call = on_call
        self._lock = threading.Lock()

    def __call__(self, args: List[str], *, cwd: Path) -> CompilerResult:
        with self._lock:
            self.texts.append((cwd / args[-1]).read_text(encoding="utf-8"))
        if self.on_call is not None:
            self.on_call()
        return CompilerResult(returncode=1 if self.output else 0, output=self.output)


def _diagnostic(message: str, line: int = 0, source: DiagnosticSource = DiagnosticSource.SYNTAX) -> Diagnostic:
    position = Position(line=line, character=0)
    return Diagnostic(
        path=PATH,
        message=message,
        severity=Severity.ERROR,
        source=source,
        code=DiagnosticCode.SYNTAX_ERROR,
        range=Range(start=position, end=position),
    )


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


def _pipeline(
    source: FakeSource, runner: RecordingRunner, published: List[Tuple[Path, List[Diagnostic]]]
) -> DiagnosticsPipeline:
    return DiagnosticsPipeline(
        source,
        CompilerRunner(runner=runner),
        publisher=lambda path, diagnostics: published.append((path, diagnostics)),
        debounce_seconds=0.05,
    )


def test_rapid_edits_collapse_into_one_compile_of_the_final_text(source: FakeSource) -> None:
    runner = RecordingRunner(output="a.proto:1:1: Expected top-level statement.\n")
    published: List[Tuple[Path, List[Diagnostic]]] = []
    pipeline = _pipeline(source, runner, published)
    try:
        for number in range(10):
            source.edit(f"message M{number} {{}}\n")
            pipeline.schedule(PATH)
        assert pipeline.wait_idle(timeout=5)
    finally:
        pipeline.shutdown()

    assert runner.texts == ["message M9 {}\n"]
    assert [d.message for d in pipeline.get(PATH)] == ["Expected top-level statement."]
    assert published[-1][0] == PATH
    assert [d.source for d in published[-1][1]] == [DiagnosticSource.COMPILER]


def test_stale_results_are_discarded(source: FakeSource) -> None:
    source.edit("message A {}\n")
    runner = RecordingRunner(
        output="a.proto:1:1: stale problem\n",
        on_call=lambda: source.edit("message B {}\n"),
    )
    pipeline = _pipeline(source, runner, [])
    try:
        diagnostics = pipeline.run_now(PATH)
    finally:
        pipeline.shutdown()

    assert runner.texts == ["message A {}\n"]
    assert diagnostics == []


def test_older_run_finishing_last_keeps_the_newer_result(source: FakeSource) -> None:
    source.edit("message A {}\n")
    older = source.compile_job(PATH)
    source.edit("message B {}\n")
    pipeline = _pipeline(source, RecordingRunner(output="a.proto:1:1: newer\n"), [])
    try:
        pipeline.run_now(PATH)
        assert older is not None
        stored = pipeline._execute(older)
    finally:
        pipeline.shutdown()

    assert stored is False
    assert [d.message for d in pipeline.get(PATH)] == ["newer"]


def test_compiler_results_merge_with_local_diagnostics(source: FakeSource) -> None:
    source.edit("message {\n")
    source.local = [_diagnostic("unexpected '{', expected identifier")]
    pipeline = _pipeline(source, RecordingRunner(output="a.proto:1:9: Expected message name.\n"), [])
    try:
        diagnostics = pipeline.run_now(PATH)
    finally:
        pipeline.shutdown()

    assert [d.source for d in diagnostics] == [DiagnosticSource.SYNTAX, DiagnosticSource.COMPILER]


def test_missing_compiler_disables_compilation_with_one_workspace_warning(source: FakeSource) -> None:
    calls: List[List[str]] = []

    def missing(args: List[str], *, cwd: Path) -> CompilerResult:
        calls.append(args)
        raise FileNotFoundError(args[0])

    source.edit("message A {}\n")
    source.local = [_diagnostic("local only")]
    pipeline = DiagnosticsPipeline(source, CompilerRunner("protoc-missing", runner=missing))
    try:
        first = pipeline.run_now(PATH)
        second = pipeline.run_now(PATH)
        pipeline.schedule(PATH)
        assert pipeline.wait_idle(timeout=1)
    finally:
        pipeline.shutdown()

    assert len(calls) == 1
    assert pipeline.compiler_enabled is False
    assert [d.message for d in first] == ["local only"]
    assert second == first
    [warning] = pipeline.workspace_diagnostics()
    assert warning.path == ROOT
    assert warning.severity is Severity.WARNING
    assert warning.code is DiagnosticCode.EXTERNAL_TOOL_FAILURE
    assert "protoc-missing" in warning.message


def test_forget_clears_published_diagnostics(source: FakeSource) -> None:
    published: List[Tuple[Path, List[Diagnostic]]] = []
    source.edit("message A {}\n")
    pipeline = _pipeline(source, RecordingRunner(output="a.proto:1:1: oops\n"), published)
    try:
        pipeline.run_now(PATH)
        pipeline.forget(PATH)
    finally:
        pipeline.shutdown()

    assert published == [(PATH, [])]
    assert pipeline.get(PATH) == []


def test_disabled_pipeline_publishes_local_diagnostics_only(source: FakeSource) -> None:
    published: Dict[Path, List[Diagnostic]] = {}
    source.local = [_diagnostic("syntax")]
    pipeline = DiagnosticsPipeline(source, None, publisher=published.__setitem__)
    try:
        pipeline.schedule(PATH)
        assert pipeline.wait_idle(timeout=0) is True
        pipeline.publish(PATH)
    finally:
        pipeline.shutdown()

    assert [d.message for d in published[PATH]] == ["syntax"]


def test_merge_diagnostics_drops_duplicates_keeping_first() -> None:
    first = _diagnostic("dup  message", line=1)
    duplicate = _diagnostic("dup message", line=1, source=DiagnosticSource.COMPILER)
    other = _diagnostic("dup message", line=2)

    assert merge_diagnostics([first], [duplicate, other]) == [first, other]
