"""External schema compiler invocation and output parsing."""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from ..logging import get_logger
from ..models import Diagnostic, DiagnosticCode, DiagnosticSource, Position, Range, Severity
from ..text import LineIndex

_LOGGER = get_logger("diagnostics.compiler")

_LINE_PATTERN = re.compile(r"^(?P<file>.+?\.proto):(?P<line>\d+):(?P<column>\d+):\s*(?P<message>.*)$")
_WARNING_PREFIX = re.compile(r"^warning:\s*", re.IGNORECASE)
_TOKEN_CHARS = re.compile(r"[\w.]+")


@dataclass(frozen=True)
class CompilerResult:
    """Exit status and combined text output of one compiler run."""

    returncode: int
    output: str


class CompilerNotFoundError(RuntimeError):
    """Raised when the compiler executable cannot be started."""


Runner = Callable[..., CompilerResult]


class CompilerRunner:
    """Runs ``protoc`` against in-memory text.

    The text is written to a temporary overlay directory that is placed first
    on the include path, so the compiler sees unsaved editor buffers while the
    imports still come from the real search roots.
    """

    def __init__(
        self,
        executable: str = "protoc",
        args: Sequence[str] = (),
        runner: Runner | None = None,
    ) -> None:
        self.executable = executable
        self.args = tuple(args)
        self._runner = runner or self._default_runner

    def build_command(self, import_path: str, include_dirs: Iterable[Path], overlay: Path) -> List[str]:
        command = [self.executable, f"-I{overlay}"]
        command.extend(f"-I{directory}" for directory in include_dirs)
        command.extend(self.args)
        # Descriptors are only produced to force a full compile.
        command.append(f"--descriptor_set_out={os.devnull}")
        command.append(import_path)
        return command

    def compile(self, text: str, import_path: str, include_dirs: Sequence[Path]) -> CompilerResult:
        """Compile ``text`` as if it lived at ``import_path`` under the include roots."""
        with tempfile.TemporaryDirectory(prefix="pbls-") as tmp:
            overlay = Path(tmp)
            target = overlay / import_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            command = self.build_command(import_path, include_dirs, overlay)
            _LOGGER.debug("Running %s", " ".join(command))
            try:
                return self._runner(command, cwd=overlay)
            except FileNotFoundError as exc:
                raise CompilerNotFoundError(
                    f"Schema compiler '{self.executable}' was not found on PATH"
                ) from exc

    def diagnostics(
        self,
        path: Path,
        text: str,
        import_path: str,
        include_dirs: Sequence[Path],
    ) -> List[Diagnostic]:
        result = self.compile(text, import_path, include_dirs)
        diagnostics = parse_compiler_output(result.output, path, import_path, text=text)
        if result.returncode != 0 and not diagnostics:
            summary = next((line.strip() for line in result.output.splitlines() if line.strip()), "")
            message = f"{self.executable} exited with status {result.returncode}"
            if summary:
                message = f"{message}: {summary}"
            _LOGGER.warning("Compiler failed on %s without parsable output: %s", path, message)
            diagnostics.append(
                Diagnostic(
                    path=path,
                    message=message,
                    severity=Severity.ERROR,
                    source=DiagnosticSource.COMPILER,
                    code=DiagnosticCode.EXTERNAL_TOOL_FAILURE,
                )
            )
        return diagnostics

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path) -> CompilerResult:
        import subprocess

        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=False,
            text=True,
            capture_output=True,
        )
        return CompilerResult(returncode=completed.returncode, output=completed.stderr + completed.stdout)


def parse_compiler_output(
    output: str,
    path: Path,
    import_path: str,
    *,
    text: Optional[str] = None,
) -> List[Diagnostic]:
    """Map ``file:line:column: message`` lines for ``import_path`` to diagnostics.

    Lines for other files and lines in any other format are dropped. The
    compiler reports one-based positions; diagnostics use zero-based ones.
    """
    line_index = LineIndex(text) if text is not None else None
    diagnostics: List[Diagnostic] = []
    for raw in output.splitlines():
        match = _LINE_PATTERN.match(raw.strip())
        if match is None:
            continue
        reported = match.group("file").replace("\\", "/")
        if reported != import_path and not reported.endswith("/" + import_path):
            continue
        message = match.group("message").strip()
        severity = Severity.ERROR
        if _WARNING_PREFIX.match(message):
            severity = Severity.WARNING
            message = _WARNING_PREFIX.sub("", message, count=1)
        start = Position(
            line=max(int(match.group("line")) - 1, 0),
            character=max(int(match.group("column")) - 1, 0),
        )
        diagnostics.append(
            Diagnostic(
                path=path,
                message=message,
                severity=severity,
                source=DiagnosticSource.COMPILER,
                code=DiagnosticCode.COMPILER_ERROR,
                range=Range(start=start, end=_token_end(start, text, line_index)),
            )
        )
    return diagnostics


def _token_end(start: Position, text: Optional[str], line_index: Optional[LineIndex]) -> Position:
    if text is None or line_index is None:
        return start
    offset = line_index.offset(start)
    match = _TOKEN_CHARS.match(text, offset)
    if match is None:
        return start
    return line_index.position(match.end())


__all__ = [
    "CompilerNotFoundError",
    "CompilerResult",
    "CompilerRunner",
    "Runner",
    "parse_compiler_output",
]
