"""Debounced diagnostics: local analysis merged with external compiler results."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..logging import get_logger
from ..models import Diagnostic, DiagnosticCode, DiagnosticSource, Severity
from .compiler import CompilerNotFoundError, CompilerRunner

Publisher = Callable[[Path, List[Diagnostic]], None]


@dataclass(frozen=True)
class CompileJob:
    """Snapshot of one document handed to the compiler."""

    path: Path
    version: int
    text: str
    import_path: str
    include_dirs: Tuple[Path, ...]


class AnalysisSource(Protocol):
    """What the pipeline needs from the workspace."""

    root: Path

    def compile_job(self, path: Path) -> Optional[CompileJob]: ...

    def current_version(self, path: Path) -> Optional[int]: ...

    def local_diagnostics(self, path: Path) -> List[Diagnostic]: ...


class DiagnosticsPipeline:
    """Publishes per-file diagnostics and refreshes compiler results in the background.

    Each ``schedule`` call restarts a per-file quiet-period timer; when it
    fires the current text is compiled on a worker thread. Results are tagged
    with the version they were computed for and dropped if the document moved
    on in the meantime.
    """

    def __init__(
        self,
        source: AnalysisSource,
        compiler: CompilerRunner | None = None,
        *,
        publisher: Publisher | None = None,
        debounce_seconds: float = 0.3,
        max_workers: int = 2,
    ) -> None:
        self._source = source
        self._compiler = compiler
        self._publisher = publisher
        self._debounce = debounce_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pbls-compiler")
        self._timers: Dict[Path, threading.Timer] = {}
        self._inflight = 0
        self._compiled: Dict[Path, Tuple[int, List[Diagnostic]]] = {}
        self._workspace_diagnostics: List[Diagnostic] = []
        self._condition = threading.Condition(threading.RLock())
        self._closed = False
        self.logger = get_logger("diagnostics.pipeline")

    @property
    def compiler_enabled(self) -> bool:
        return self._compiler is not None

    def schedule(self, path: Path) -> None:
        """Restart the quiet-period timer for ``path``."""
        if self._compiler is None:
            return
        with self._condition:
            if self._closed:
                return
            previous = self._timers.pop(path, None)
            if previous is not None:
                previous.cancel()
                self.logger.debug("Debounced compiler run for %s", path)
            timer = threading.Timer(self._debounce, self._fire, args=(path,))
            timer.daemon = True
            self._timers[path] = timer
            timer.start()

    def publish(self, path: Path) -> List[Diagnostic]:
        """Push the current merged diagnostics for ``path``."""
        diagnostics = self.get(path)
        if self._publisher is not None:
            self._publisher(path, diagnostics)
        return diagnostics

    def get(self, path: Path) -> List[Diagnostic]:
        local = self._source.local_diagnostics(path)
        with self._condition:
            compiled = list(self._compiled.get(path, (0, []))[1])
        return merge_diagnostics(local, compiled)

    def workspace_diagnostics(self) -> List[Diagnostic]:
        with self._condition:
            return list(self._workspace_diagnostics)

    def run_now(self, path: Path) -> List[Diagnostic]:
        """Compile ``path`` synchronously and return the merged diagnostics."""
        job = self._source.compile_job(path)
        if job is not None:
            self._execute(job)
        return self.get(path)

    def forget(self, path: Path) -> None:
        """Drop state for a closed document and clear its published diagnostics."""
        with self._condition:
            timer = self._timers.pop(path, None)
            if timer is not None:
                timer.cancel()
            self._compiled.pop(path, None)
            self._condition.notify_all()
        if self._publisher is not None:
            self._publisher(path, [])

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no timer or compiler run is pending; False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while self._timers or self._inflight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._condition.wait(remaining)
            return True

    def shutdown(self) -> None:
        with self._condition:
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._condition.notify_all()
        self._executor.shutdown(wait=True)
        self.logger.info("Diagnostics pipeline stopped")

    # ------------------------------------------------------------------
    # Internals

    def _fire(self, path: Path) -> None:
        with self._condition:
            timer = self._timers.get(path)
            if timer is None or timer is not threading.current_thread():
                return
            del self._timers[path]
            if self._closed:
                self._condition.notify_all()
                return
            self._inflight += 1
        try:
            self._executor.submit(self._run, path)
        except RuntimeError:
            # Executor shut down between the timer firing and submission.
            self._finish()

    def _run(self, path: Path) -> None:
        try:
            job = self._source.compile_job(path)
            if job is None:
                return
            if self._execute(job):
                self.publish(path)
        except Exception:  # pragma: no cover - worker threads must not die silently
            self.logger.exception("Compiler run for %s failed", path)
        finally:
            self._finish()

    def _finish(self) -> None:
        with self._condition:
            self._inflight -= 1
            self._condition.notify_all()

    def _execute(self, job: CompileJob) -> bool:
        """Run the compiler for ``job``; returns True when the result was stored."""
        if self._compiler is None:
            return False
        try:
            diagnostics = self._compiler.diagnostics(job.path, job.text, job.import_path, job.include_dirs)
        except CompilerNotFoundError as exc:
            self._disable(str(exc))
            return False

        with self._condition:
            # Compare and store under the same lock.
            current = self._source.current_version(job.path)
            stored = self._compiled.get(job.path)
            if current is None or current > job.version or (stored is not None and stored[0] > job.version):
                self.logger.debug(
                    "Discarding stale compiler result for %s (version %d, current %s)",
                    job.path,
                    job.version,
                    current,
                )
                return False
            self._compiled[job.path] = (job.version, diagnostics)
        self.logger.debug("Compiler reported %d diagnostics for %s", len(diagnostics), job.path)
        return True

    def _disable(self, message: str) -> None:
        with self._condition:
            if self._compiler is None:
                return
            self._compiler = None
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._workspace_diagnostics = [
                Diagnostic(
                    path=self._source.root,
                    message=f"{message}; compiler diagnostics are disabled",
                    severity=Severity.WARNING,
                    source=DiagnosticSource.COMPILER,
                    code=DiagnosticCode.EXTERNAL_TOOL_FAILURE,
                )
            ]
            self._condition.notify_all()
        self.logger.warning("%s; compiler diagnostics are disabled", message)


def merge_diagnostics(*groups: Sequence[Diagnostic]) -> List[Diagnostic]:
    """Union of diagnostic groups; the first of any duplicates wins."""
    seen: set[tuple[object, ...]] = set()
    merged: List[Diagnostic] = []
    for group in groups:
        for diagnostic in group:
            key = diagnostic.dedupe_key()
            if key in seen:
                continue
            seen.add(key)
            merged.append(diagnostic)
    return merged


__all__ = [
    "AnalysisSource",
    "CompileJob",
    "DiagnosticsPipeline",
    "Publisher",
    "merge_diagnostics",
]
