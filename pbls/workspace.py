"""Query façade over the document store, symbol index and diagnostics."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Set

from .completion import CompletionEngine
from .config import PblsConfig, load_config
from .diagnostics import CompileJob, CompilerRunner, DiagnosticsPipeline, Publisher
from .documents import Document, DocumentStore
from .index import ImportResolver, WorkspaceIndex, extract, is_well_known_path
from .locks import ReadWriteLock
from .logging import get_logger
from .models import CompletionItem, Diagnostic, Location, Position, Symbol, TextChange


class Workspace:
    """Coordinates analysis for one workspace root.

    Mutations (open/change/close) hold the write side of a reader/writer
    lock; queries hold the read side and see a consistent snapshot. Diagnostics
    are pushed through ``publisher`` as ``(path, diagnostics)`` pairs.
    """

    def __init__(
        self,
        root: Path | str,
        config: PblsConfig | None = None,
        *,
        compiler: CompilerRunner | None = None,
        publisher: Publisher | None = None,
        resolver: ImportResolver | None = None,
        store: DocumentStore | None = None,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.config = config or load_config(self.root)
        self.resolver = resolver or ImportResolver(
            self.root,
            self.config.search_paths(),
            exclude_paths=self.config.exclude_paths,
        )
        self.documents = store or DocumentStore()
        self.index = WorkspaceIndex(self.resolver)
        self.completion_engine = CompletionEngine(self.index, self.resolver)
        if not self.config.compiler.enabled:
            compiler = None
        elif compiler is None:
            compiler = CompilerRunner(self.config.compiler.executable, self.config.compiler.args)
        self.pipeline = DiagnosticsPipeline(
            self,
            compiler,
            publisher=publisher,
            debounce_seconds=self.config.diagnostics.debounce_seconds,
        )
        self._lock = ReadWriteLock()
        self.logger = get_logger("workspace")
        self.logger.info(
            "Workspace ready at %s (compiler %s)",
            self.root,
            "enabled" if compiler is not None else "disabled",
        )

    # ------------------------------------------------------------------
    # Document lifecycle

    def open_document(self, path: Path | str, text: str, version: Optional[int] = None) -> Document:
        with self._lock.write():
            document = self.documents.open(path, text, version)
            changed = self._reindex(document)
        self._after_mutation(document.path, changed)
        return document

    def change_document(
        self,
        path: Path | str,
        text: Optional[str] = None,
        *,
        version: Optional[int] = None,
        changes: Optional[Iterable[TextChange]] = None,
    ) -> bool:
        """Apply an edit; False when it was rejected as stale or queued out of order."""
        with self._lock.write():
            document = self.documents.change(path, text, version=version, changes=changes)
            if document is None:
                return False
            changed = self._reindex(document)
        self._after_mutation(document.path, changed)
        return True

    def close_document(self, path: Path | str) -> None:
        with self._lock.write():
            document = self.documents.close(path)
            changed = self.index.remove(document.path)
        self.pipeline.forget(document.path)
        if changed:
            self._republish_open(exclude=document.path)

    def index_workspace(self) -> int:
        """Load every schema file under the search roots as a visited document."""
        loaded = 0
        with self._lock.write():
            self.resolver.refresh()
            for path in self.resolver.iter_workspace_files():
                if self.documents.get(path) is not None:
                    continue
                if self._visit(path, set()):
                    loaded += 1
        self.logger.info("Indexed %d schema files under %s", loaded, self.root)
        if loaded:
            self._republish_open()
        return loaded

    def shutdown(self) -> None:
        self.pipeline.shutdown()

    # ------------------------------------------------------------------
    # Queries

    def get_diagnostics(self, path: Path | str) -> List[Diagnostic]:
        return self.pipeline.get(self.documents.canonical(path))

    def workspace_diagnostics(self) -> List[Diagnostic]:
        return self.pipeline.workspace_diagnostics()

    def check(self, path: Path | str) -> List[Diagnostic]:
        """Compile ``path`` synchronously and return its merged diagnostics."""
        return self.pipeline.run_now(self.documents.canonical(path))

    def definition(self, path: Path | str, position: Position | int) -> List[Location]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return []
            return self.index.definition(document.path, document.offset_of(position))

    def references(self, path: Path | str, position: Position | int) -> List[Location]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return []
            return self.index.references(document.path, document.offset_of(position))

    def document_symbols(self, path: Path | str, query: str = "") -> List[Symbol]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return []
            return self.index.document_symbols(document.path, query)

    def workspace_symbols(self, query: str = "") -> List[Symbol]:
        with self._lock.read():
            return self.index.workspace_symbols(query)

    def completion(self, path: Path | str, position: Position | int) -> List[CompletionItem]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return []
            return self.completion_engine.complete(document, document.offset_of(position))

    # ------------------------------------------------------------------
    # Pipeline source

    def compile_job(self, path: Path) -> Optional[CompileJob]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return None
            include_dirs = list(self.resolver.roots(document.path))
            import_path = self.resolver.import_string(document.path, document.path)
            if import_path is None:
                import_path = document.path.name
                include_dirs.append(document.path.parent)
            return CompileJob(
                path=document.path,
                version=document.version,
                text=document.text,
                import_path=import_path,
                include_dirs=tuple(include_dirs),
            )

    def current_version(self, path: Path) -> Optional[int]:
        with self._lock.read():
            document = self.documents.get(path)
            return document.version if document is not None else None

    def local_diagnostics(self, path: Path) -> List[Diagnostic]:
        with self._lock.read():
            document = self.documents.get(path)
            if document is None:
                return []
            return list(document.diagnostics) + self.index.diagnostics(document.path)

    # ------------------------------------------------------------------
    # Internals

    def _reindex(self, document: Document) -> bool:
        """Re-extract ``document`` and load its imports; True when the index epoch moved."""
        epoch = self.index.epoch
        self.index.update(extract(document.path, document.tree))
        self._load_imports(document.path, {document.path})
        return self.index.epoch != epoch

    def _load_imports(self, path: Path, seen: Set[Path]) -> None:
        for _, target in self.index.resolved_imports(path):
            if target is None or target in seen or is_well_known_path(target):
                continue
            seen.add(target)
            if self.documents.get(target) is None:
                self._visit(target, seen)

    def _visit(self, path: Path, seen: Set[Path]) -> bool:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self.logger.warning("Could not read %s: %s", path, exc)
            return False
        document = self.documents.visit(path, text)
        if document is None:
            return False
        self.index.update(extract(document.path, document.tree))
        seen.add(document.path)
        self._load_imports(document.path, seen)
        return True

    def _after_mutation(self, path: Path, index_changed: bool) -> None:
        self.pipeline.schedule(path)
        self.pipeline.publish(path)
        if index_changed:
            self._republish_open(exclude=path)

    def _republish_open(self, exclude: Optional[Path] = None) -> None:
        for open_path in self.documents.open_paths():
            if open_path != exclude:
                self.pipeline.publish(open_path)


__all__ = ["Workspace"]
