"""Import string to file path resolution."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Sequence

from ..constants import WELL_KNOWN_FILES
from ..logging import get_logger

# Well-known imports that are not on disk resolve beneath this virtual root.
WELL_KNOWN_ROOT = Path("/__pbls_well_known__")

_FALLBACK_DIR_NAMES = frozenset({"proto", "protos", "proto_src"})
_SKIPPED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".tox",
        ".venv",
        "venv",
        "__pycache__",
        "node_modules",
        "build",
        "dist",
        "target",
    }
)
_DISCOVERY_DEPTH = 6


def is_well_known_path(path: Path) -> bool:
    return WELL_KNOWN_ROOT in path.parents


class ImportResolver:
    """Maps import strings to files using an ordered list of search roots.

    The workspace root always comes first. Configured ``search_paths`` follow
    in declaration order; when none are configured a fallback list is used:
    the importing file's directory, its ancestors up to the root, then any
    ``proto``/``protos``/``proto_src`` directories found under the root.
    """

    def __init__(
        self,
        root: Path | str,
        search_paths: Optional[Sequence[Path | str]] = None,
        *,
        exclude_paths: Iterable[str] = (),
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self._search_paths: Optional[List[Path]] = None
        if search_paths is not None:
            self._search_paths = [self._absolute(path) for path in search_paths]
        self._exclude = tuple(
            str(PurePosixPath(pattern.strip("/"))) for pattern in exclude_paths if pattern.strip("/")
        )
        self._discovered: Optional[List[Path]] = None
        self.logger = get_logger("index.imports")

    @property
    def configured(self) -> bool:
        return self._search_paths is not None

    def roots(self, importer: Path | None = None) -> List[Path]:
        """Return the effective search order for imports made by ``importer``."""
        candidates: List[Path] = [self.root]
        if self._search_paths is not None:
            candidates.extend(self._search_paths)
        else:
            candidates.extend(self._fallback(importer))
        roots: List[Path] = []
        for candidate in candidates:
            if candidate not in roots and candidate.is_dir():
                roots.append(candidate)
        return roots

    def resolve(self, import_path: str, importer: Path | None = None) -> Optional[Path]:
        """Return the first file matching ``import_path`` in search order."""
        if not import_path or PurePosixPath(import_path).is_absolute():
            return None
        for root in self.roots(importer):
            candidate = root / import_path
            if candidate.is_file():
                return candidate.resolve()
        if import_path in WELL_KNOWN_FILES:
            return WELL_KNOWN_ROOT / import_path
        self.logger.debug("Import %s from %s did not resolve", import_path, importer)
        return None

    def import_string(self, path: Path, importer: Path | None = None) -> Optional[str]:
        """Return the string that imports ``path``, relative to the first root containing it."""
        if is_well_known_path(path):
            return path.relative_to(WELL_KNOWN_ROOT).as_posix()
        for root in self.roots(importer):
            try:
                return path.relative_to(root).as_posix()
            except ValueError:
                continue
        return None

    def list_importable(self, importer: Path | None = None) -> List[str]:
        """List importable ``.proto`` files as root-relative POSIX paths.

        A file reachable from several roots is listed once, under the first.
        """
        seen: set[str] = set()
        results: List[str] = []
        for root in self.roots(importer):
            for path in self._iter_protos(root):
                relative = path.relative_to(root).as_posix()
                if relative in seen:
                    continue
                seen.add(relative)
                results.append(relative)
        return sorted(results)

    def iter_workspace_files(self) -> List[Path]:
        """Every ``.proto`` file under the search roots, deduplicated by real path."""
        files: List[Path] = []
        seen: set[Path] = set()
        for root in self.roots():
            for path in self._iter_protos(root):
                resolved = path.resolve()
                if resolved not in seen:
                    seen.add(resolved)
                    files.append(resolved)
        return files

    def refresh(self) -> None:
        """Forget discovered fallback directories so the next lookup walks again."""
        self._discovered = None

    # ------------------------------------------------------------------
    # Internals

    def _absolute(self, path: Path | str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return candidate.resolve()

    def _fallback(self, importer: Path | None) -> List[Path]:
        fallback: List[Path] = []
        if importer is not None:
            directory = importer.parent
            fallback.append(directory)
            for ancestor in directory.parents:
                if ancestor == self.root or self.root not in ancestor.parents:
                    break
                fallback.append(ancestor)
        if self._discovered is None:
            self._discovered = self._discover()
        fallback.extend(self._discovered)
        return fallback

    def _discover(self) -> List[Path]:
        found: List[Path] = []
        for directory, dirnames, _ in self._walk(self.root):
            if directory.name in _FALLBACK_DIR_NAMES and directory != self.root:
                found.append(directory)
        self.logger.debug("Discovered fallback import roots under %s: %s", self.root, found)
        return sorted(found)

    def _iter_protos(self, root: Path) -> Iterable[Path]:
        for directory, _, filenames in self._walk(root):
            for filename in sorted(filenames):
                if filename.endswith(".proto"):
                    yield directory / filename

    def _walk(self, top: Path) -> Iterable[tuple[Path, List[str], List[str]]]:
        base_depth = len(top.parts)
        for dirpath, dirnames, filenames in os.walk(top):
            directory = Path(dirpath)
            dirnames[:] = sorted(
                name
                for name in dirnames
                if name not in _SKIPPED_DIRS
                and not name.startswith("bazel-")
                and not self._excluded(directory / name)
            )
            if len(directory.parts) - base_depth >= _DISCOVERY_DEPTH:
                dirnames[:] = []
            yield directory, dirnames, filenames

    def _excluded(self, path: Path) -> bool:
        if not self._exclude:
            return False
        try:
            relative = path.relative_to(self.root).as_posix()
        except ValueError:
            return False
        return any(relative == pattern or relative.startswith(pattern + "/") for pattern in self._exclude)


__all__ = ["ImportResolver", "WELL_KNOWN_ROOT", "is_well_known_path"]
