"""Module import index and transitive test-importer traversal.

The index is built once per run and never mutated afterwards. Files are
stored in an arena (``nodes``) and every edge refers to a file by its integer
id, so lookups during traversal are read-only dictionary hits.

Import resolution is deliberately textual: a specifier points at a file when
its last path segment, minus a source extension, equals the file's base name.
``index`` files also answer to their directory name.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Set, Tuple

from .config_manager import SelectorSettings
from .errors import ParseFailure
from .models import FileDiagnostic, ModuleNode
from .parser import TestDeclarationExtractor

logger = logging.getLogger(__name__)


def _strip_extension(name: str, extensions: Tuple[str, ...]) -> str:
    # longest first, so ".mts" is not read as ".ts"
    for ext in sorted(extensions, key=len, reverse=True):
        if name.endswith(ext) and len(name) > len(ext):
            return name[: -len(ext)]
    return name


def specifier_key(specifier: str, extensions: Tuple[str, ...]) -> Optional[str]:
    """Base name a module specifier refers to, e.g. ``../lib/auth.js`` -> ``auth``."""
    last = specifier.replace("\\", "/").rstrip("/").split("/")[-1]
    if last in ("", ".", ".."):
        return None
    return _strip_extension(last, extensions)


def file_keys(path: str, extensions: Tuple[str, ...]) -> Tuple[str, ...]:
    """Every specifier key that resolves to *path*."""
    posix = PurePosixPath(path.replace("\\", "/"))
    stem = _strip_extension(posix.name, extensions)
    if stem == "index" and posix.parent.name:
        return (stem, posix.parent.name)
    return (stem,)


class ModuleGraphIndex:
    """Immutable index of first-party source files and who imports whom."""

    def __init__(
        self,
        root: Path,
        nodes: Tuple[ModuleNode, ...],
        settings: SelectorSettings,
    ) -> None:
        self.root = Path(root).resolve()
        self.settings = settings
        self.nodes = nodes
        self._id_by_path: Mapping[str, int] = MappingProxyType(
            {node.path: idx for idx, node in enumerate(nodes)}
        )
        by_key: Dict[str, List[int]] = {}
        for idx, node in enumerate(nodes):
            keys = set()
            for spec in node.imports:
                key = specifier_key(spec, settings.source_extensions)
                if key:
                    keys.add(key)
            for key in keys:
                by_key.setdefault(key, []).append(idx)
        self._importers_by_key: Mapping[str, Tuple[int, ...]] = MappingProxyType(
            {key: tuple(ids) for key, ids in by_key.items()}
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        root: Path,
        settings: SelectorSettings,
        extractor: Optional[TestDeclarationExtractor] = None,
    ) -> Tuple["ModuleGraphIndex", List[FileDiagnostic]]:
        """Walk *root* once, pruning vendored directories, and index every source file."""
        root = Path(root).resolve()
        extractor = extractor or TestDeclarationExtractor(settings.test_functions)
        diagnostics: List[FileDiagnostic] = []
        nodes: List[ModuleNode] = []

        for rel_path in cls._discover(root, settings):
            try:
                source = (root / rel_path).read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Cannot read %s: %s", rel_path, exc)
                diagnostics.append(FileDiagnostic(rel_path, "unreadable", str(exc)))
                nodes.append(ModuleNode(path=rel_path))
                continue
            try:
                imports = extractor.extract_imports(source, rel_path)
            except ParseFailure as exc:
                logger.warning("Indexing %s without imports: %s", rel_path, exc.reason)
                diagnostics.append(FileDiagnostic(rel_path, "parse_failure", exc.reason))
                imports = frozenset()
            nodes.append(ModuleNode(path=rel_path, imports=imports))

        logger.info("Indexed %d source file(s) under %s", len(nodes), root)
        return cls(root, tuple(nodes), settings), diagnostics

    @staticmethod
    def _discover(root: Path, settings: SelectorSettings) -> List[str]:
        found: List[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in settings.vendor_dirs)
            for filename in sorted(filenames):
                if not settings.is_source_file(filename):
                    continue
                full = Path(dirpath) / filename
                found.append(full.relative_to(root).as_posix())
        return found

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def paths(self) -> List[str]:
        return [node.path for node in self.nodes]

    def __contains__(self, path: str) -> bool:
        return path in self._id_by_path

    def __len__(self) -> int:
        return len(self.nodes)

    def normalize(self, path: str) -> str:
        """Normalized absolute path used as the traversal identity."""
        return os.path.normcase(os.path.normpath(os.path.join(str(self.root), path)))

    def relative(self, path: str) -> str:
        absolute = Path(path)
        if absolute.is_absolute():
            try:
                return absolute.resolve().relative_to(self.root).as_posix()
            except ValueError:
                return absolute.as_posix()
        return PurePosixPath(path.replace("\\", "/")).as_posix()

    def importers_of(self, path: str) -> List[str]:
        """Files whose import specifiers textually resolve to *path* (direct only)."""
        rel = self.relative(path)
        self_id = self._id_by_path.get(rel)
        ids: Set[int] = set()
        for key in file_keys(rel, self.settings.source_extensions):
            ids.update(self._importers_by_key.get(key, ()))
        ids.discard(self_id)
        return [self.nodes[i].path for i in sorted(ids)]

    def transitive_test_importers(self, path: str) -> List[str]:
        """Test files that import *path* directly or through non-test files.

        Breadth-first. Test importers are leaves; other importers are expanded
        so impact propagates through helper layers. The visited set makes
        import cycles terminate.
        """
        start = self.relative(path)
        visited: Set[str] = {self.normalize(start)}
        queue = deque([start])
        impacted: List[str] = []
        impacted_keys: Set[str] = set()

        while queue:
            current = queue.popleft()
            for importer in self.importers_of(current):
                key = self.normalize(importer)
                if key in visited or self.settings.is_vendored(importer):
                    continue
                visited.add(key)
                if self.settings.is_test_file(importer):
                    if key not in impacted_keys:
                        impacted_keys.add(key)
                        impacted.append(importer)
                else:
                    queue.append(importer)
        return impacted
