"""Impact resolution: which tests a set of file changes puts at risk.

Three algorithms, chosen per changed file:

* intersection -- a changed test file selects the declarations whose line
  span overlaps a changed line (DIRECT)
* removal -- declarations present in the parent revision but gone now are
  reported by name (REMOVED)
* dependency -- a changed non-test file selects every declaration of every
  test file that imports it, directly or through helpers (DEPENDENCY)

Changed test files are resolved before dependency traversal, and a test file
is only ever reported once per run.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .config_manager import SelectorSettings
from .errors import MissingHistoricalContent, ParseFailure
from .graph import ModuleGraphIndex
from .models import (
    AnalysisReport,
    FileAnalysisResult,
    FileChange,
    FileDiagnostic,
    FileStatus,
    ImpactedTest,
    ImpactType,
    TestDeclaration,
)
from .parser import TestDeclarationExtractor

logger = logging.getLogger(__name__)

WORKTREE = ":worktree"


class HistorySource(Protocol):
    def file_content_at(self, revision: str, path: str) -> Optional[str]: ...


@dataclass(frozen=True)
class ParseOutcome:
    """Declarations of one file version, or the reason they are unknown."""
    path: str
    declarations: Tuple[TestDeclaration, ...] = ()
    diagnostic: Optional[FileDiagnostic] = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None


class ParseSession:
    """Parse cache scoped to one ``analyze`` call.

    Historical content is held only for the lifetime of the session and
    dropped by :meth:`close`.
    """

    def __init__(
        self,
        root: Path,
        settings: SelectorSettings,
        history: Optional[HistorySource] = None,
        max_workers: int = 1,
    ) -> None:
        self.root = Path(root)
        self.settings = settings
        self.history = history
        self.max_workers = max(1, max_workers)
        self.diagnostics: List[FileDiagnostic] = []
        self._outcomes: Dict[Tuple[str, str], ParseOutcome] = {}
        self._local = threading.local()

    def __enter__(self) -> "ParseSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._outcomes.clear()

    def _extractor(self) -> TestDeclarationExtractor:
        extractor = getattr(self._local, "extractor", None)
        if extractor is None:
            extractor = TestDeclarationExtractor(self.settings.test_functions)
            self._local.extractor = extractor
        return extractor

    def _source(self, revision: str, path: str) -> str:
        if revision == WORKTREE:
            return (self.root / path).read_text(encoding="utf-8", errors="replace")
        source = self.history.file_content_at(revision, path) if self.history else None
        if source is None:
            raise MissingHistoricalContent(path, revision)
        return source

    def _read(self, revision: str, path: str) -> ParseOutcome:
        try:
            source = self._source(revision, path)
            return ParseOutcome(path, tuple(self._extractor().extract(source, path)))
        except OSError as exc:
            return ParseOutcome(path, diagnostic=FileDiagnostic(path, "unreadable", str(exc)))
        except MissingHistoricalContent as exc:
            return ParseOutcome(path, diagnostic=FileDiagnostic(path, "missing_content", str(exc)))
        except ParseFailure as exc:
            return ParseOutcome(path, diagnostic=FileDiagnostic(path, "parse_failure", exc.reason))

    def _record(self, key: Tuple[str, str], outcome: ParseOutcome) -> ParseOutcome:
        self._outcomes[key] = outcome
        if outcome.diagnostic is not None:
            logger.warning("Skipping %s: %s", outcome.path, outcome.diagnostic.reason)
            self.diagnostics.append(outcome.diagnostic)
        return outcome

    def parse(self, path: str, revision: str = WORKTREE) -> ParseOutcome:
        key = (revision, path)
        if key in self._outcomes:
            return self._outcomes[key]
        return self._record(key, self._read(revision, path))

    def prefetch(self, paths: Sequence[str], revision: str = WORKTREE) -> None:
        """Parse *paths* ahead of use, on a worker pool when configured."""
        pending = [p for p in dict.fromkeys(paths) if (revision, p) not in self._outcomes]
        if self.max_workers == 1 or len(pending) < 2:
            return
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            outcomes = list(pool.map(lambda p: self._read(revision, p), pending))
        for path, outcome in zip(pending, outcomes):
            self._record((revision, path), outcome)


def _tests(
    declarations: Sequence[TestDeclaration], file_name: str, impact: ImpactType,
) -> List[ImpactedTest]:
    return [
        ImpactedTest(test_name=d.name, file_name=file_name, impact_type=impact, is_dynamic=d.is_dynamic)
        for d in declarations
    ]


def removed_declarations(
    previous: Sequence[TestDeclaration], current: Sequence[TestDeclaration],
) -> List[TestDeclaration]:
    """Declarations whose name existed before and does not exist now.

    Matching is by name only: a moved test is not removed, and a renamed test
    reads as one removal plus one addition.
    """
    current_names = {d.name for d in current}
    removed: List[TestDeclaration] = []
    seen: Set[str] = set()
    for decl in previous:
        if decl.name in current_names or decl.name in seen:
            continue
        seen.add(decl.name)
        removed.append(decl)
    return removed


class ImpactResolver:
    """Turn a list of file changes into an :class:`AnalysisReport`."""

    def __init__(
        self,
        repo_path: Path,
        index: ModuleGraphIndex,
        settings: Optional[SelectorSettings] = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self.index = index
        self.settings = settings or index.settings

    def analyze(
        self,
        changes: Sequence[FileChange],
        commit: str,
        parent_commit: Optional[str] = None,
        diff_service: Optional[HistorySource] = None,
        whole_file: bool = False,
    ) -> AnalysisReport:
        """Classify every candidate test for *changes*.

        With ``whole_file`` (analyze-everything mode) changed test files have
        no line information, so every declaration they contain is selected as
        DEPENDENCY instead of running the intersection.
        """
        report = AnalysisReport(commit_ref=commit, repo_path=str(self.repo_path))
        processed: Set[str] = set()

        relevant = [
            c for c in changes
            if self.settings.is_source_file(c.path) and not self.settings.is_vendored(c.path)
        ]
        test_changes = [c for c in relevant if self.settings.is_test_file(c.path)]
        source_changes = [c for c in relevant if not self.settings.is_test_file(c.path)]

        with ParseSession(
            self.repo_path, self.settings, diff_service, self.settings.max_workers,
        ) as session:
            session.prefetch([c.path for c in test_changes if c.status != FileStatus.DELETED])

            for change in test_changes:
                result = self._analyze_test_file(change, session, parent_commit, whole_file)
                if result is not None:
                    report.file_results.append(result)
                    processed.add(self.index.normalize(change.path))

            for change in source_changes:
                if change.status == FileStatus.DELETED:
                    logger.debug("Skipping deleted source file %s", change.path)
                    continue
                dependents = [
                    path for path in self.index.transitive_test_importers(change.path)
                    if self.index.normalize(path) not in processed
                ]
                session.prefetch(dependents)
                for test_path in dependents:
                    key = self.index.normalize(test_path)
                    if key in processed:
                        continue
                    result = self._analyze_dependent(test_path, change, session)
                    if result is not None:
                        report.file_results.append(result)
                        processed.add(key)

            report.diagnostics.extend(session.diagnostics)

        logger.info(
            "Selected %d test(s) across %d file(s) for %s",
            report.total_tests_selected, len(report.file_results), commit,
        )
        return report

    def _analyze_test_file(
        self,
        change: FileChange,
        session: ParseSession,
        parent_commit: Optional[str],
        whole_file: bool,
    ) -> Optional[FileAnalysisResult]:
        result = FileAnalysisResult(file_path=change.path, status=change.status)

        if change.status == FileStatus.DELETED:
            previous = self._previous(change.path, session, parent_commit)
            if previous is not None:
                result.tests.extend(_tests(previous.declarations, change.path, ImpactType.REMOVED))
            elif parent_commit is None or session.history is None:
                session.diagnostics.append(FileDiagnostic(
                    change.path, "missing_history", "no parent revision to recover removed tests from",
                ))
            return result

        current = session.parse(change.path)
        if not current.ok:
            result.forced_file_mode = True
            return result

        if whole_file:
            result.tests.extend(_tests(current.declarations, change.path, ImpactType.DEPENDENCY))
        else:
            hits = [d for d in current.declarations if d.intersects(change.changed_lines)]
            result.tests.extend(_tests(hits, change.path, ImpactType.DIRECT))

        if change.status == FileStatus.MODIFIED and not whole_file:
            previous = self._previous(change.path, session, parent_commit)
            if previous is not None:
                gone = removed_declarations(previous.declarations, current.declarations)
                result.tests.extend(_tests(gone, change.path, ImpactType.REMOVED))

        return result if result.tests else None

    def _previous(
        self, path: str, session: ParseSession, parent_commit: Optional[str],
    ) -> Optional[ParseOutcome]:
        if parent_commit is None or session.history is None:
            return None
        outcome = session.parse(path, revision=parent_commit)
        return outcome if outcome.ok else None

    def _analyze_dependent(
        self, test_path: str, trigger: FileChange, session: ParseSession,
    ) -> Optional[FileAnalysisResult]:
        outcome = session.parse(test_path)
        result = FileAnalysisResult(file_path=test_path, status=trigger.status)
        if not outcome.ok:
            result.forced_file_mode = True
            return result
        result.tests.extend(_tests(outcome.declarations, test_path, ImpactType.DEPENDENCY))
        return result if result.tests else None
