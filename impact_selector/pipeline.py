"""One end-to-end selection run: validate, diff, index, resolve."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from . import config
from .config_manager import SelectorSettings, load_settings
from .errors import AnalysisTimeout, InvalidRepository, SelectorError
from .git_service import GitService
from .graph import ModuleGraphIndex
from .models import AnalysisReport, FileAnalysisResult, FileChange, FileStatus
from .resolver import ImpactResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AnalysisRun:
    report: AnalysisReport
    changes: List[FileChange] = field(default_factory=list)
    parent_commit: Optional[str] = None


def call_with_timeout(fn: Callable[[], T], timeout: Optional[float]) -> T:
    """Run *fn*, raising AnalysisTimeout if it has not returned after *timeout* seconds.

    The work runs on a daemon thread, so an abandoned run never holds the
    interpreter open at exit.
    """
    if not timeout:
        return fn()
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = fn()
        except Exception as exc:  # noqa: BLE001
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="impact-analyze", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        logger.warning("Analysis still running after %gs; abandoning it", timeout)
        raise AnalysisTimeout(timeout)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def fallback_report(
    changes: Sequence[FileChange], commit: str, repo_path: Path, settings: SelectorSettings,
) -> AnalysisReport:
    """Coarse report used when analysis itself breaks: run changed test files whole."""
    results = [
        FileAnalysisResult(file_path=c.path, status=c.status, forced_file_mode=True)
        for c in changes
        if settings.is_test_file(c.path) and c.status != FileStatus.DELETED
    ]
    return AnalysisReport(
        commit_ref=commit, repo_path=str(repo_path), file_results=results, fallback=True,
    )


def all_files_changes(index: ModuleGraphIndex) -> List[FileChange]:
    """Synthesize one MODIFIED change, without line data, per indexed file."""
    return [FileChange(path=path, status=FileStatus.MODIFIED) for path in index.paths]


def run_analysis(
    repo_path: Path,
    commit: Optional[str] = None,
    analyze_all: bool = False,
    settings: Optional[SelectorSettings] = None,
    timeout: Optional[float] = None,
) -> AnalysisRun:
    """Analyze *commit* (or every file with ``analyze_all``) in *repo_path*.

    Repository-level problems raise a SelectorError subclass. An unexpected
    failure inside the resolver degrades to :func:`fallback_report`. The
    timeout bounds the diff, the index build and the resolver together.
    """
    repo = Path(repo_path).expanduser().resolve()
    if not repo.exists():
        raise InvalidRepository(f"Repository path does not exist: {repo}")
    if not repo.is_dir():
        raise InvalidRepository(f"Path is not a directory: {repo}")
    if not analyze_all and not commit:
        raise SelectorError(
            "Either a commit or analyze-all mode must be specified",
            remediation="Pass --commit <sha> or --all.",
        )

    settings = settings or load_settings(repo)
    timeout = timeout if timeout is not None else settings.timeout
    return call_with_timeout(
        lambda: _run_stages(repo, commit, analyze_all, settings), timeout,
    )


def _run_stages(
    repo: Path, commit: Optional[str], analyze_all: bool, settings: SelectorSettings,
) -> AnalysisRun:
    git: Optional[GitService] = None
    parent: Optional[str] = None
    if analyze_all:
        commit_ref = config.ALL_COMMITS_REF
        changes: List[FileChange] = []
    else:
        assert commit is not None
        git = GitService(repo)
        changes, parent = git.changes_with_parent(commit)
        commit_ref = commit
        if parent:
            logger.info("Parent commit: %s", parent[:8])
        else:
            logger.info("No parent commit; removed-test detection disabled for %s", commit)

    index, index_diagnostics = ModuleGraphIndex.build(repo, settings)
    if analyze_all:
        changes = all_files_changes(index)

    resolver = ImpactResolver(repo, index, settings)
    try:
        report = resolver.analyze(changes, commit_ref, parent, git, whole_file=analyze_all)
    except Exception as exc:
        logger.exception("Analysis error, falling back to whole-file selection: %s", exc)
        report = fallback_report(changes, commit_ref, repo, settings)

    report.diagnostics[:0] = index_diagnostics
    return AnalysisRun(report=report, changes=list(changes), parent_commit=parent)
