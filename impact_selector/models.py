"""Core data models shared by the diff service, extractor, graph and resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Tuple


class FileStatus(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    RENAMED = "RENAMED"


class ImpactType(str, Enum):
    DIRECT = "DIRECT"
    DEPENDENCY = "DEPENDENCY"
    REMOVED = "REMOVED"


@dataclass(frozen=True)
class FileChange:
    """One file touched by a commit.

    ``changed_lines`` is expressed in line numbers of the post-change file.
    """
    path: str
    status: FileStatus
    changed_lines: Tuple[int, ...] = ()


@dataclass(frozen=True)
class TestDeclaration:
    """A ``test(...)``/``it(...)``/``describe(...)`` call found in one file version."""
    __test__ = False

    name: str
    start_line: int
    end_line: int
    is_dynamic: bool = False

    def intersects(self, changed_lines: Tuple[int, ...]) -> bool:
        return any(self.start_line <= line <= self.end_line for line in changed_lines)


@dataclass(frozen=True)
class ModuleNode:
    path: str
    imports: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ImpactedTest:
    test_name: str
    file_name: str
    impact_type: ImpactType
    is_dynamic: bool = False


@dataclass(frozen=True)
class FileDiagnostic:
    """Why a file degraded instead of being analysed normally."""
    path: str
    kind: str  # parse_failure | missing_content | missing_history | unreadable
    reason: str


@dataclass
class FileAnalysisResult:
    file_path: str
    status: FileStatus
    tests: List[ImpactedTest] = field(default_factory=list)
    forced_file_mode: bool = False

    @property
    def has_dynamic_tests(self) -> bool:
        return self.forced_file_mode or any(t.is_dynamic for t in self.tests)


@dataclass
class AnalysisReport:
    commit_ref: str
    repo_path: str
    file_results: List[FileAnalysisResult] = field(default_factory=list)
    diagnostics: List[FileDiagnostic] = field(default_factory=list)
    fallback: bool = False

    @property
    def total_tests_selected(self) -> int:
        return sum(len(result.tests) for result in self.file_results)

    def to_dict(self) -> dict:
        return {
            "commitRef": self.commit_ref,
            "repoPath": self.repo_path,
            "fileResults": [
                {
                    "filePath": result.file_path,
                    "status": result.status.value,
                    "hasDynamicTests": result.has_dynamic_tests,
                    "tests": [
                        {
                            "testName": t.test_name,
                            "fileName": t.file_name,
                            "impactType": t.impact_type.value,
                            "isDynamic": t.is_dynamic,
                        }
                        for t in result.tests
                    ],
                }
                for result in self.file_results
            ],
            "totalTestsSelected": self.total_tests_selected,
            "diagnostics": [
                {"path": d.path, "kind": d.kind, "reason": d.reason}
                for d in self.diagnostics
            ],
            "fallback": self.fallback,
        }
