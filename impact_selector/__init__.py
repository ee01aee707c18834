"""Impact Selector -- change-impact test selection for JavaScript/TypeScript suites.

Public API:
    run_analysis(repo_path, commit=None, analyze_all=False) -> AnalysisRun
    build_selection(report) -> Selection
"""

__version__ = "1.0.0"

from .models import (  # noqa: E402
    AnalysisReport,
    FileAnalysisResult,
    FileChange,
    FileStatus,
    ImpactedTest,
    ImpactType,
    TestDeclaration,
)
from .pipeline import AnalysisRun, run_analysis  # noqa: E402
from .selection import Selection, build_selection  # noqa: E402

__all__ = [
    "AnalysisReport",
    "AnalysisRun",
    "FileAnalysisResult",
    "FileChange",
    "FileStatus",
    "ImpactType",
    "ImpactedTest",
    "Selection",
    "TestDeclaration",
    "__version__",
    "build_selection",
    "run_analysis",
]
