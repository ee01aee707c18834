"""Error taxonomy for impact selection.

Repository-level errors are terminal and abort the run. Per-file errors
(``ParseFailure``, ``MissingHistoricalContent``) are absorbed by the resolver
and surface as diagnostics on the report.
"""

from __future__ import annotations


class SelectorError(Exception):
    """Base class for every error raised by impact_selector."""

    remediation: str = ""

    def __init__(self, message: str, remediation: str = "") -> None:
        super().__init__(message)
        if remediation:
            self.remediation = remediation


class InvalidRepository(SelectorError):
    remediation = "Point --repo at the root of a git working tree."


class InvalidRevision(SelectorError):
    remediation = "Check the commit SHA or ref exists in this repository."


class ShallowHistoryError(SelectorError):
    remediation = (
        "The repository is a shallow clone. Fetch full history "
        "(git fetch --unshallow, or fetch-depth: 0 in CI) and retry."
    )


class ParseFailure(SelectorError):
    """A single file could not be parsed; the file is skipped."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class MissingHistoricalContent(SelectorError):
    """A file had no content at the requested revision."""

    def __init__(self, path: str, revision: str) -> None:
        super().__init__(f"{path} does not exist at {revision}")
        self.path = path
        self.revision = revision


class AnalysisTimeout(SelectorError):
    remediation = "Raise --timeout or narrow the analysed commit."

    def __init__(self, seconds: float) -> None:
        super().__init__(f"Analysis did not finish within {seconds:g}s")
        self.seconds = seconds
