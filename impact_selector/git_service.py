"""Revision diff service: changed files, changed lines and historical content.

All history queries shell out to the ``git`` executable. Line sets come from
zero-context diffs (``-U0``) so every hunk line is a real change, expressed
in the coordinates of the post-change file.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvalidRepository, InvalidRevision, ShallowHistoryError
from .models import FileChange, FileStatus

logger = logging.getLogger(__name__)

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(?P<start>\d+)(?:,(?P<count>\d+))? @@")
_FILE_HEADER_RE = re.compile(r"^diff --git a/.+ b/(?P<path>.+)$")

_STATUS_CODES: Dict[str, FileStatus] = {
    "A": FileStatus.ADDED,
    "D": FileStatus.DELETED,
    "R": FileStatus.RENAMED,
}


# ------------------------------------------------------------------
# Pure parsing helpers
# ------------------------------------------------------------------

def parse_hunk_header(header: str) -> List[int]:
    """Return the new-file line numbers covered by one hunk header.

    ``@@ -10,0 +15,3 @@`` gives ``[15, 16, 17]``; an omitted count means 1 and
    an explicit count of 0 (pure deletion) gives no lines.
    """
    match = _HUNK_RE.match(header)
    if match is None:
        return []
    start = int(match.group("start"))
    count = int(match.group("count") or "1")
    return list(range(start, start + count))


def parse_name_status(output: str) -> Dict[str, FileStatus]:
    """Map each path of ``--name-status`` output to its status.

    Renames and copies list ``old<TAB>new``; the new path is kept.
    """
    statuses: Dict[str, FileStatus] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        path = parts[2] if len(parts) >= 3 else parts[1]
        if not path:
            continue
        statuses[path] = _STATUS_CODES.get(parts[0][0], FileStatus.MODIFIED)
    return statuses


def parse_unified_diff(diff_text: str, statuses: Dict[str, FileStatus]) -> List[FileChange]:
    """Join zero-context hunks with per-path status, one FileChange per file header."""
    changes: List[FileChange] = []
    current: Optional[str] = None
    lines: List[int] = []

    def _flush() -> None:
        if current is None:
            return
        changes.append(FileChange(
            path=current,
            status=statuses.get(current, FileStatus.MODIFIED),
            changed_lines=tuple(sorted(set(lines))),
        ))

    for raw in diff_text.splitlines():
        header = _FILE_HEADER_RE.match(raw)
        if header is not None:
            _flush()
            current = header.group("path")
            lines = []
            continue
        if current is not None and raw.startswith("@@"):
            lines.extend(parse_hunk_header(raw))
    _flush()

    # Paths with a status but no diff header (e.g. pure mode changes) still count.
    seen = {c.path for c in changes}
    for path, status in statuses.items():
        if path not in seen:
            changes.append(FileChange(path=path, status=status))
    return changes


# ------------------------------------------------------------------
# Service
# ------------------------------------------------------------------

class GitService:
    """Read-only history queries against one repository."""

    def __init__(self, repo_path: Path) -> None:
        self.repo_path = Path(repo_path)

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        cmd = ["git", "-c", "core.quotePath=false", *args]
        logger.debug("Running %s in %s", " ".join(cmd), self.repo_path)
        try:
            return subprocess.run(
                cmd,
                cwd=self.repo_path,
                check=False,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise InvalidRepository(
                "git executable not found on PATH",
                remediation="Install git and make sure it is on PATH.",
            ) from exc
        except NotADirectoryError as exc:
            raise InvalidRepository(f'Path "{self.repo_path}" is not a directory.') from exc

    def _output(self, args: Sequence[str], error: str) -> str:
        proc = self._run(args)
        if proc.returncode != 0:
            message = proc.stderr.strip() or proc.stdout.strip() or "git failed"
            raise InvalidRevision(f"{error}: {message}")
        return proc.stdout

    # -- validation ----------------------------------------------------

    def validate_repository(self) -> None:
        if not self.repo_path.is_dir():
            raise InvalidRepository(f'Path "{self.repo_path}" does not exist or is not a directory.')
        proc = self._run(["rev-parse", "--is-inside-work-tree"])
        if proc.returncode != 0 or proc.stdout.strip() != "true":
            raise InvalidRepository(f'Path "{self.repo_path}" is not a valid Git repository.')

    def resolve(self, revision: str) -> str:
        """Return the full SHA of *revision* or raise InvalidRevision."""
        proc = self._run(["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"])
        if proc.returncode != 0 or not proc.stdout.strip():
            raise InvalidRevision(f'Invalid commit SHA: "{revision}"')
        return proc.stdout.strip()

    def is_shallow(self) -> bool:
        proc = self._run(["rev-parse", "--is-shallow-repository"])
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def _shallow_boundary(self) -> set:
        proc = self._run(["rev-parse", "--git-path", "shallow"])
        if proc.returncode != 0:
            return set()
        shallow_file = Path(proc.stdout.strip())
        if not shallow_file.is_absolute():
            shallow_file = self.repo_path / shallow_file
        if not shallow_file.exists():
            return set()
        return set(shallow_file.read_text(encoding="utf-8").split())

    def _commit_exists(self, sha: str) -> bool:
        return self._run(["cat-file", "-e", f"{sha}^{{commit}}"]).returncode == 0

    # -- history -------------------------------------------------------

    def parent_of(self, commit: str) -> Optional[str]:
        """First parent of *commit*, or None for a root commit.

        Raises ShallowHistoryError when the parent is missing only because
        history was fetched with limited depth.
        """
        sha = self.resolve(commit)
        shas = self._output(["rev-list", "--parents", "-n", "1", sha], "Failed to read parents").split()
        parents = shas[1:]
        shallow = self.is_shallow()
        if not parents:
            if shallow and sha in self._shallow_boundary():
                raise ShallowHistoryError(
                    f"Parent of {sha[:12]} is not available: the repository is a shallow clone."
                )
            return None
        parent = parents[0]
        if not self._commit_exists(parent):
            if shallow:
                raise ShallowHistoryError(
                    f"Parent {parent[:12]} of {sha[:12]} is not available: the repository is a shallow clone."
                )
            raise InvalidRevision(f"Parent {parent} of {sha} cannot be resolved")
        return parent

    def _diff_outputs(self, sha: str, parent: Optional[str]) -> Tuple[str, str]:
        # --relative keeps paths relative to repo_path when it is a subdirectory
        common = ["--no-color", "--no-ext-diff", "-M", "--relative"]
        if parent is None:
            diff = self._output(["show", "--format=", "-U0", *common, sha], "Failed to diff commit")
            names = self._output(["show", "--format=", "--name-status", *common, sha], "Failed to list files")
        else:
            diff = self._output(["diff", "-U0", *common, parent, sha], "Failed to diff commit")
            names = self._output(["diff", "--name-status", *common, parent, sha], "Failed to list files")
        return diff, names

    def changes_with_parent(self, commit: str) -> Tuple[List[FileChange], Optional[str]]:
        """Files introduced by *commit* and the first parent they were diffed against."""
        self.validate_repository()
        sha = self.resolve(commit)
        parent = self.parent_of(sha)
        diff, names = self._diff_outputs(sha, parent)
        changes = parse_unified_diff(diff, parse_name_status(names))
        logger.info("Commit %s changes %d file(s)", sha[:12], len(changes))
        return changes, parent

    def changed_files(self, commit: str) -> List[FileChange]:
        """Files introduced by *commit* relative to its first parent."""
        return self.changes_with_parent(commit)[0]

    def file_content_at(self, revision: str, path: str) -> Optional[str]:
        """Content of *path* (relative to repo_path) at *revision*, or None if it did not exist there."""
        proc = self._run(["show", f"{revision}:./{path}"])
        if proc.returncode != 0:
            logger.debug("No content for %s at %s: %s", path, revision, proc.stderr.strip())
            return None
        return proc.stdout
