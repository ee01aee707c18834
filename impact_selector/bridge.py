"""Turn a selection into a downstream test-runner invocation."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .selection import Selection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerPlan:
    mode: str  # grep | files | full | skip
    argv: Tuple[str, ...]
    reason: str

    @property
    def command_line(self) -> str:
        return subprocess.list2cmdline(list(self.argv))


def plan_invocation(
    selection: Optional[Selection],
    runner_command: Sequence[str],
    max_command_length: int,
) -> RunnerPlan:
    """Pick grep mode, file mode, the full suite, or nothing at all.

    ``selection`` is None when analysis failed, which always means the full
    suite.
    """
    base = tuple(runner_command)
    if selection is None:
        return RunnerPlan("full", base, "analysis failed; running the full suite")
    if not selection.files:
        return RunnerPlan("skip", (), "no impacted tests")

    if selection.grep and not selection.has_dynamic_tests:
        if len(selection.grep) <= max_command_length:
            return RunnerPlan("grep", base + ("--grep", selection.grep), "granular execution by test name")
        logger.info(
            "Grep pattern is %d chars (limit %d); falling back to file mode",
            len(selection.grep), max_command_length,
        )

    files = tuple(selection.files)
    if sum(len(f) + 1 for f in files) > max_command_length:
        return RunnerPlan("full", base, "file list exceeds the command-line limit")
    reason = "dynamic test names require whole-file execution" if selection.has_dynamic_tests else "running impacted files"
    return RunnerPlan("files", base + files, reason)


def execute(plan: RunnerPlan, cwd: Path) -> int:
    """Run *plan* in *cwd* and return the runner's exit status."""
    if plan.mode == "skip":
        return 0
    logger.info("Launching %s", plan.command_line)
    try:
        return subprocess.run(list(plan.argv), cwd=cwd, check=False).returncode
    except FileNotFoundError:
        logger.error("Runner executable not found: %s", plan.argv[0])
        return 127
