"""Machine-readable selection: the JSON object downstream runners consume."""

from __future__ import annotations

import json
import re
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .models import AnalysisReport

_REGEX_SPECIALS = re.compile(r"[\\^$.|?*+()\[\]{}]")

# Emitted on any terminal failure; automation parses stdout unconditionally.
EMPTY_SELECTION_JSON = json.dumps({"files": [], "tests": [], "grep": ""})


def escape_regexp(text: str) -> str:
    """Backslash-escape ``\\ ^ $ . | ? * + ( ) [ ] { }`` and nothing else."""
    return _REGEX_SPECIALS.sub(lambda m: "\\" + m.group(0), text)


class Selection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    files: List[str] = Field(default_factory=list)
    tests: List[str] = Field(default_factory=list)
    grep: str = ""
    files_with_dynamic_tests: List[str] = Field(default_factory=list, alias="filesWithDynamicTests")
    has_dynamic_tests: bool = Field(default=False, alias="hasDynamicTests")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True)


def build_selection(report: AnalysisReport) -> Selection:
    """Flatten a report into unique files, literal test names and a grep pattern.

    Dynamic test names are never put in ``tests`` or ``grep``; their files are
    listed in ``files`` and ``filesWithDynamicTests`` so they run whole.
    """
    files: Dict[str, None] = {}
    tests: Dict[str, None] = {}
    dynamic_files: Dict[str, None] = {}

    for result in report.file_results:
        if result.tests or result.forced_file_mode:
            files.setdefault(result.file_path)
        if result.has_dynamic_tests:
            dynamic_files.setdefault(result.file_path)
        for test in result.tests:
            if not test.is_dynamic:
                tests.setdefault(test.test_name)

    names = list(tests)
    return Selection(
        files=list(files),
        tests=names,
        grep="|".join(escape_regexp(name) for name in names),
        files_with_dynamic_tests=list(dynamic_files),
        has_dynamic_tests=bool(dynamic_files),
    )
