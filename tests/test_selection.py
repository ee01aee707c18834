"""Tests for selection output and regex escaping."""

import json

import pytest

from impact_selector.models import (
    AnalysisReport,
    FileAnalysisResult,
    FileStatus,
    ImpactedTest,
    ImpactType,
)
from impact_selector.selection import (
    EMPTY_SELECTION_JSON,
    Selection,
    build_selection,
    escape_regexp,
)


def _result(path, *tests, forced=False):
    return FileAnalysisResult(
        file_path=path,
        status=FileStatus.MODIFIED,
        tests=[
            ImpactedTest(test_name=name, file_name=path, impact_type=ImpactType.DIRECT, is_dynamic=dyn)
            for name, dyn in tests
        ],
        forced_file_mode=forced,
    )


class TestEscapeRegexp:
    @pytest.mark.parametrize("char", list("\\^$.|?*+()[]{}"))
    def test_special_characters_are_escaped(self, char):
        assert escape_regexp(char) == "\\" + char

    @pytest.mark.parametrize("char", list("-/#&%@!~'\"<>=,:; _"))
    def test_other_characters_are_untouched(self, char):
        assert escape_regexp(char) == char

    def test_mixed_name(self):
        assert escape_regexp("adds (2+2) items.") == r"adds \(2\+2\) items\."


def test_empty_report_gives_empty_selection():
    selection = build_selection(AnalysisReport(commit_ref="abc", repo_path="/repo"))
    assert selection.to_dict() == {
        "files": [],
        "tests": [],
        "grep": "",
        "filesWithDynamicTests": [],
        "hasDynamicTests": False,
    }


def test_empty_selection_json_constant():
    assert json.loads(EMPTY_SELECTION_JSON) == {"files": [], "tests": [], "grep": ""}


def test_grep_joins_escaped_names_in_order():
    report = AnalysisReport(commit_ref="abc", repo_path="/repo", file_results=[
        _result("a.spec.ts", ("first (one)", False), ("second", False)),
        _result("b.spec.ts", ("third?", False)),
    ])

    selection = build_selection(report)

    assert selection.files == ["a.spec.ts", "b.spec.ts"]
    assert selection.tests == ["first (one)", "second", "third?"]
    assert selection.grep == r"first \(one\)|second|third\?"
    assert selection.has_dynamic_tests is False


def test_duplicate_names_listed_once():
    report = AnalysisReport(commit_ref="abc", repo_path="/repo", file_results=[
        _result("a.spec.ts", ("renders", False)),
        _result("b.spec.ts", ("renders", False)),
    ])
    assert build_selection(report).tests == ["renders"]


def test_dynamic_names_stay_out_of_tests_and_grep():
    report = AnalysisReport(commit_ref="abc", repo_path="/repo", file_results=[
        _result("a.spec.ts", ("literal", False), ("user ${name}", True)),
        _result("b.spec.ts", ("other", False)),
    ])

    selection = build_selection(report)

    assert selection.tests == ["literal", "other"]
    assert "${name}" not in selection.grep
    assert selection.files == ["a.spec.ts", "b.spec.ts"]
    assert selection.files_with_dynamic_tests == ["a.spec.ts"]
    assert selection.has_dynamic_tests is True


def test_forced_file_mode_counts_as_dynamic():
    report = AnalysisReport(commit_ref="abc", repo_path="/repo", file_results=[
        _result("broken.spec.ts", forced=True),
    ])

    selection = build_selection(report)

    assert selection.files == ["broken.spec.ts"]
    assert selection.tests == []
    assert selection.files_with_dynamic_tests == ["broken.spec.ts"]


def test_result_without_tests_is_not_a_file():
    report = AnalysisReport(commit_ref="abc", repo_path="/repo", file_results=[
        FileAnalysisResult(file_path="gone.spec.ts", status=FileStatus.DELETED),
    ])
    assert build_selection(report).files == []


def test_json_uses_camel_case_keys():
    selection = Selection(files=["a.spec.ts"], tests=["t"], grep="t")
    data = json.loads(selection.to_json())
    assert data["filesWithDynamicTests"] == []
    assert data["hasDynamicTests"] is False
    assert Selection.model_validate(data) == selection
