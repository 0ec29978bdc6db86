"""
Tests for the composite report text: marker format and legacy fallbacks.
"""

import pytest

from tutorbook.services.report_format import ReportSections, compose, is_completed, parse


def test_compose_uses_fixed_markers():
    text = compose(ReportSections(unit="二次関数", message="よく頑張りました", goal="問題集 p.12"))
    assert text == (
        "【単元】\n二次関数\n\n"
        "【伝言事項】\nよく頑張りました\n\n"
        "【来週までの目標(課題)】\n問題集 p.12"
    )


@pytest.mark.parametrize(
    "sections",
    [
        ReportSections(unit="Fractions", message="Quiet today", goal="Worksheet 3"),
        ReportSections(unit="Line one\nline two", message="", goal="Read chapter 4"),
        ReportSections(unit="", message="", goal="Only a goal"),
    ],
)
def test_marked_text_parses_back(sections):
    assert parse(compose(sections)) == sections


def test_unmarked_text_splits_by_line():
    assert parse("Algebra\nAsk more questions\nFinish set B") == ReportSections(
        unit="Algebra", message="Ask more questions", goal="Finish set B"
    )


def test_short_unmarked_text_pads_missing_sections():
    assert parse("Algebra only") == ReportSections(unit="Algebra only")


def test_empty_content():
    assert parse(None) == ReportSections()
    assert parse("").is_empty()


def test_partially_marked_text():
    content = "【伝言事項】\nBring the textbook"
    assert parse(content) == ReportSections(message="Bring the textbook")


@pytest.mark.parametrize(
    "status, expected",
    [
        ("completed", True),
        ("completed:2025-01-10T12:00:00Z", True),
        ("pending", False),
        (None, False),
        ("", False),
    ],
)
def test_is_completed_accepts_legacy_timestamps(status, expected):
    assert is_completed(status) is expected
