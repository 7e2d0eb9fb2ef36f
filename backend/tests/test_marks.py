"""
Tests for core/marks.py — subject totals, exam types, merging, marks sheets.
"""

import os
import sys
import pytest
import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.marks import (
    SubjectMark,
    assessment_totals,
    consolidate_marks,
    marks_from_dataframe,
    marks_from_payload,
    normalize_exam_type,
    score_for,
    subject_total,
)


class TestNormalizeExamType:

    @pytest.mark.parametrize("alias,expected", [
        ("homework", "homework"), ("HW", "homework"),
        ("BOT", "bot"), ("beginning of term", "bot"),
        ("MID", "midterm"), ("mot", "midterm"), ("mid-term", "midterm"),
        ("END", "eot"), ("eot", "eot"),
        ("total", "total"),
    ])
    def test_aliases(self, alias, expected):
        assert normalize_exam_type(alias) == expected

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            normalize_exam_type("mock")


class TestSubjectTotal:
    """One total rule for every caller."""

    def test_stored_total_wins(self):
        mark = SubjectMark("S1", "English", total=77, eot=90)
        assert subject_total(mark) == 77

    def test_eot_when_no_total(self):
        mark = SubjectMark("S1", "English", homework=40, bot=50, eot=68)
        assert subject_total(mark) == 68

    def test_mean_of_components_without_eot(self):
        mark = SubjectMark("S1", "English", homework=60, bot=None, midterm=71)
        assert subject_total(mark) == 65.5

    def test_zero_components_ignored(self):
        mark = SubjectMark("S1", "English", homework=0, bot=50, midterm=0, total=0)
        assert subject_total(mark) == 50

    def test_not_assessed_is_zero(self):
        assert subject_total(SubjectMark("S1", "English")) == 0.0

    def test_score_for_total(self):
        mark = SubjectMark("S1", "English", eot=0, total=88)
        assert score_for(mark, "total") == 88
        assert score_for(mark, "eot") == 0


class TestSubjectMark:

    def test_from_dict_defaults(self):
        mark = SubjectMark.from_dict({"subjectName": "Science", "eot": "72"})
        assert mark.subject_id == "Science"
        assert mark.category == "GENERAL"
        assert mark.eot == 72.0
        assert mark.bot is None

    def test_from_dict_needs_subject(self):
        with pytest.raises(ValueError):
            SubjectMark.from_dict({"eot": 50})

    @pytest.mark.parametrize("row", [None, "ENG", 42, ["ENG", 50]])
    def test_from_dict_rejects_non_objects(self, row):
        with pytest.raises(ValueError):
            SubjectMark.from_dict(row)

    def test_non_numeric_scores_become_none(self):
        mark = SubjectMark.from_dict({"subjectId": "X", "bot": "absent", "midterm": float("nan")})
        assert mark.bot is None
        assert mark.midterm is None


class TestConsolidateMarks:
    """Merging several stored records for the same subject."""

    def test_latest_non_null_wins_per_component(self):
        rows = [
            {"subjectId": "ENG", "subjectName": "English", "bot": 50, "midterm": 60,
             "createdAt": "2025-02-01T08:00:00Z"},
            {"subjectId": "ENG", "subjectName": "English", "bot": 55, "eot": None,
             "createdAt": "2025-03-01T08:00:00Z"},
            {"subjectId": "MTC", "subjectName": "Mathematics", "eot": 70,
             "createdAt": "2025-03-02T08:00:00Z"},
        ]
        merged = consolidate_marks(rows)
        assert [m.subject_id for m in merged] == ["ENG", "MTC"]
        english = merged[0]
        assert english.bot == 55
        assert english.midterm == 60
        assert english.eot is None

    def test_payload_without_timestamps_is_kept_as_is(self):
        rows = [{"subjectId": "ENG", "eot": 50}, {"subjectId": "MTC", "eot": 60}]
        marks = marks_from_payload(rows)
        assert [m.eot for m in marks] == [50, 60]

    def test_payload_none_is_empty(self):
        assert marks_from_payload(None) == []

    @pytest.mark.parametrize("rows", [
        [None],
        [{"subjectId": "ENG", "eot": 50}, None],
        [{"subjectId": "ENG", "createdAt": "2025-03-01"}, "junk"],
        {"subjectId": "ENG"},
        "ENG",
        42,
    ])
    def test_payload_rejects_malformed_rows(self, rows):
        with pytest.raises(ValueError):
            marks_from_payload(rows)


class TestAssessmentTotals:

    def test_sums_components(self):
        marks = [
            SubjectMark("A", "A", homework=10, bot=20, midterm=30, eot=40),
            SubjectMark("B", "B", bot=15, eot=None, total=60),
        ]
        totals = assessment_totals(marks)
        assert totals == {
            "homework": 10.0, "bot": 35.0, "midterm": 30.0, "eot": 40.0, "total": 100.0,
        }


class TestMarksFromDataframe:

    @pytest.fixture
    def sheet(self):
        return pd.DataFrame({
            "student_id": [" S001", "S001", "S002", "S002"],
            "subject": ["English", "Mathematics", "English", "English"],
            "category": ["general", None, "OPTIONAL", "OPTIONAL"],
            "bot": ["70", "65", "abc", "abc"],
            "eot": [80, None, 55, 55],
        })

    def test_groups_by_student(self, sheet):
        result = marks_from_dataframe(sheet)
        assert list(result) == ["S001", "S002"]
        assert [m.subject_name for m in result["S001"]] == ["English", "Mathematics"]

    def test_normalises_values(self, sheet):
        result = marks_from_dataframe(sheet)
        english = result["S001"][0]
        assert english.category == "GENERAL"
        assert english.bot == 70.0
        assert english.eot == 80.0
        assert result["S001"][1].category == "GENERAL"
        assert result["S001"][1].eot is None

    def test_drops_duplicate_rows(self, sheet):
        result = marks_from_dataframe(sheet)
        assert len(result["S002"]) == 1
        assert result["S002"][0].bot is None
        assert result["S002"][0].category == "OPTIONAL"

    def test_missing_required_columns(self):
        with pytest.raises(ValueError):
            marks_from_dataframe(pd.DataFrame({"name": ["Alice"], "eot": [50]}))
