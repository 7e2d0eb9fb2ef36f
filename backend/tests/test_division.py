"""
Tests for core/division.py — best-four selection, aggregates, division bands.
"""

import logging
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.division import (
    Division,
    DivisionResult,
    Incomplete,
    classify_aggregate,
    compute_division,
    compute_student_divisions,
    _warn_if_no_grade_points,
)
from core.grading import GradingTable, preset_table, resolve_grading_table
from core.marks import SubjectMark

# One score per division grade band: D1, D2, C3, C4, C5, C6, P7, P8, F9
BAND_SCORES = [85, 75, 65, 55, 45, 35, 25, 15, 5]


def _mark(idx, eot=None, category="GENERAL", **kwargs):
    return SubjectMark(
        subject_id=f"SUB{idx}",
        subject_name=f"Subject {idx}",
        category=category,
        eot=eot,
        **kwargs,
    )


@pytest.fixture
def division_table():
    return preset_table("division")


class TestClassifyAggregate:
    """Division band boundaries."""

    @pytest.mark.parametrize("aggregate,expected", [
        (4, Division.DIVISION_1),
        (12, Division.DIVISION_1),
        (13, Division.DIVISION_2),
        (24, Division.DIVISION_2),
        (25, Division.DIVISION_3),
        (32, Division.DIVISION_3),
        (33, Division.DIVISION_4),
        (35, Division.DIVISION_4),
        (36, Division.UNGRADED),
        (37, Division.FAIL),
        (3, Division.FAIL),
    ])
    def test_boundaries(self, aggregate, expected):
        assert classify_aggregate(aggregate) is expected

    def test_labels(self):
        assert Division.DIVISION_1.label == "Division I"
        assert Division.DIVISION_4.label == "Division IV"
        assert Division.UNGRADED.label == "U"
        assert Division.FAIL.label == "X"


class TestComputeDivision:
    """Tests for compute_division."""

    def test_selects_best_four(self, division_table):
        marks = [_mark(i, eot=BAND_SCORES[i]) for i in range(6)]
        marks.reverse()
        result = compute_division(marks, "eot", division_table)

        assert isinstance(result, DivisionResult)
        assert result.is_complete
        assert [s.grade_point for s in result.subjects] == [1, 2, 3, 4]
        assert result.aggregate == 10
        assert result.division is Division.DIVISION_1
        assert result.label == "Division I"

    def test_three_subjects_is_incomplete(self, division_table):
        marks = [_mark(i, eot=90) for i in range(3)]
        result = compute_division(marks, "eot", division_table)
        assert isinstance(result, Incomplete)
        assert not result.is_complete
        assert result.division is Division.INCOMPLETE
        assert result.aggregate is None
        assert result.qualifying_subjects == 3

    def test_non_general_subjects_do_not_count(self, division_table):
        marks = [_mark(i, eot=90) for i in range(3)]
        marks.append(_mark(9, eot=95, category="OPTIONAL"))
        result = compute_division(marks, "eot", division_table)
        assert isinstance(result, Incomplete)

    def test_category_compare_ignores_case(self, division_table):
        marks = [_mark(i, eot=90, category="general") for i in range(4)]
        result = compute_division(marks, "eot", division_table)
        assert result.aggregate == 4

    def test_zero_score_excluded_even_with_positive_total(self, division_table):
        marks = [_mark(i, eot=90) for i in range(3)]
        marks.append(_mark(3, eot=0, total=88))
        result = compute_division(marks, "eot", division_table)
        assert isinstance(result, Incomplete)
        assert result.qualifying_subjects == 3

    def test_missing_score_excluded(self, division_table):
        marks = [_mark(i, eot=90, bot=70) for i in range(4)]
        marks[0] = _mark(0, eot=90)
        result = compute_division(marks, "bot", division_table)
        assert isinstance(result, Incomplete)

    def test_exam_type_aliases(self, division_table):
        marks = [_mark(i, bot=72, midterm=64, eot=88) for i in range(4)]
        assert compute_division(marks, "BOT", division_table).aggregate == 8
        assert compute_division(marks, "MID", division_table).aggregate == 12
        assert compute_division(marks, "END", division_table).aggregate == 4

    def test_total_uses_subject_total(self, division_table):
        marks = [_mark(i, homework=60, bot=70, midterm=80) for i in range(4)]
        result = compute_division(marks, "total", division_table)
        # mean of 60/70/80 is 70 → D2
        assert result.aggregate == 8

    def test_unknown_exam_type_raises(self, division_table):
        with pytest.raises(ValueError):
            compute_division([_mark(i, eot=90) for i in range(4)], "mock", division_table)

    def test_ties_keep_input_order(self, division_table):
        marks = [_mark(i, eot=85) for i in range(6)]
        result = compute_division(marks, "eot", division_table)
        assert [s.subject_id for s in result.subjects] == ["SUB0", "SUB1", "SUB2", "SUB3"]

    def test_all_f9_is_ungraded(self, division_table):
        marks = [_mark(i, eot=5) for i in range(4)]
        result = compute_division(marks, "eot", division_table)
        assert result.aggregate == 36
        assert result.division is Division.UNGRADED
        assert result.passed

    def test_unmapped_grades_count_as_nine(self):
        table = resolve_grading_table([
            {"grade": "A", "minMark": 80, "maxMark": 100},
            {"grade": "D1", "minMark": 0, "maxMark": 79},
        ])
        marks = [_mark(i, eot=90) for i in range(4)]
        result = compute_division(marks, "eot", table)
        assert all(s.grade == "A" for s in result.subjects)
        assert result.aggregate == 36

    def test_fractional_scores_take_band_below(self, division_table):
        marks = [_mark(i, eot=79.5) for i in range(4)]
        result = compute_division(marks, "eot", division_table)
        assert [s.grade for s in result.subjects] == ["D2"] * 4
        assert result.aggregate == 8
        assert result.division is Division.DIVISION_1

    def test_letter_grade_table_warns(self, caplog):
        _warn_if_no_grade_points.cache_clear()
        table = resolve_grading_table([
            {"grade": "A", "minMark": 50, "maxMark": 100},
            {"grade": "F", "minMark": 0, "maxMark": 49},
        ])
        marks = [_mark(i, eot=90) for i in range(4)]
        with caplog.at_level(logging.WARNING, logger="core.division"):
            result = compute_division(marks, "eot", table)
        assert result.aggregate == 36
        assert "no division grade labels" in caplog.text

    def test_division_table_does_not_warn(self, division_table, caplog):
        _warn_if_no_grade_points.cache_clear()
        with caplog.at_level(logging.WARNING, logger="core.division"):
            compute_division([_mark(i, eot=85) for i in range(4)], "eot", division_table)
        assert "no division grade labels" not in caplog.text

    def test_empty_table_uses_division_preset(self):
        marks = [_mark(i, eot=BAND_SCORES[i]) for i in range(4)]
        result = compute_division(marks, "eot", GradingTable([]))
        assert result.aggregate == 10

    def test_accepts_dict_rows(self, division_table):
        rows = [
            {"subjectId": f"S{i}", "subjectName": f"Subject {i}", "category": "GENERAL", "eot": 75}
            for i in range(4)
        ]
        result = compute_division(rows, "eot", division_table)
        assert result.aggregate == 8
        assert result.subjects[0].subject_id == "S0"

    def test_idempotent(self, division_table):
        marks = [_mark(i, eot=BAND_SCORES[i]) for i in range(6)]
        first = compute_division(marks, "eot", division_table)
        second = compute_division(marks, "eot", division_table)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_to_dict_shapes(self, division_table):
        complete = compute_division([_mark(i, eot=85) for i in range(4)], "eot", division_table)
        payload = complete.to_dict()
        assert payload["division"] == "DIVISION_1"
        assert payload["aggregate"] == 4
        assert payload["subjects"][0]["gradePoint"] == 1

        incomplete = compute_division([], "eot", division_table).to_dict()
        assert incomplete["division"] == "INCOMPLETE"
        assert incomplete["aggregate"] is None
        assert incomplete["subjects"] == []


class TestComputeStudentDivisions:
    """All three exam types in one call."""

    def test_returns_bot_mid_end(self, division_table):
        marks = [_mark(i, bot=55, midterm=65, eot=None) for i in range(4)]
        result = compute_student_divisions(marks, division_table)
        assert list(result) == ["BOT", "MID", "END"]
        assert result["BOT"].aggregate == 16
        assert result["MID"].aggregate == 12
        assert isinstance(result["END"], Incomplete)
