"""
stats.py — Class-wide division and performance statistics.

Computes:
- Divisions for a whole roster (one bad student never sinks the batch)
- Per-division counts and pass rate
- Class positions by aggregate (scipy rankdata, ties share a rank)
- Grade histogram and subject averages for dashboards
- Aggregate trend across BOT → MID → END (numpy polyfit)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from core.division import (
    GRADED_DIVISIONS,
    Division,
    DivisionOutcome,
    Incomplete,
    compute_division,
)
from core.grading import GradingTable, preset_table, score_to_grade
from core.marks import DIVISION_EXAM_TYPES, SubjectMark, normalize_exam_type, subject_total

logger = logging.getLogger(__name__)

TOP_PERFORMER_MARK = 80
NEEDS_IMPROVEMENT_MARK = 60


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    """Convert to float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _marks_frame(marks_by_student: Mapping[str, Iterable[SubjectMark]]) -> pd.DataFrame:
    """One row per (student, subject) with the subject total."""
    rows = []
    for student_id, marks in marks_by_student.items():
        for mark in marks:
            rows.append({
                "student_id": str(student_id),
                "subject": mark.subject_name,
                "total": subject_total(mark),
            })
    return pd.DataFrame(rows, columns=["student_id", "subject", "total"])


# ── Roster divisions ────────────────────────────────────────────────

def _division_or_incomplete(
    student_id: str,
    marks: Iterable[Any],
    exam_type: str,
    grading_table: Optional[GradingTable],
) -> DivisionOutcome:
    try:
        return compute_division(marks, exam_type, grading_table)
    except Exception as exc:
        logger.warning("Division failed for student %s (%s): %s", student_id, exam_type, exc)
        return Incomplete(reason=f"Could not compute division: {exc}", exam_type=exam_type)


def compute_class_divisions(
    students: Mapping[str, Iterable[Any]],
    exam_type: str,
    grading_table: Optional[GradingTable] = None,
    parallel: bool = False,
) -> Dict[str, DivisionOutcome]:
    """
    Division for every student on the roster, keyed by student id in roster
    order. Students with missing or broken data come back Incomplete.
    """
    field_name = normalize_exam_type(exam_type)
    roster = [(str(sid), marks) for sid, marks in students.items()]

    if parallel and len(roster) > 1:
        with ThreadPoolExecutor() as pool:
            outcomes = list(pool.map(
                lambda item: _division_or_incomplete(item[0], item[1], field_name, grading_table),
                roster,
            ))
    else:
        outcomes = [
            _division_or_incomplete(sid, marks, field_name, grading_table)
            for sid, marks in roster
        ]

    return {sid: outcome for (sid, _), outcome in zip(roster, outcomes)}


def class_division_statistics(results: Mapping[str, DivisionOutcome]) -> Dict[str, Any]:
    """Per-division counts and pass rate (percent of complete results not FAIL)."""
    counts = {d.name: 0 for d in GRADED_DIVISIONS}
    incomplete = 0
    passed = 0

    for outcome in results.values():
        if outcome is None or not outcome.is_complete:
            incomplete += 1
            continue
        counts[outcome.division.name] += 1
        if outcome.division is not Division.FAIL:
            passed += 1

    graded = sum(counts.values())
    pass_rate = round(passed / graded * 100, 2) if graded > 0 else 0.0

    return {
        "total": len(results),
        "graded": graded,
        "incomplete": incomplete,
        "perDivisionCounts": counts,
        "passCount": passed,
        "passRate": pass_rate,
    }


def rank_by_aggregate(results: Mapping[str, DivisionOutcome]) -> Dict[str, int]:
    """Class position by aggregate; lower aggregate ranks higher."""
    complete = [(sid, r.aggregate) for sid, r in results.items() if r is not None and r.is_complete]
    if not complete:
        return {}
    ranks = sp_stats.rankdata([agg for _, agg in complete], method="min")
    return {sid: int(rank) for (sid, _), rank in zip(complete, ranks)}


# ── Distributions ───────────────────────────────────────────────────

def grade_distribution(
    marks_by_student: Mapping[str, Iterable[SubjectMark]],
    grading_table: Optional[GradingTable] = None,
) -> Dict[str, int]:
    """Histogram of grades over each student's mean subject total."""
    table = grading_table if grading_table is not None and len(grading_table) else preset_table("report_card")
    distribution = {rule.grade: 0 for rule in table.rules}

    df = _marks_frame(marks_by_student)
    df = df[df["total"] > 0]
    if df.empty:
        return distribution

    student_means = df.groupby("student_id")["total"].mean()
    for mean in student_means:
        grade = score_to_grade(float(mean), table)
        distribution[grade] = distribution.get(grade, 0) + 1
    return distribution


def subject_averages(marks_by_student: Mapping[str, Iterable[SubjectMark]]) -> List[Dict[str, Any]]:
    """Mean subject total over assessed students, best subject first."""
    df = _marks_frame(marks_by_student)
    df = df[df["total"] > 0]
    if df.empty:
        return []

    grouped = df.groupby("subject")["total"].agg(["mean", "count"]).sort_values("mean", ascending=False)
    return _sanitize([
        {"subject": str(subject), "average": _safe_float(row["mean"]), "studentCount": int(row["count"])}
        for subject, row in grouped.iterrows()
    ])


def compute_performance_stats(
    marks_by_student: Mapping[str, Iterable[SubjectMark]],
    grading_table: Optional[GradingTable] = None,
) -> Dict[str, Any]:
    """Dashboard summary over subject totals."""
    df = _marks_frame(marks_by_student)
    df = df[df["total"] > 0]

    if df.empty:
        return {
            "totalStudents": 0,
            "averagePerformance": 0,
            "topPerformers": 0,
            "needsImprovement": 0,
            "subjectAverages": [],
            "gradeDistribution": grade_distribution({}, grading_table),
        }

    student_means = df.groupby("student_id")["total"].mean()
    return _sanitize({
        "totalStudents": int(student_means.size),
        "averagePerformance": _safe_float(df["total"].mean()),
        "topPerformers": int((student_means >= TOP_PERFORMER_MARK).sum()),
        "needsImprovement": int((student_means < NEEDS_IMPROVEMENT_MARK).sum()),
        "subjectAverages": subject_averages(marks_by_student),
        "gradeDistribution": grade_distribution(marks_by_student, grading_table),
    })


# ── Trends ──────────────────────────────────────────────────────────

def aggregate_trend(result_by_exam: Mapping[str, DivisionOutcome]) -> Dict[str, Any]:
    """
    Slope of the aggregate across the term's exams, in BOT → MID → END order.
    A falling aggregate is an improvement.
    """
    points = []
    for position, label in enumerate(DIVISION_EXAM_TYPES):
        outcome = result_by_exam.get(label)
        if outcome is not None and outcome.is_complete:
            points.append((position, outcome.aggregate, label))

    if len(points) < 2:
        return {"direction": "insufficient", "slope": None, "points": [p[2] for p in points]}

    x = np.array([p[0] for p in points], dtype=float)
    y = np.array([p[1] for p in points], dtype=float)
    slope = float(np.polyfit(x, y, 1)[0])

    if slope <= -1:
        direction = "improving"
    elif slope >= 1:
        direction = "declining"
    else:
        direction = "stable"

    return {"direction": direction, "slope": round(slope, 2), "points": [p[2] for p in points]}
