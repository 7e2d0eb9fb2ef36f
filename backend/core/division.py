"""
division.py — Division calculator.

A student's division for one exam type comes from their best four GENERAL
subjects:

  score → grade (grading table) → grade-point (1 best … 9 worst)
  aggregate = sum of the four best grade-points       (range 4–36)

  4–12  Division I     13–24 Division II    25–32 Division III
  33–35 Division IV    36    U (ungraded)   >36   X (fail)

Fewer than four assessed GENERAL subjects gives an Incomplete result rather
than a partial aggregate.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Union

from core.grading import (
    WORST_GRADE_POINT,
    GradingTable,
    get_grade_points,
    preset_table,
    score_to_grade,
)
from core.marks import DIVISION_EXAM_TYPES, SubjectMark, normalize_exam_type, score_for

logger = logging.getLogger(__name__)

SUBJECTS_REQUIRED = 4


class Division(Enum):
    DIVISION_1 = "Division I"
    DIVISION_2 = "Division II"
    DIVISION_3 = "Division III"
    DIVISION_4 = "Division IV"
    UNGRADED = "U"
    FAIL = "X"
    INCOMPLETE = "Incomplete"

    @property
    def label(self) -> str:
        return self.value


GRADED_DIVISIONS = [d for d in Division if d is not Division.INCOMPLETE]

# (low, high, division), checked in order.
DIVISION_RANGES = [
    (4, 12, Division.DIVISION_1),
    (13, 24, Division.DIVISION_2),
    (25, 32, Division.DIVISION_3),
    (33, 35, Division.DIVISION_4),
    (36, 36, Division.UNGRADED),
]


@dataclass(frozen=True)
class SelectedSubject:
    subject_id: str
    subject_name: str
    score: float
    grade: str
    grade_point: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "subjectName": self.subject_name,
            "score": self.score,
            "grade": self.grade,
            "gradePoint": self.grade_point,
        }


@dataclass(frozen=True)
class DivisionResult:
    division: Division
    aggregate: int
    exam_type: str
    subjects: List[SelectedSubject] = field(default_factory=list)

    is_complete = True

    @property
    def label(self) -> str:
        return self.division.label

    @property
    def passed(self) -> bool:
        return self.division is not Division.FAIL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "division": self.division.name,
            "label": self.label,
            "aggregate": self.aggregate,
            "examType": self.exam_type,
            "passed": self.passed,
            "subjects": [s.to_dict() for s in self.subjects],
        }


@dataclass(frozen=True)
class Incomplete:
    reason: str
    exam_type: str
    qualifying_subjects: int = 0
    required: int = SUBJECTS_REQUIRED

    is_complete = False
    division = Division.INCOMPLETE
    aggregate = None
    passed = False

    @property
    def label(self) -> str:
        return self.division.label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "division": self.division.name,
            "label": self.label,
            "aggregate": None,
            "examType": self.exam_type,
            "passed": False,
            "reason": self.reason,
            "qualifyingSubjects": self.qualifying_subjects,
            "required": self.required,
            "subjects": [],
        }


DivisionOutcome = Union[DivisionResult, Incomplete]


def classify_aggregate(aggregate: int) -> Division:
    """Map an aggregate to its division; anything outside the bands fails."""
    for low, high, division in DIVISION_RANGES:
        if low <= aggregate <= high:
            return division
    return Division.FAIL


@lru_cache(maxsize=32)
def _warn_if_no_grade_points(table: GradingTable) -> bool:
    """
    Division grade-points come from D1..F9 labels. A table whose labels all
    score the worst point (an A-F report-card table, say) sends every student
    to aggregate 36. Warned once per table.
    """
    if all(get_grade_points(g) == WORST_GRADE_POINT for g in table.grades):
        logger.warning(
            "Grading table %s has no division grade labels (D1..P8); every subject "
            "will score %d points",
            table.grades, WORST_GRADE_POINT,
        )
        return True
    return False


def _coerce_marks(marks: Iterable[Any]) -> List[SubjectMark]:
    coerced = []
    for m in marks or []:
        coerced.append(m if isinstance(m, SubjectMark) else SubjectMark.from_dict(m))
    return coerced


def compute_division(
    marks: Iterable[Any],
    exam_type: str,
    grading_table: Optional[GradingTable] = None,
) -> DivisionOutcome:
    """
    Division for one student and one exam type.

    Subjects with a zero or missing score for the exam type are left out.
    Equal grade-points keep input order when picking the best four.
    """
    field_name = normalize_exam_type(exam_type)
    table = grading_table if grading_table is not None and len(grading_table) else preset_table("division")
    _warn_if_no_grade_points(table)

    general = [m for m in _coerce_marks(marks) if m.is_general]
    if len(general) < SUBJECTS_REQUIRED:
        return Incomplete(
            reason=f"Only {len(general)} GENERAL subjects; {SUBJECTS_REQUIRED} required.",
            exam_type=field_name,
            qualifying_subjects=len(general),
        )

    graded: List[SelectedSubject] = []
    for mark in general:
        score = score_for(mark, field_name)
        if score is None or score <= 0:
            continue
        grade = score_to_grade(score, table)
        graded.append(SelectedSubject(
            subject_id=mark.subject_id,
            subject_name=mark.subject_name,
            score=float(score),
            grade=grade,
            grade_point=get_grade_points(grade),
        ))

    if len(graded) < SUBJECTS_REQUIRED:
        return Incomplete(
            reason=f"Only {len(graded)} GENERAL subjects assessed for {field_name}; "
                   f"{SUBJECTS_REQUIRED} required.",
            exam_type=field_name,
            qualifying_subjects=len(graded),
        )

    best = sorted(graded, key=lambda s: s.grade_point)[:SUBJECTS_REQUIRED]
    aggregate = sum(s.grade_point for s in best)

    return DivisionResult(
        division=classify_aggregate(aggregate),
        aggregate=aggregate,
        exam_type=field_name,
        subjects=best,
    )


def compute_student_divisions(
    marks: Iterable[Any],
    grading_table: Optional[GradingTable] = None,
) -> Dict[str, DivisionOutcome]:
    """BOT, MID and END divisions for one student."""
    marks = _coerce_marks(marks)
    return {
        label: compute_division(marks, field_name, grading_table)
        for label, field_name in DIVISION_EXAM_TYPES.items()
    }
