"""
marks.py — Subject mark records and their normalisation.

Handles:
- Exam type aliases (homework, BOT, MID, END, total)
- The single subject-total rule used everywhere
- Merging several stored records for one subject
- Long marks sheet (pandas) → per-student SubjectMark lists
- Assessment totals for report-card footers
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

GENERAL = "GENERAL"
COMPONENTS = ("homework", "bot", "midterm", "eot")

EXAM_TYPE_ALIASES = {
    "homework": "homework", "hw": "homework",
    "bot": "bot", "beginning": "bot", "beginning_of_term": "bot",
    "midterm": "midterm", "mid": "midterm", "mot": "midterm", "mid_term": "midterm",
    "eot": "eot", "end": "eot", "end_of_term": "eot",
    "total": "total", "overall": "total",
}

# Exam types shown on the class divisions page, in term order.
DIVISION_EXAM_TYPES = {"BOT": "bot", "MID": "midterm", "END": "eot"}


def normalize_exam_type(exam_type: str) -> str:
    """Map any accepted alias to the SubjectMark field name."""
    key = str(exam_type or "").strip().lower().replace("-", "_").replace(" ", "_")
    if key not in EXAM_TYPE_ALIASES:
        raise ValueError(
            f"Unknown exam type: {exam_type!r}. "
            "Use homework, bot, midterm, eot or total."
        )
    return EXAM_TYPE_ALIASES[key]


@dataclass
class SubjectMark:
    subject_id: str
    subject_name: str
    category: str = GENERAL
    homework: Optional[float] = None
    bot: Optional[float] = None
    midterm: Optional[float] = None
    eot: Optional[float] = None
    total: Optional[float] = None
    grade: Optional[str] = None
    student_id: Optional[str] = None

    @property
    def is_general(self) -> bool:
        return str(self.category or "").strip().upper() == GENERAL

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "SubjectMark":
        if not isinstance(row, Mapping):
            raise ValueError(f"Mark record must be an object, got {type(row).__name__}.")
        subject_id = row.get("subjectId", row.get("subject_id"))
        subject_name = row.get("subjectName", row.get("subject_name", row.get("subject")))
        if subject_id is None and subject_name is None:
            raise ValueError("Mark record needs a subjectId or subjectName.")
        return cls(
            subject_id=str(subject_id if subject_id is not None else subject_name),
            subject_name=str(subject_name if subject_name is not None else subject_id),
            category=_clean_category(row.get("category")),
            homework=_to_number(row.get("homework")),
            bot=_to_number(row.get("bot")),
            midterm=_to_number(row.get("midterm")),
            eot=_to_number(row.get("eot")),
            total=_to_number(row.get("total")),
            grade=_clean_id(row.get("grade")),
            student_id=_clean_id(row.get("studentId", row.get("student_id"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "subjectName": self.subject_name,
            "category": self.category,
            "homework": self.homework,
            "bot": self.bot,
            "midterm": self.midterm,
            "eot": self.eot,
            "total": subject_total(self),
            "grade": self.grade,
        }


# ── Helpers ─────────────────────────────────────────────────────────

def _to_number(val) -> Optional[float]:
    """Convert to float or return None (NaN/inf count as missing)."""
    if val is None:
        return None
    try:
        v = float(val)
    except (TypeError, ValueError):
        return None
    if np.isnan(v) or np.isinf(v):
        return None
    return v


def _clean_category(value) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return GENERAL
    cleaned = str(value).strip().upper()
    return cleaned or GENERAL


def _clean_id(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


# ── Totals and exam-type scores ─────────────────────────────────────

def subject_total(mark: SubjectMark) -> float:
    """
    Stored positive total, else end-of-term score, else the mean of the
    positive homework/bot/midterm components. 0 means not assessed.
    """
    if _positive(mark.total):
        return float(mark.total)
    if _positive(mark.eot):
        return float(mark.eot)
    parts = [getattr(mark, c) for c in ("homework", "bot", "midterm")]
    parts = [p for p in parts if _positive(p)]
    if not parts:
        return 0.0
    return round(sum(parts) / len(parts), 2)


def score_for(mark: SubjectMark, exam_type: str) -> Optional[float]:
    """Score for one exam type; `total` goes through subject_total."""
    field_name = normalize_exam_type(exam_type)
    if field_name == "total":
        return subject_total(mark)
    return getattr(mark, field_name)


def assessment_totals(marks: Iterable[SubjectMark]) -> Dict[str, float]:
    """Sum each component across subjects, missing values counting as 0."""
    totals = {c: 0.0 for c in COMPONENTS}
    totals["total"] = 0.0
    for mark in marks:
        for c in COMPONENTS:
            totals[c] += getattr(mark, c) or 0.0
        totals["total"] += subject_total(mark)
    return {k: round(v, 2) for k, v in totals.items()}


# ── Merging stored records ──────────────────────────────────────────

def _created_at(row: Dict[str, Any]) -> datetime:
    value = row.get("createdAt", row.get("created_at"))
    if value is None:
        return datetime.min
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        return pd.Timestamp(value).to_pydatetime().replace(tzinfo=None)
    except (TypeError, ValueError):
        return datetime.min


def consolidate_marks(records: Iterable[Dict[str, Any]]) -> List[SubjectMark]:
    """
    Merge stored mark rows so each subject appears once. For every component
    the most recent non-null value wins. Subject order follows first
    appearance in `records`.
    """
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for row in records:
        mark = SubjectMark.from_dict(row)
        grouped.setdefault(mark.subject_id, []).append(row)

    merged: List[SubjectMark] = []
    for subject_id, rows in grouped.items():
        newest_first = sorted(rows, key=_created_at, reverse=True)
        base = SubjectMark.from_dict(newest_first[0])
        for name in COMPONENTS + ("total",):
            for row in newest_first:
                value = _to_number(row.get(name))
                if value is not None:
                    setattr(base, name, value)
                    break
        if not base.grade:
            for row in newest_first:
                grade = _clean_id(row.get("grade"))
                if grade:
                    base.grade = grade
                    break
        merged.append(base)

    return merged


# ── Marks sheet → SubjectMark ───────────────────────────────────────

def marks_from_dataframe(df: pd.DataFrame) -> Dict[str, List[SubjectMark]]:
    """
    Convert a long marks sheet (one row per student and subject) into
    {student_id: [SubjectMark, ...]} keeping sheet order.
    """
    cleaned = df.copy()

    str_cols = cleaned.select_dtypes(include=["object"]).columns
    for col in str_cols:
        cleaned[col] = cleaned[col].astype(str).str.strip()
    cleaned = cleaned.replace({"nan": np.nan, "NaN": np.nan, "": np.nan, "None": np.nan})

    id_col = _find_column(cleaned, ["student_id", "studentid", "id", "adm_no", "reg_no"])
    subject_col = _find_column(cleaned, ["subject", "subject_name", "subjectname"])
    if not id_col or not subject_col:
        raise ValueError("Marks sheet needs 'student_id' and 'subject' columns.")

    subject_id_col = _find_column(cleaned, ["subject_id", "subjectid", "subject_code"])
    for name in COMPONENTS + ("total",):
        col = _find_column(cleaned, [name])
        if col:
            cleaned[col] = pd.to_numeric(cleaned[col], errors="coerce")

    cleaned = cleaned.dropna(subset=[id_col, subject_col])
    before = len(cleaned)
    cleaned = cleaned.drop_duplicates(keep="last")
    if len(cleaned) < before:
        logger.info("Dropped %d duplicate mark rows", before - len(cleaned))

    by_student: Dict[str, List[SubjectMark]] = {}
    for row in cleaned.to_dict(orient="records"):
        lowered = {str(k).lower().strip(): v for k, v in row.items()}
        lowered["subject_name"] = row[subject_col]
        lowered["subject_id"] = row[subject_id_col] if subject_id_col else row[subject_col]
        mark = SubjectMark.from_dict(lowered)
        mark.student_id = _clean_id(row[id_col])
        by_student.setdefault(mark.student_id, []).append(mark)

    return by_student


def marks_from_payload(rows: Optional[Iterable[Dict[str, Any]]]) -> List[SubjectMark]:
    """Build SubjectMark records from JSON rows, merging repeated subjects."""
    if rows is None:
        return []
    if not isinstance(rows, (list, tuple)):
        raise ValueError(f"Marks must be a list, got {type(rows).__name__}.")
    for r in rows:
        if not isinstance(r, Mapping):
            raise ValueError(f"Mark record must be an object, got {type(r).__name__}.")
    if any(r.get("createdAt") or r.get("created_at") for r in rows):
        return consolidate_marks(rows)
    return [SubjectMark.from_dict(r) for r in rows]


def _find_column(df: pd.DataFrame, aliases: List[str]) -> Optional[str]:
    """Find the first column in df that matches any of the aliases."""
    cols_lower = {str(c).lower().strip(): c for c in df.columns}
    for alias in aliases:
        if alias in cols_lower:
            return cols_lower[alias]
    return None
