"""
grading.py — Grading table resolution and score → grade lookups.

Two built-in presets cover the school's two uses of grades:
  report_card  A, B, C, D, F          (report-card grade column)
  division     D1, D2, C3 ... P8, F9  (primary-leaving-exam style divisions)

Stored grading rules arrive as loosely-typed rows from the data layer and are
normalised into GradeRule records before any scoring happens.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeRule:
    grade: str
    min_mark: float
    max_mark: float
    comment: str = ""

    def contains(self, score: float) -> bool:
        return self.min_mark <= score <= self.max_mark

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grade": self.grade,
            "minMark": self.min_mark,
            "maxMark": self.max_mark,
            "comment": self.comment,
        }


# ── Presets ─────────────────────────────────────────────────────────
# (grade, min_mark, max_mark, comment), ordered high to low.

REPORT_CARD_GRADES = [
    ("A", 80.0, 100.0, "Excellent"),
    ("B", 70.0, 79.0, "Very Good"),
    ("C", 60.0, 69.0, "Good"),
    ("D", 50.0, 59.0, "Pass"),
    ("F", 0.0, 49.0, "Fail"),
]

DIVISION_GRADES = [
    ("D1", 80.0, 100.0, "Distinction"),
    ("D2", 70.0, 79.0, "Distinction"),
    ("C3", 60.0, 69.0, "Credit"),
    ("C4", 50.0, 59.0, "Credit"),
    ("C5", 40.0, 49.0, "Credit"),
    ("C6", 30.0, 39.0, "Credit"),
    ("P7", 20.0, 29.0, "Pass"),
    ("P8", 10.0, 19.0, "Pass"),
    ("F9", 0.0, 9.0, "Fail"),
]

PRESETS = {
    "report_card": REPORT_CARD_GRADES,
    "division": DIVISION_GRADES,
}

PRESET_LABELS = {
    "report_card": "Report card (A-F)",
    "division": "Division (D1-F9)",
}

# Lower is better. Unknown grades score as the worst value.
GRADE_POINTS = {
    "D1": 1,
    "D2": 2,
    "C3": 3,
    "C4": 4,
    "C5": 5,
    "C6": 6,
    "P7": 7,
    "P8": 8,
    "F9": 9,
    "F": 9,
}
WORST_GRADE_POINT = 9
FALLBACK_GRADE = "F"

_MIN_KEYS = ("minMark", "min_mark", "minScore", "min_score", "min")
_MAX_KEYS = ("maxMark", "max_mark", "maxScore", "max_score", "max")
_COMMENT_KEYS = ("comment", "description", "remark")


@dataclass(frozen=True)
class GradingTable:
    """Immutable snapshot of grade rules, ordered by min_mark descending."""

    rules: Tuple[GradeRule, ...]
    preset: Optional[str] = None

    def __post_init__(self):
        ordered = tuple(sorted(self.rules, key=lambda r: r.min_mark, reverse=True))
        object.__setattr__(self, "rules", ordered)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    @property
    def grades(self) -> List[str]:
        return [r.grade for r in self.rules]

    def score_to_grade(self, score: float) -> str:
        return score_to_grade(score, self)

    def grade_to_comment(self, grade: str) -> str:
        return grade_to_comment(grade, self)

    def thresholds(self) -> List[Dict[str, Any]]:
        """Legend rows for display, best grade first."""
        return [
            {
                "label": r.grade,
                "min": r.min_mark,
                "max": r.max_mark,
                "points": get_grade_points(r.grade),
                "description": r.comment,
            }
            for r in self.rules
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preset": self.preset,
            "grades": [r.to_dict() for r in self.rules],
        }


# ── Normalisation ───────────────────────────────────────────────────

def _first_value(row: Dict[str, Any], keys: Tuple[str, ...]):
    for key in keys:
        if key in row and row[key] is not None and row[key] != "":
            return row[key]
    return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_grade_rules(raw_rows: Optional[Iterable[Any]]) -> List[GradeRule]:
    """
    Turn stored rows (dicts, GradeRule instances, or (grade, min, max[, comment])
    tuples) into GradeRule records. Bad rows are dropped and logged.
    """
    rules: List[GradeRule] = []
    if not raw_rows:
        return rules

    for idx, row in enumerate(raw_rows):
        if isinstance(row, GradeRule):
            rules.append(row)
            continue

        if isinstance(row, (tuple, list)):
            padded = list(row) + [None] * (4 - len(row))
            grade, low, high, comment = padded[:4]
        elif isinstance(row, dict):
            grade = row.get("grade")
            low = _first_value(row, _MIN_KEYS)
            high = _first_value(row, _MAX_KEYS)
            comment = _first_value(row, _COMMENT_KEYS)
        else:
            logger.warning("Dropping grade rule %d: unsupported row type %s", idx, type(row).__name__)
            continue

        label = str(grade).strip().upper() if grade is not None else ""
        min_mark = _to_float(low)
        max_mark = _to_float(high)
        if not label or min_mark is None or max_mark is None:
            logger.warning("Dropping grade rule %d: incomplete row %r", idx, row)
            continue

        if min_mark > max_mark:
            min_mark, max_mark = max_mark, min_mark

        rules.append(GradeRule(
            grade=label,
            min_mark=min_mark,
            max_mark=max_mark,
            comment=str(comment).strip() if comment is not None else "",
        ))

    return rules


# ── Resolution ──────────────────────────────────────────────────────

def preset_table(preset: str) -> GradingTable:
    """Return a built-in grading table by name."""
    if preset not in PRESETS:
        raise ValueError(f"Unknown grading preset: {preset!r}. Use one of {sorted(PRESETS)}.")
    return GradingTable(
        (GradeRule(g, lo, hi, c) for g, lo, hi, c in PRESETS[preset]),
        preset=preset,
    )


def resolve_grading_table(source: Optional[Iterable[Any]] = None, preset: str = "report_card") -> GradingTable:
    """
    Build a GradingTable from stored rules, falling back to the named preset
    when nothing usable is stored.
    """
    rules = normalize_grade_rules(source)
    if not rules:
        logger.debug("No stored grading rules; using '%s' preset", preset)
        return preset_table(preset)
    return GradingTable(rules)


def score_to_grade(score: float, table: GradingTable) -> str:
    """
    First rule (min_mark descending) whose range holds the score.

    A score falling between two bands (79.5 with B 70-79 and A 80-100) takes
    the closest band below it. Only scores under every min_mark get the
    lowest band.
    """
    rules = table.rules
    if not rules:
        return FALLBACK_GRADE

    for rule in rules:
        if rule.contains(score):
            return rule.grade

    for rule in rules:
        if score >= rule.min_mark:
            return rule.grade

    return rules[-1].grade


def grade_to_comment(grade: str, table: GradingTable) -> str:
    if not grade:
        return ""
    wanted = str(grade).strip().upper()
    for rule in table.rules:
        if rule.grade.upper() == wanted:
            return rule.comment
    return ""


def get_grade_points(grade: Optional[str]) -> int:
    """Grade-point value, 1 (best) to 9 (worst)."""
    if not grade:
        return WORST_GRADE_POINT
    return GRADE_POINTS.get(str(grade).strip().upper(), WORST_GRADE_POINT)


def grade_score(score: Optional[float], table: GradingTable) -> Dict[str, Any]:
    """Grade info for display; a missing score yields a placeholder."""
    value = _to_float(score)
    if value is None:
        return {"label": "-", "points": WORST_GRADE_POINT, "comment": "No score", "score": None}

    label = score_to_grade(value, table)
    return {
        "label": label,
        "points": get_grade_points(label),
        "comment": grade_to_comment(label, table),
        "score": round(value, 1),
    }


def validate_grading_table(source: Iterable[Any]) -> Dict[str, Any]:
    """Report overlaps, gaps and missing 0-100 coverage for admin review."""
    rules = normalize_grade_rules(source)
    errors: List[str] = []

    if not rules:
        errors.append("Grading system is empty")
        return {"is_valid": False, "errors": errors}

    ordered = sorted(rules, key=lambda r: r.min_mark)
    for current, nxt in zip(ordered, ordered[1:]):
        if current.max_mark >= nxt.min_mark:
            errors.append(f"Overlap between grades {current.grade} and {nxt.grade}")
        elif current.max_mark + 1 < nxt.min_mark:
            errors.append(
                f"Gap between grades {current.grade} ({current.max_mark:g}) "
                f"and {nxt.grade} ({nxt.min_mark:g})"
            )

    lowest = min(r.min_mark for r in rules)
    highest = max(r.max_mark for r in rules)
    if lowest > 0:
        errors.append(f"Grading system doesn't cover scores below {lowest:g}")
    if highest < 100:
        errors.append(f"Grading system doesn't cover scores above {highest:g}")

    return {"is_valid": not errors, "errors": errors}
