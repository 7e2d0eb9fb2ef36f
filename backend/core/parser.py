"""
parser.py — Marks sheet ingestion (CSV, Excel, ODS).

A marks sheet is long format: one row per student and subject with the
assessment columns homework / bot / midterm / eot and optionally a stored
total, grade and subject category.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

SAMPLE_DATA_DIR = Path(__file__).parent.parent / "sample_data"

EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
    ".ods": "odf",
}

# Common column name variations for auto-mapping
COLUMN_ALIASES = {
    "student_id": [
        "student_id", "studentid", "student id", "id", "admission_no",
        "admission no", "adm_no", "adm no", "reg_no", "lin", "index_no",
    ],
    "name": [
        "name", "student_name", "student name", "full_name", "full name",
        "pupil_name", "pupil name", "learner_name",
    ],
    "subject": [
        "subject", "subject_name", "subject name", "paper",
    ],
    "subject_id": [
        "subject_id", "subjectid", "subject_code", "subject code", "code",
    ],
    "category": [
        "category", "subject_category", "subject category", "type",
    ],
    "homework": [
        "homework", "hw", "home work", "assignment",
    ],
    "bot": [
        "bot", "beginning of term", "beginning_of_term", "b.o.t",
    ],
    "midterm": [
        "midterm", "mid term", "mid_term", "mot", "mid", "m.o.t",
    ],
    "eot": [
        "eot", "end of term", "end_of_term", "end", "e.o.t",
    ],
    "total": [
        "total", "total_score", "total score", "overall",
    ],
    "grade": [
        "grade", "letter_grade",
    ],
    "term": [
        "term", "term_name", "period",
    ],
    "year": [
        "year", "academic_year", "academic year",
    ],
}

REQUIRED_FIELDS = ["student_id", "subject"]
SCORE_FIELDS = ["homework", "bot", "midterm", "eot", "total"]


def parse_upload(file_path: str) -> Dict[str, pd.DataFrame]:
    """
    Parse an uploaded file and return a dict of {sheet_name: DataFrame}.
    For CSV files, returns {"Sheet1": df}.
    """
    ext = Path(file_path).suffix.lower()

    if ext == ".csv":
        return {"Sheet1": pd.read_csv(file_path, dtype=str)}

    if ext not in EXCEL_ENGINES:
        raise ValueError(f"Unsupported file type: {ext}")

    xls = pd.ExcelFile(file_path, engine=EXCEL_ENGINES[ext])
    sheets = {}
    for sheet_name in xls.sheet_names:
        df = pd.read_excel(xls, sheet_name=sheet_name, dtype=str)
        # Skip empty sheets
        if not df.empty and len(df.columns) > 1:
            sheets[sheet_name] = df
    if not sheets:
        raise ValueError(f"No valid sheets found in the {ext.lstrip('.').upper()} file.")
    return sheets


def suggest_column_mapping(df: pd.DataFrame) -> Dict[str, Optional[str]]:
    """
    Suggest a mapping from expected field names to actual column names.
    Returns: { expected_field: actual_column_name_or_None }
    """
    cols_lower = {str(c).lower().strip(): c for c in df.columns}
    mapping: Dict[str, Optional[str]] = {}
    claimed = set()

    for field, aliases in COLUMN_ALIASES.items():
        matched = None
        for alias in aliases:
            col = cols_lower.get(alias)
            if col is not None and col not in claimed:
                matched = col
                break
        if matched is not None:
            claimed.add(matched)
        mapping[field] = matched

    return mapping


def apply_column_mapping(df: pd.DataFrame, mapping: Dict[str, Optional[str]]) -> pd.DataFrame:
    """Rename mapped columns to their canonical field names."""
    renames = {actual: field for field, actual in mapping.items() if actual and actual in df.columns}
    return df.rename(columns=renames)


def validate_marks_sheet(df: pd.DataFrame) -> List[Dict]:
    """
    Validate a marks sheet and return a list of issues found.
    """
    issues = []
    mapping = suggest_column_mapping(df)

    for field in REQUIRED_FIELDS:
        if mapping.get(field) is None:
            issues.append({
                "type": "missing_column",
                "severity": "critical",
                "message": f"Required column '{field}' not found. "
                           f"Expected one of: {COLUMN_ALIASES.get(field, [])}",
            })

    if not any(mapping.get(f) for f in SCORE_FIELDS):
        issues.append({
            "type": "missing_scores",
            "severity": "critical",
            "message": f"No assessment columns found. Expected any of: {SCORE_FIELDS}",
        })

    if len(df) == 0:
        issues.append({
            "type": "empty_data",
            "severity": "critical",
            "message": "The uploaded file contains no data rows.",
        })

    for field in SCORE_FIELDS:
        col = mapping.get(field)
        if not col:
            continue
        scores = pd.to_numeric(df[col], errors="coerce")
        invalid_count = int(scores.isna().sum() - df[col].isna().sum())
        if invalid_count > 0:
            issues.append({
                "type": "invalid_scores",
                "severity": "warning",
                "message": f"{invalid_count} '{field}' values could not be parsed as numbers.",
            })
        valid = scores.dropna()
        if ((valid < 0) | (valid > 100)).any():
            issues.append({
                "type": "out_of_range_scores",
                "severity": "warning",
                "message": f"Some '{field}' values fall outside 0-100.",
            })

    id_col = mapping.get("student_id")
    subject_col = mapping.get("subject")
    if id_col and subject_col:
        group_cols = [id_col, subject_col]
        for extra in ("term", "year"):
            if mapping.get(extra):
                group_cols.append(mapping[extra])
        dupe_count = int(df.duplicated(subset=group_cols, keep=False).sum())
        if dupe_count > 0:
            issues.append({
                "type": "duplicates",
                "severity": "warning",
                "message": f"{dupe_count} duplicate entries detected (same student + subject).",
            })

    return issues
