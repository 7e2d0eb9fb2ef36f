"""
Marks routes — marks sheet upload and class performance statistics.
"""

import json
import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile

from core.grading import resolve_grading_table
from core.marks import assessment_totals, marks_from_dataframe, marks_from_payload
from core.parser import (
    apply_column_mapping,
    parse_upload,
    suggest_column_mapping,
    validate_marks_sheet,
)
from core.stats import compute_performance_stats

logger = logging.getLogger(__name__)

router = APIRouter()

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".ods")


def _df_records(df):
    """
    Convert DataFrame rows to JSON-safe records.
    Ensures NaN/NaT become null so FastAPI serialization won't raise 500.
    """
    return json.loads(df.to_json(orient="records", date_format="iso"))


@router.post("/upload")
async def upload_marks(file: UploadFile = File(...)):
    """
    Upload a marks sheet (CSV, Excel, or ODS).
    Returns per-student marks, the column mapping used, and validation issues.
    The uploaded file is removed once parsed.
    """
    ext = Path(file.filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext}. Use CSV, Excel, or ODS.")

    UPLOAD_DIR.mkdir(exist_ok=True)
    save_path = UPLOAD_DIR / f"{uuid.uuid4()}{ext}"

    try:
        with open(save_path, "wb") as f:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)

        sheets = parse_upload(str(save_path))
        first_sheet = list(sheets.keys())[0]
        df = sheets[first_sheet]

        mapping = suggest_column_mapping(df)
        issues = validate_marks_sheet(df)
        if any(i["severity"] == "critical" for i in issues):
            return {
                "filename": file.filename,
                "sheet": first_sheet,
                "mapping": mapping,
                "issues": issues,
                "students": {},
                "preview": _df_records(df.head(10)),
            }

        by_student = marks_from_dataframe(apply_column_mapping(df, mapping))
    except ValueError as e:
        raise HTTPException(400, f"Failed to process upload '{file.filename}': {e}")
    finally:
        save_path.unlink(missing_ok=True)

    logger.info("Parsed marks for %d students from %s", len(by_student), file.filename)
    return {
        "filename": file.filename,
        "sheet": first_sheet,
        "mapping": mapping,
        "issues": issues,
        "students": {
            sid: {
                "marks": [m.to_dict() for m in marks],
                "totals": assessment_totals(marks),
            }
            for sid, marks in by_student.items()
        },
    }


@router.post("/performance")
async def performance(payload: dict):
    """
    Performance dashboard numbers for a set of students.
    Expects: { "students": [{"studentId": ..., "marks": [...]}, ...], "grades": [...] }
    """
    students = payload.get("students")
    if not students or not isinstance(students, list):
        raise HTTPException(400, "Provide 'students'.")
    if not all(isinstance(s, dict) for s in students):
        raise HTTPException(400, "Every student must be an object.")

    try:
        by_student = {
            str(s.get("studentId", s.get("student_id"))): marks_from_payload(s.get("marks"))
            for s in students
        }
    except ValueError as e:
        raise HTTPException(400, str(e))

    table = resolve_grading_table(payload.get("grades"), preset="report_card")
    return compute_performance_stats(by_student, table)
