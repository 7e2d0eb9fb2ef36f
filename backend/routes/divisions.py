"""
Division routes — per-student and class-wide division results.

The data layer sends already-fetched marks; nothing here reads a database
or an implicit "current" academic year.
"""

import os
import re
import tempfile
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.division import compute_division, compute_student_divisions
from core.grading import resolve_grading_table
from core.marks import marks_from_payload
from core.report_builder import broadsheet_rows, generate_division_broadsheet
from core.stats import (
    aggregate_trend,
    class_division_statistics,
    compute_class_divisions,
    rank_by_aggregate,
)

router = APIRouter()

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
REPORTS_DIR = Path(tempfile.gettempdir()) / "schoolmarks_reports"


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    Path(path).unlink(missing_ok=True)


def _context(payload: dict) -> dict:
    """Term / academic year echoed back so callers can match results."""
    return {
        "termId": payload.get("termId"),
        "academicYearId": payload.get("academicYearId"),
    }


def _roster_from_payload(payload: dict):
    """
    Expects "students": [{"studentId": ..., "name": ..., "marks": [...]}, ...].
    Returns ({student_id: marks}, {student_id: name}).
    """
    students = payload.get("students")
    if not students or not isinstance(students, list):
        raise HTTPException(400, "Provide 'students'.")

    roster, names = {}, {}
    for entry in students:
        if not isinstance(entry, dict):
            raise HTTPException(400, "Every student must be an object.")
        sid = entry.get("studentId", entry.get("student_id"))
        if sid is None:
            raise HTTPException(400, "Every student needs a 'studentId'.")
        sid = str(sid)
        try:
            roster[sid] = marks_from_payload(entry.get("marks"))
        except ValueError:
            # Broken rows for one student leave that student Incomplete.
            roster[sid] = None
        names[sid] = entry.get("name", "")
    return roster, names


def _class_results(payload: dict):
    roster, names = _roster_from_payload(payload)
    exam_type = payload.get("examType") or "eot"
    table = resolve_grading_table(payload.get("grades"), preset="division")
    try:
        results = compute_class_divisions(roster, exam_type, table)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return results, names, exam_type


@router.post("/student")
async def student_division(payload: dict):
    """
    Division for one student.
    Expects: { "marks": [...], "examType": "eot" | omitted for BOT/MID/END,
               "grades": [...optional rules...], "termId", "academicYearId" }
    """
    if payload.get("marks") is None:
        raise HTTPException(400, "Provide 'marks'.")
    try:
        marks = marks_from_payload(payload["marks"])
    except ValueError as e:
        raise HTTPException(400, str(e))
    table = resolve_grading_table(payload.get("grades"), preset="division")

    exam_type = payload.get("examType")
    if exam_type:
        try:
            result = compute_division(marks, exam_type, table)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {**_context(payload), "result": result.to_dict()}

    by_exam = compute_student_divisions(marks, table)
    return {
        **_context(payload),
        "divisions": {label: r.to_dict() for label, r in by_exam.items()},
        "trend": aggregate_trend(by_exam),
    }


@router.post("/class")
async def class_divisions(payload: dict):
    """
    Divisions for a class roster with statistics and positions.
    Expects: { "students": [...], "examType": "eot", "grades": [...] }
    """
    results, _, exam_type = _class_results(payload)
    positions = rank_by_aggregate(results)
    return {
        **_context(payload),
        "examType": exam_type,
        "results": {
            sid: {**r.to_dict(), "position": positions.get(sid)}
            for sid, r in results.items()
        },
        "statistics": class_division_statistics(results),
    }


@router.post("/class/broadsheet")
async def class_broadsheet(payload: dict):
    """Excel broadsheet of class divisions."""
    results, names, exam_type = _class_results(payload)
    class_name = payload.get("className") or "Class"

    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    report_id = str(uuid.uuid4())[:8]
    class_token = _safe_token(class_name, fallback="class")
    output_path = REPORTS_DIR / f"divisions_{class_token}_{report_id}.xlsx"

    generate_division_broadsheet(
        output_path=str(output_path),
        school_name=payload.get("schoolName") or SCHOOL_NAME,
        class_name=class_name,
        rows=broadsheet_rows(results, rank_by_aggregate(results), names),
        statistics=class_division_statistics(results),
        exam_type=exam_type,
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Divisions_{class_token}_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
