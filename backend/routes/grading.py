"""
Grading routes — grading table presets, resolution, validation and lookups.
"""

import os

from fastapi import APIRouter, HTTPException

from core.grading import (
    PRESET_LABELS,
    PRESETS,
    grade_score,
    preset_table,
    resolve_grading_table,
    validate_grading_table,
)

router = APIRouter()

DEFAULT_GRADING_PRESET = os.getenv("DEFAULT_GRADING_PRESET", "report_card")


def _preset_from_payload(payload: dict) -> str:
    preset = payload.get("preset") or DEFAULT_GRADING_PRESET
    if preset not in PRESETS:
        raise HTTPException(400, f"Unknown grading preset '{preset}'. Use one of {sorted(PRESETS)}.")
    return preset


@router.get("/presets")
async def presets():
    """Built-in grading tables with their legends."""
    return {
        "default": DEFAULT_GRADING_PRESET,
        "presets": [
            {"id": name, "label": PRESET_LABELS[name], "grade_scale": preset_table(name).thresholds()}
            for name in PRESETS
        ],
    }


@router.post("/resolve")
async def resolve(payload: dict):
    """
    Normalise stored grade rules into an ordered table.
    Expects: { "grades": [...rules...], "preset": "division" }
    """
    preset = _preset_from_payload(payload)
    table = resolve_grading_table(payload.get("grades"), preset=preset)
    return {**table.to_dict(), "grade_scale": table.thresholds()}


@router.post("/validate")
async def validate(payload: dict):
    """Report overlaps, gaps and coverage problems in stored rules."""
    return validate_grading_table(payload.get("grades") or [])


@router.post("/grade")
async def grade(payload: dict):
    """
    Grade one score.
    Expects: { "score": 72, "grades": [...optional rules...], "preset": "report_card" }
    """
    if payload.get("score") is None:
        raise HTTPException(400, "Provide 'score'.")
    preset = _preset_from_payload(payload)
    table = resolve_grading_table(payload.get("grades"), preset=preset)
    return grade_score(payload["score"], table)
