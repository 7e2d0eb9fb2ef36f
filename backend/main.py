"""
SchoolMarks — grading and division service
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before routers read their module-level settings.
load_dotenv()

from routes.grading import router as grading_router  # noqa: E402
from routes.divisions import router as divisions_router  # noqa: E402
from routes.marks import router as marks_router  # noqa: E402

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
DEFAULT_GRADING_PRESET = os.getenv("DEFAULT_GRADING_PRESET", "report_card")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="SchoolMarks API",
    description=(
        "Grades, aggregates and divisions for school report cards and "
        "class statistics."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(grading_router, prefix="/api/grading", tags=["Grading"])
app.include_router(divisions_router, prefix="/api/divisions", tags=["Divisions"])
app.include_router(marks_router, prefix="/api/marks", tags=["Marks"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": SCHOOL_NAME,
        "default_grading_preset": DEFAULT_GRADING_PRESET,
    }
