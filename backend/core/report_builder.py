"""
report_builder.py — Class division broadsheet export (Excel).

One "Divisions" sheet (a row per student, coloured by division) and a
"Summary" sheet with the class statistics.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from core.division import Division, DivisionOutcome

BRAND_DARK = "1a1a2e"

DIVISION_FILLS = {
    Division.DIVISION_1.name: "d5f5e3",
    Division.DIVISION_2.name: "d6eaf8",
    Division.DIVISION_3.name: "fef9e7",
    Division.DIVISION_4.name: "fdebd0",
    Division.UNGRADED.name: "e8daef",
    Division.FAIL.name: "fadbd8",
    Division.INCOMPLETE.name: "eaecee",
}

BROADSHEET_COLUMNS = ["Position", "Student ID", "Name", "Aggregate", "Division", "Best Four Subjects"]


def broadsheet_rows(
    results: Dict[str, DivisionOutcome],
    positions: Dict[str, int],
    names: Optional[Dict[str, str]] = None,
) -> List[Dict[str, Any]]:
    """Flatten roster results into broadsheet rows, best position first."""
    names = names or {}
    rows = []
    for sid, outcome in results.items():
        subjects = ", ".join(f"{s.subject_name} ({s.grade})" for s in getattr(outcome, "subjects", []))
        rows.append({
            "position": positions.get(sid),
            "student_id": sid,
            "name": names.get(sid, ""),
            "aggregate": outcome.aggregate,
            "division": outcome.division.name,
            "label": outcome.label,
            "subjects": subjects,
        })
    # Incomplete students sort last.
    rows.sort(key=lambda r: (r["position"] is None, r["position"] or 0))
    return rows


def generate_division_broadsheet(
    output_path: str,
    school_name: str,
    class_name: str,
    rows: List[Dict[str, Any]],
    statistics: Dict[str, Any],
    exam_type: str = "",
):
    """Write the class broadsheet workbook to output_path."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color=BRAND_DARK, end_color=BRAND_DARK, fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_header(ws, row_idx: int):
        for cell in ws[row_idx]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

    def _auto_width(ws):
        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 60)

    wb = Workbook()

    # ── Sheet 1: Divisions ──────────────────────────────────────────
    ws = wb.active
    ws.title = "Divisions"
    ws.sheet_properties.tabColor = BRAND_DARK
    ws.append([f"{school_name} - {class_name}"])
    ws["A1"].font = Font(bold=True, size=13)
    ws.append([f"Exam: {exam_type.upper() or 'ALL'}    Generated: {datetime.now():%Y-%m-%d %H:%M}"])
    ws.append(BROADSHEET_COLUMNS)
    _style_header(ws, 3)

    for row in rows:
        ws.append([
            row["position"] if row["position"] is not None else "-",
            row["student_id"],
            row["name"],
            row["aggregate"] if row["aggregate"] is not None else "-",
            row["label"],
            row["subjects"],
        ])
        fill_color = DIVISION_FILLS.get(row["division"])
        for cell in ws[ws.max_row]:
            cell.border = thin_border
            cell.alignment = Alignment(horizontal="center")
            if fill_color:
                cell.fill = PatternFill(start_color=fill_color, end_color=fill_color, fill_type="solid")

    ws.freeze_panes = "A4"
    _auto_width(ws)

    # ── Sheet 2: Summary ────────────────────────────────────────────
    ws_sum = wb.create_sheet(title="Summary")
    ws_sum.sheet_properties.tabColor = "0f3460"
    ws_sum.append(["Measure", "Value"])
    _style_header(ws_sum, 1)

    summary = [
        ("Students", statistics.get("total", 0)),
        ("Graded", statistics.get("graded", 0)),
        ("Incomplete", statistics.get("incomplete", 0)),
    ]
    for name, count in statistics.get("perDivisionCounts", {}).items():
        summary.append((Division[name].label, count))
    summary.append(("Pass rate (%)", statistics.get("passRate", 0.0)))

    for measure, value in summary:
        ws_sum.append([measure, value])
        for cell in ws_sum[ws_sum.max_row]:
            cell.border = thin_border
    _auto_width(ws_sum)

    wb.save(output_path)
