"""
Excel Handler Module

Provides functions for:
- Loading the question catalog snapshot from an Excel file
- Loading the attendance snapshot (roster + attendance counts)
- Persisting an allocation result as a formatted workbook
- Creating sample input files for trying the CLI
"""

from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from allocator import draw_counts
from assignment_models import (
    AssignmentResult,
    AttendanceRecord,
    Question,
    normalize_question_type,
)
from pool_filter import QuestionCatalog


CATALOG_COLUMNS = ['id', 'topic', 'subtopic', 'type', 'text']
ATTENDANCE_COLUMN_ALIASES = {
    'attended_count': 'attended',
    'present': 'attended',
    'total_count': 'total',
    'total_classes': 'total',
    'roll': 'student_id',
}


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lowercase, strip whitespace and use underscores in column names."""
    df.columns = [str(c).strip().lower().replace(' ', '_') for c in df.columns]
    return df


def _cell_str(value) -> Optional[str]:
    """Cell value as text; None for blanks. Whole floats lose the '.0'."""
    if value is None or pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


def load_question_catalog(filepath: str) -> QuestionCatalog:
    """
    Load the question catalog from an Excel file.

    Expected columns:
        - id: Unique question id
        - topic, subtopic: Classification used by filters and weights
        - type: broad / mcq / msq / blanks / number
        - text: Question text
        - image (optional): Image reference or base64 payload

    Args:
        filepath: Path to Excel file

    Returns:
        QuestionCatalog with all questions loaded
    """
    df = _normalize_columns(pd.read_excel(filepath))

    missing = [c for c in CATALOG_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    questions = []
    seen = set()
    for idx, row in df.iterrows():
        question_id = _cell_str(row['id'])
        if question_id is None:
            raise ValueError(f"Row {idx + 2}: question id is blank")
        if question_id in seen:
            raise ValueError(f"Duplicate question id: {question_id}")
        seen.add(question_id)

        questions.append(Question(
            question_id=question_id,
            topic=_cell_str(row['topic']) or '',
            subtopic=_cell_str(row['subtopic']) or '',
            question_type=normalize_question_type(row['type']),
            text=_cell_str(row['text']) or '',
            image=_cell_str(row['image']) if 'image' in df.columns else None,
        ))

    return QuestionCatalog(questions)


def load_attendance_snapshot(filepath: str) -> List[AttendanceRecord]:
    """
    Load the attendance snapshot from an Excel file.

    Expected columns:
        - student_id (or roll)
        - attended (or attended_count / present): classes attended,
          manual adjustments already included
        - total (or total_count / total_classes): classes held
        - department, year, course_code (optional): used for cohort targeting
    """
    df = _normalize_columns(pd.read_excel(filepath))
    df = df.rename(columns={k: v for k, v in ATTENDANCE_COLUMN_ALIASES.items() if v not in df.columns})

    required_cols = ['student_id', 'attended', 'total']
    missing = [c for c in required_cols if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    records = []
    for idx, row in df.iterrows():
        student_id = _cell_str(row['student_id'])
        if student_id is None:
            raise ValueError(f"Row {idx + 2}: student_id is blank")
        attended = 0 if pd.isna(row['attended']) else int(row['attended'])
        total = 0 if pd.isna(row['total']) else int(row['total'])

        records.append(AttendanceRecord(
            student_id=student_id,
            attended_count=attended,
            total_count=total,
            department=_cell_str(row['department']) if 'department' in df.columns else None,
            year=_cell_str(row['year']) if 'year' in df.columns else None,
            course_code=_cell_str(row['course_code']) if 'course_code' in df.columns else None,
        ))

    return records


class ExcelResultStore:
    """
    Persists an AssignmentResult as a formatted workbook.

    Sheets:
        - Allocation: one row per student with their question ids
        - Question_Usage: how many students received each eligible question
        - Skipped: students left out under the skip policy
    """

    def __init__(self, output_path: str, catalog: Optional[QuestionCatalog] = None):
        self.output_path = output_path
        self.catalog = catalog

    def save(self, result: AssignmentResult) -> str:
        Path(self.output_path).parent.mkdir(parents=True, exist_ok=True)

        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        orange_fill = PatternFill(start_color="ED7D31", end_color="ED7D31", fill_type="solid")
        header_font_white = Font(bold=True, size=11, color="FFFFFF")
        thin_border = Border(
            left=Side(style='thin'), right=Side(style='thin'),
            top=Side(style='thin'), bottom=Side(style='thin')
        )
        center_align = Alignment(horizontal='center', vertical='center')

        def write_header(ws, row: int, headers: List[str], fill: PatternFill):
            for col, h in enumerate(headers, 1):
                cell = ws.cell(row=row, column=col, value=h)
                cell.font = header_font_white
                cell.fill = fill
                cell.border = thin_border
                cell.alignment = center_align

        wb = Workbook()
        wb.remove(wb.active)

        # ── Allocation ──
        ws = wb.create_sheet(title="Allocation")
        ws['A1'] = f"Allocation - {result.assignment_id}"
        ws['A1'].font = Font(bold=True, size=14)

        width = max((len(q) for q in result.allocations.values()), default=0)
        write_header(ws, 3, ['Student', 'Count'] + [f"Q{i + 1}" for i in range(width)], header_fill)
        for s_idx, (student_id, quiz) in enumerate(result.allocations.items()):
            row = s_idx + 4
            ws.cell(row=row, column=1, value=student_id).border = thin_border
            ws.cell(row=row, column=2, value=len(quiz)).border = thin_border
            for q_idx, qid in enumerate(quiz):
                cell = ws.cell(row=row, column=q_idx + 3, value=qid)
                cell.border = thin_border
                cell.alignment = center_align
        ws.column_dimensions['A'].width = 16

        # ── Question usage ──
        ws = wb.create_sheet(title="Question_Usage")
        write_header(ws, 1, ['Question ID', 'Topic', 'Subtopic', 'Usage Count'], orange_fill)
        usage = draw_counts(result.allocations)
        for q_idx, qid in enumerate(result.eligible):
            q = self.catalog.get_by_id(qid) if self.catalog is not None else None
            row = q_idx + 2
            ws.cell(row=row, column=1, value=qid).border = thin_border
            ws.cell(row=row, column=2, value=q.topic if q else None).border = thin_border
            ws.cell(row=row, column=3, value=q.subtopic if q else None).border = thin_border
            ws.cell(row=row, column=4, value=usage.get(qid, 0)).border = thin_border
        ws.column_dimensions['A'].width = 14
        ws.column_dimensions['B'].width = 20
        ws.column_dimensions['C'].width = 20

        # ── Skipped ──
        ws = wb.create_sheet(title="Skipped")
        write_header(ws, 1, ['Student', 'Attendance %', 'Reason'], orange_fill)
        for s_idx, skipped in enumerate(result.skipped):
            row = s_idx + 2
            ws.cell(row=row, column=1, value=skipped.student_id).border = thin_border
            ws.cell(row=row, column=2, value=round(skipped.percentage, 2)).border = thin_border
            ws.cell(row=row, column=3, value=skipped.reason).border = thin_border
        ws.column_dimensions['C'].width = 60

        wb.save(self.output_path)
        return self.output_path


def read_allocation_sheet(filepath: str) -> Dict[str, List[str]]:
    """Read back the Allocation sheet written by ExcelResultStore."""
    df = pd.read_excel(filepath, sheet_name="Allocation", header=2)
    q_cols = [c for c in df.columns if str(c).startswith('Q')]
    allocations: Dict[str, List[str]] = {}
    for _, row in df.iterrows():
        student_id = _cell_str(row['Student'])
        allocations[student_id] = [_cell_str(row[c]) for c in q_cols if _cell_str(row[c]) is not None]
    return allocations


def create_sample_catalog_excel(
    filepath: str,
    topics: Optional[Dict[str, int]] = None,
) -> str:
    """
    Create a sample question catalog Excel file for testing.

    Args:
        filepath: Where to write the file
        topics: Topic -> number of questions (default: three topics)
    """
    topics = topics or {'Matrices': 10, 'Calculus': 12, 'Probability': 8}
    types = ['mcq', 'broad', 'blanks', 'number', 'msq']

    rows = []
    q_no = 1
    for topic, count in topics.items():
        for i in range(1, count + 1):
            rows.append({
                'id': f"Q{q_no}",
                'topic': topic,
                'subtopic': f"{topic} {'Basics' if i % 2 else 'Advanced'}",
                'type': types[q_no % len(types)],
                'text': f"{topic} question {i}: solve the following.",
                'image': None,
            })
            q_no += 1

    df = pd.DataFrame(rows)
    df.to_excel(filepath, index=False)
    return filepath


def create_sample_attendance_excel(
    filepath: str,
    num_students: int = 30,
    total_classes: int = 40,
    course_code: str = "MA101",
) -> str:
    """
    Create a sample attendance snapshot with attendance spread from 0% to 100%.
    """
    rows = []
    for i in range(num_students):
        attended = round(total_classes * i / max(num_students - 1, 1))
        rows.append({
            'student_id': f"S{i + 1:03d}",
            'attended': attended,
            'total': total_classes,
            'department': ['CSE', 'ECE', 'ME'][i % 3],
            'year': str(1 + i % 2),
            'course_code': course_code,
        })

    df = pd.DataFrame(rows)
    df.to_excel(filepath, index=False)
    return filepath
