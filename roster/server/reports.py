from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models import CourseStats, DashboardStats, MonthlyEnrollment, Student, StudentStatus
from ..utils import utcnow

EXPORT_COLUMNS = [
    "_id",
    "name",
    "email",
    "phone",
    "course",
    "status",
    "enrollmentDate",
    "academicYear",
    "semester",
    "feesPaid",
    "attendance",
]

EXPORT_FORMATS = {
    "csv": ("text/csv", "csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "pdf": ("application/pdf", "pdf"),
}


def to_frame(students: Iterable[Student], columns: Sequence[str] = EXPORT_COLUMNS) -> pd.DataFrame:
    """Flatten students into a DataFrame with exactly ``columns`` (missing values as NaN)."""
    rows = [s.wire() for s in students]
    return pd.DataFrame(rows, columns=list(columns))


def dashboard_stats(students: Iterable[Student]) -> DashboardStats:
    df = to_frame(students)
    total = len(df)
    if total == 0:
        return DashboardStats()

    status = df["status"]
    attendance = pd.to_numeric(df["attendance"], errors="coerce").mean()

    course_counts = df["course"].value_counts()
    courses = [
        CourseStats(course=str(course), count=int(count), percentage=round(count / total * 100, 2))
        for course, count in course_counts.items()
    ]

    enrolled = pd.to_datetime(df["enrollmentDate"], errors="coerce").dropna()
    monthly = enrolled.dt.to_period("M").astype(str).value_counts().sort_index()
    monthly_enrollments = [MonthlyEnrollment(month=m, count=int(c)) for m, c in monthly.items()]

    return DashboardStats(
        total_students=total,
        active_students=int((status == StudentStatus.ACTIVE.value).sum()),
        completed_students=int((status == StudentStatus.COMPLETED.value).sum()),
        dropped_students=int((status == StudentStatus.DROPPED.value).sum()),
        average_attendance=0.0 if pd.isna(attendance) else round(float(attendance), 2),
        courses=courses,
        monthly_enrollments=monthly_enrollments,
    )


def _pdf(df: pd.DataFrame) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), title="Students")
    styles = getSampleStyleSheet()
    header = [str(c) for c in df.columns]
    body = df.fillna("").astype(str).values.tolist()
    table = Table([header, *body], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2c3e50")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f4f6f7")]),
    ]))
    story = [
        Paragraph("Students", styles["Title"]),
        Paragraph(f"Generated {utcnow():%Y-%m-%d %H:%M} UTC, {len(df)} records", styles["Normal"]),
        Spacer(1, 12),
        table,
    ]
    doc.build(story)
    return buf.getvalue()


def render_export(
    students: Iterable[Student],
    fmt: str,
    fields: Optional[List[str]] = None,
) -> Tuple[bytes, str, str]:
    """Render students as csv/excel/pdf. Returns (payload, mimetype, filename)."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    columns = [c for c in (fields or EXPORT_COLUMNS) if c in EXPORT_COLUMNS] or EXPORT_COLUMNS
    df = to_frame(students, columns)
    mimetype, ext = EXPORT_FORMATS[fmt]

    if fmt == "csv":
        payload = df.to_csv(index=False).encode("utf-8")
    elif fmt == "excel":
        buf = BytesIO()
        df.to_excel(buf, index=False, sheet_name="Students", engine="openpyxl")
        payload = buf.getvalue()
    else:
        payload = _pdf(df)

    return payload, mimetype, f"students-{utcnow():%Y%m%d}.{ext}"
