import csv
import io
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fastapi import Response
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ..models.category import Category
from ..models.expense import Expense


CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"

TRANSACTION_HEADERS = ["Date", "Description", "Amount", "Type", "Category", "Payment Method", "Notes", "Tags"]


def export_filename(kind: str, ext: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{kind}_{now.strftime('%Y%m%d_%H%M%S')}.{ext}"


def file_response(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def transaction_rows(rows: Iterable[Expense], categories: Dict[int, Category]) -> List[List[Any]]:
    out = []
    for e in rows:
        cat = categories.get(e.category_id)
        out.append(
            [
                e.expense_date.isoformat(),
                e.description,
                round(e.amount, 2),
                getattr(e.type, "value", e.type),
                cat.name if cat else "Uncategorized",
                getattr(e.payment_method, "value", e.payment_method),
                e.notes or "",
                ", ".join(e.tags or []),
            ]
        )
    return out


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return buf.getvalue().encode("utf-8")


def _write_sheet(ws, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = PatternFill(start_color="366EF1", end_color="366EF1", fill_type="solid")
    for row in rows:
        ws.append(list(row))

    # Autosize columns
    for col in ws.columns:
        width = max((len(str(c.value)) for c in col if c.value is not None), default=0)
        ws.column_dimensions[get_column_letter(col[0].column)].width = width + 2


def to_xlsx(sheets: Dict[str, tuple]) -> bytes:
    """``sheets`` maps a sheet title to ``(headers, rows)``."""
    wb = Workbook()
    wb.remove(wb.active)
    for title, (headers, rows) in sheets.items():
        _write_sheet(wb.create_sheet(title=title), headers, rows)

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def to_pdf(
    title: str,
    summary_lines: Sequence[str],
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
) -> bytes:
    """Single-table PDF report. The last column is right-aligned."""
    buffer = io.BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    # x offsets of the left-aligned columns, the last column is right-aligned
    col_x = [40, 110, 300, 380][: max(len(headers) - 1, 0)]

    p.setFont("Helvetica-Bold", 14)
    p.drawString(40, height - 50, title)
    p.setFont("Helvetica", 9)
    p.drawString(40, height - 65, f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    y = height - 90
    for line in summary_lines:
        p.drawString(40, y, line)
        y -= 12
    y -= 10

    def _header(y):
        p.setFont("Helvetica-Bold", 9)
        for x, h in zip(col_x, headers):
            p.drawString(x, y, str(h))
        p.drawRightString(width - 40, y, str(headers[-1]))
        p.line(35, y - 3, width - 35, y - 3)
        p.setFont("Helvetica", 9)
        return y - 14

    y = _header(y)
    for row in rows:
        if y < 60:
            p.showPage()
            y = _header(height - 40)
        for x, value in zip(col_x, row):
            p.drawString(x, y, str(value)[:40])
        p.drawRightString(width - 40, y, str(row[-1]))
        y -= 12

    p.showPage()
    p.save()
    return buffer.getvalue()
