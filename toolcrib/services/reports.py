import io
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.table import Table, TableStyleInfo

from toolcrib.models import ToolIssuance, User
from toolcrib.schemas import IssuanceStatus, ReturnCondition
from toolcrib.services.shift_window import SHIFT_LABELS

COMPANY_NAME = "RABOTEC GHANA LIMITED"
REPORT_SUBTITLE = "Rabotec Maintenance Tools Audit"

ATTENTION_CONDITIONS = {
    ReturnCondition.damaged.value,
    ReturnCondition.needs_repair.value,
    ReturnCondition.lost.value,
}

HEADER = [
    "Date", "Tool Code/ID", "Tool Description", "Quantity", "Issued To Name/ID",
    "Department", "Time Out", "Time In", "Condition Returned", "Attendant", "Status", "Overdue",
]
COL_WIDTHS = {
    "A": 12, "B": 15, "C": 30, "D": 8, "E": 24, "F": 14,
    "G": 10, "H": 10, "I": 18, "J": 20, "K": 16, "L": 9,
}


def _newest_first(items: Iterable[ToolIssuance]) -> list[ToolIssuance]:
    return sorted(items, key=lambda i: (i.date, i.created_at, i.id or 0), reverse=True)


def _latest_created_first(items: Iterable[ToolIssuance]) -> list[ToolIssuance]:
    return sorted(items, key=lambda i: (i.created_at, i.id or 0), reverse=True)


def filter_issuances(
    items: Iterable[ToolIssuance],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    shift: Optional[str] = None,
    attendant_name: Optional[str] = None,
) -> list[ToolIssuance]:
    """Date range is inclusive on both ends; most recently created first."""
    out = []
    for i in items:
        if start_date is not None and i.date < start_date:
            continue
        if end_date is not None and i.date > end_date:
            continue
        if shift and i.attendant_shift != shift:
            continue
        if attendant_name is not None and i.attendant_name != attendant_name:
            continue
        out.append(i)
    return _latest_created_first(out)


def ten_day_report(items: Iterable[ToolIssuance], today: date) -> list[ToolIssuance]:
    # 近 10 天：还没还的 + 损坏/待修/丢失的
    since = today - timedelta(days=10)
    return _newest_first(
        i for i in items
        if i.date >= since
        and (i.condition_returned in ATTENTION_CONDITIONS or i.status == IssuanceStatus.issued.value)
    )


def attendant_recent(items: Iterable[ToolIssuance], attendant_name: str, today: date, days: int = 10) -> list[ToolIssuance]:
    since = today - timedelta(days=days)
    return _newest_first(i for i in items if i.attendant_name == attendant_name and i.date >= since)


def monthly_report(items: Iterable[ToolIssuance], today: date) -> list[ToolIssuance]:
    first_day = today.replace(day=1)
    return _newest_first(i for i in items if i.date >= first_day)


def _generated_by(user: Optional[User]) -> str:
    if user is None:
        return "Generated by: system"
    if user.role == "attendant" and user.shift:
        return f"Generated by: {user.username} (Shift {user.shift})"
    return f"Generated by: {user.username} (Admin)"


def build_issuances_xlsx(
    items: list[ToolIssuance],
    title: str = "Tool Issuance Report",
    user: Optional[User] = None,
    generated_at: Optional[datetime] = None,
) -> bytes:
    generated_at = generated_at or datetime.now()

    wb = Workbook()
    ws = wb.active
    ws.title = "Tool Audit Report"

    ws.append([COMPANY_NAME])
    ws.append([REPORT_SUBTITLE])
    ws.append([title])
    ws.append([_generated_by(user)])
    ws.append([f"Generated on: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}"])
    if user is not None and user.role == "attendant" and user.shift_time in SHIFT_LABELS:
        ws.append([f"Shift Time: {SHIFT_LABELS[user.shift_time]}"])
    else:
        ws.append([""])
    ws.append([])
    ws["A1"].font = Font(bold=True, size=14)
    ws["A3"].font = Font(bold=True)

    ws.append(HEADER)
    header_row = ws.max_row
    ws.row_dimensions[header_row].height = 24
    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")
    for col in range(1, len(HEADER) + 1):
        cell = ws.cell(row=header_row, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for i in items:
        issued_to = f"{i.issued_to_name} ({i.issued_to_id})" if i.issued_to_id else i.issued_to_name
        ws.append([
            i.date,
            i.tool_code,
            i.tool_description,
            i.quantity,
            issued_to,
            i.department,
            i.time_out.strftime("%H:%M") if i.time_out else "",
            i.time_in.strftime("%H:%M") if i.time_in else "",
            i.condition_returned or "",
            f"{i.attendant_name} ({i.attendant_shift})",
            i.status,
            "YES" if i.is_overdue else "",
        ])

    last_row = header_row + len(items)
    for r in range(header_row + 1, last_row + 1):
        ws.cell(row=r, column=1).number_format = "yyyy-mm-dd"
        ws.cell(row=r, column=4).number_format = "0"

    ws.freeze_panes = f"A{header_row + 1}"
    for k, w in COL_WIDTHS.items():
        ws.column_dimensions[k].width = w

    # 没数据时 Table 至少要两行，否则 Excel 打开报错
    if items:
        table = Table(displayName="ToolIssuances", ref=f"A{header_row}:L{last_row}")
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9",
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        ws.add_table(table)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def report_filename(generated_at: Optional[datetime] = None) -> str:
    ts = (generated_at or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"Rabotec_Maintenance_Tools_Audit_{ts}.xlsx"
