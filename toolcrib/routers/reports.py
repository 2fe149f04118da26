from datetime import date, datetime
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from toolcrib.deps import get_store, require_admin, require_user
from toolcrib.errors import abort
from toolcrib.models import User
from toolcrib.schemas import IssuanceRead
from toolcrib.services import reports
from toolcrib.store import IssuanceFilter, SqlModelStore

router = APIRouter(prefix="/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx_response(content: bytes, generated_at: datetime) -> Response:
    filename = reports.report_filename(generated_at)
    headers = {
        "Content-Disposition": f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"
    }
    return Response(content=content, media_type=XLSX_MEDIA_TYPE, headers=headers)


@router.get("/issuances")
def export_issuances(
    format: str = Query("json", description="json / excel"),
    start_date: Optional[date] = Query(None, description="含当天，例：2024-01-01"),
    end_date: Optional[date] = Query(None, description="含当天，例：2024-01-31"),
    shift: Optional[str] = Query(None, min_length=1, max_length=1),
    store: SqlModelStore = Depends(get_store),
    user: User = Depends(require_user),
):
    if format not in ("json", "excel"):
        abort(400, "BAD_REQUEST", f"Unsupported format: {format}")
    if start_date and end_date and start_date > end_date:
        abort(400, "BAD_REQUEST", "start_date must not be after end_date")

    attendant = IssuanceFilter(attendant_name=user.username) if user.role == "attendant" else None
    items = reports.filter_issuances(
        store.list_issuances(attendant),
        start_date=start_date,
        end_date=end_date,
        shift=shift,
    )

    if format == "json":
        return [IssuanceRead.model_validate(i.model_dump()) for i in items]

    now = datetime.now()
    content = reports.build_issuances_xlsx(items, "Tool Issuance Report", user=user, generated_at=now)
    return _xlsx_response(content, now)


@router.get("/10-day")
def ten_day_report(
    store: SqlModelStore = Depends(get_store),
    admin: User = Depends(require_admin),
):
    now = datetime.now()
    items = reports.ten_day_report(store.list_issuances(), now.date())
    content = reports.build_issuances_xlsx(items, "10-Day Shift Report", user=admin, generated_at=now)
    return _xlsx_response(content, now)


@router.get("/monthly")
def monthly_report(
    store: SqlModelStore = Depends(get_store),
    admin: User = Depends(require_admin),
):
    now = datetime.now()
    items = reports.monthly_report(store.list_issuances(), now.date())
    content = reports.build_issuances_xlsx(items, "Monthly Audit Report", user=admin, generated_at=now)
    return _xlsx_response(content, now)
