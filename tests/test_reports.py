import io
from datetime import date, datetime

import pytest
from openpyxl import Workbook, load_workbook

from toolcrib.errors import ValidationError
from toolcrib.models import User
from toolcrib.services import reports
from toolcrib.services.importer import import_tools
from toolcrib.services.issuance import IssuanceLifecycle


@pytest.fixture
def lifecycle(store, clock):
    return IssuanceLifecycle(store, clock=clock)


@pytest.fixture
def history(lifecycle, issue_request):
    # 1/01 早班已还，1/05 晚班损坏，1/10 早班未还
    old = lifecycle.issue({**issue_request, "date": "2024-01-01", "quantity": 1}, "ama")
    lifecycle.return_tool(old.id, {"condition_returned": "Good"})
    broken = lifecycle.issue({**issue_request, "date": "2024-01-05", "quantity": 1}, "kofi")
    lifecycle.return_tool(broken.id, {"condition_returned": "Damaged"})
    open_ = lifecycle.issue({**issue_request, "date": "2024-01-10", "quantity": 1}, "ama")
    return old, broken, open_


def test_filter_by_date_range_inclusive(store, history):
    old, broken, open_ = history
    items = reports.filter_issuances(store.list_issuances(), start_date=date(2024, 1, 1), end_date=date(2024, 1, 5))
    assert [i.id for i in items] == [broken.id, old.id]


def test_filter_by_shift_and_attendant(store, history):
    old, broken, open_ = history
    assert [i.id for i in reports.filter_issuances(store.list_issuances(), shift="C")] == [broken.id]
    assert [i.id for i in reports.filter_issuances(store.list_issuances(), attendant_name="ama")] == [open_.id, old.id]


def test_ten_day_report_keeps_open_and_damaged(store, history):
    old, broken, open_ = history
    items = reports.ten_day_report(store.list_issuances(), date(2024, 1, 12))
    assert [i.id for i in items] == [open_.id, broken.id]


def test_monthly_report(store, history):
    items = reports.monthly_report(store.list_issuances(), date(2024, 1, 20))
    assert len(items) == 3
    assert reports.monthly_report(store.list_issuances(), date(2024, 2, 1)) == []


def test_build_issuances_xlsx(store, history):
    user = User(username="ama", password_hash="x", role="attendant", shift="B", shift_time="morning")
    content = reports.build_issuances_xlsx(
        reports.filter_issuances(store.list_issuances()),
        "Tool Issuance Report",
        user=user,
        generated_at=datetime(2024, 1, 12, 9, 0),
    )
    ws = load_workbook(io.BytesIO(content)).active
    assert ws["A1"].value == reports.COMPANY_NAME
    assert ws["A3"].value == "Tool Issuance Report"
    assert ws["A4"].value == "Generated by: ama (Shift B)"
    assert ws["A6"].value == "Shift Time: Morning (6:30am-18:30pm)"
    assert [c.value for c in ws[8]] == reports.HEADER
    assert ws["B9"].value == "T1"
    assert ws["E9"].value == "Kwame Mensah (E-104)"
    assert ws.max_row == 11


def test_build_empty_xlsx():
    content = reports.build_issuances_xlsx([], "Monthly Audit Report")
    ws = load_workbook(io.BytesIO(content)).active
    assert ws["A4"].value == "Generated by: system"
    assert [c.value for c in ws[8]] == reports.HEADER


def _xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_import_replaces_and_creates_tools(store, clock):
    data = _xlsx([
        ["tool_code", "description", "quantity"],
        ["T1", "Torque wrench 1/2in", 7],
        ["T2", "Multimeter", "3"],
        ["T3", "", 2],
        ["T4", "Crimper", "many"],
    ])
    result = import_tools(store, data, clock=clock)
    assert result.imported == 2
    assert result.errors == [
        "Row 4: tool_code, description and quantity are required",
        "Row 5: tool_code, description and quantity are required",
    ]

    t1 = store.get_tool("T1")
    assert (t1.description, t1.quantity, t1.available_quantity) == ("Torque wrench 1/2in", 7, 7)
    t2 = store.get_tool("T2")
    assert (t2.quantity, t2.available_quantity) == (3, 3)


def test_import_requires_header(store):
    with pytest.raises(ValidationError) as e:
        import_tools(store, _xlsx([["code", "description"], ["T9", "x"]]))
    assert e.value.fields == ["tool_code", "quantity"]


def test_import_rejects_non_excel(store):
    with pytest.raises(ValidationError):
        import_tools(store, b"not a workbook")


def test_export_is_latest_created_first_while_reports_go_by_date(lifecycle, store, clock, issue_request):
    today = lifecycle.issue({**issue_request, "date": "2024-01-09", "quantity": 1}, "ama")
    clock.advance(hours=1)
    # 补录前几天的
    backfilled = lifecycle.issue({**issue_request, "date": "2024-01-05", "quantity": 1}, "ama")

    assert [i.id for i in reports.filter_issuances(store.list_issuances())] == [backfilled.id, today.id]
    assert [i.id for i in reports.monthly_report(store.list_issuances(), date(2024, 1, 10))] == [today.id, backfilled.id]
