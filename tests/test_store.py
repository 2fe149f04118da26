from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from toolcrib.models import Tool, User
from toolcrib.services.issuance import IssuanceLifecycle
from toolcrib.services.overdue import OverdueScanner
from toolcrib.store import IssuanceFilter, SqlModelStore


@pytest.fixture
def session():
    # 每个用例一个独立库，不和 API 测试的 engine 混
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        s.add(Tool(tool_code="T1", description="Torque wrench", quantity=5, available_quantity=5))
        s.add(User(username="ama", password_hash="x", role="attendant", shift="B",
                   shift_time="morning", created_at=datetime(2024, 1, 1, 8, 0)))
        s.commit()
        yield s
    engine.dispose()


@pytest.fixture
def sql_store(session):
    return SqlModelStore(session)


@pytest.fixture
def lifecycle(sql_store, clock):
    return IssuanceLifecycle(sql_store, clock=clock)


def test_naive_datetimes_round_trip(lifecycle, sql_store, session, issue_request):
    i = lifecycle.issue(issue_request, "ama")
    OverdueScanner(sql_store).sweep(datetime(2024, 1, 10, 19, 0))

    session.expire_all()
    stored = sql_store.get_issuance(i.id)
    assert stored.shift_start_time == datetime(2024, 1, 10, 6, 30)
    assert stored.shift_end_time == datetime(2024, 1, 10, 18, 30)
    assert stored.overdue_since == datetime(2024, 1, 10, 19, 0)
    assert stored.created_at == datetime(2024, 1, 10, 7, 0)
    assert stored.shift_end_time.tzinfo is None
    assert sql_store.get_tool("T1").available_quantity == 3


def test_list_issuances_filters(lifecycle, sql_store, issue_request):
    a = lifecycle.issue(issue_request, "ama")
    b = lifecycle.issue({**issue_request, "quantity": 1}, "kofi")
    lifecycle.return_tool(b.id, {"condition_returned": "Good"})

    assert [i.id for i in sql_store.list_issuances(IssuanceFilter(status="issued"))] == [a.id]
    assert [i.id for i in sql_store.list_issuances(IssuanceFilter(attendant_name="kofi"))] == [b.id]
    assert [u.username for u in sql_store.list_users()] == ["ama"]


def _fail_nth_commit(session, monkeypatch, n):
    real_commit = session.commit
    calls = []

    def commit():
        calls.append(1)
        if len(calls) == n:
            raise OSError("database is locked")
        real_commit()

    monkeypatch.setattr(session, "commit", commit)


def test_failed_issue_commit_rolls_stock_back(lifecycle, sql_store, session, issue_request, monkeypatch):
    # 第 1 次 commit 是扣库存，第 2 次是写发放记录
    _fail_nth_commit(session, monkeypatch, 2)
    with pytest.raises(OSError):
        lifecycle.issue(issue_request, "ama")

    session.expire_all()
    assert sql_store.get_tool("T1").available_quantity == 5
    assert sql_store.list_issuances() == []


def test_failed_return_commit_keeps_issuance_open(lifecycle, sql_store, session, issue_request, monkeypatch):
    i = lifecycle.issue(issue_request, "ama")
    _fail_nth_commit(session, monkeypatch, 2)
    with pytest.raises(OSError):
        lifecycle.return_tool(i.id, {"condition_returned": "Good"})

    session.expire_all()
    assert sql_store.get_issuance(i.id).status == "issued"
    assert sql_store.get_tool("T1").available_quantity == 3

    monkeypatch.undo()
    lifecycle.return_tool(i.id, {"condition_returned": "Good"})
    assert sql_store.get_tool("T1").available_quantity == 5
