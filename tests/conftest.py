import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

# 就算 .env 不在也能跑；后台扫描和自动报表在测试里关掉，手动调
os.environ.setdefault("secret_key", "test_secret")
os.environ["overdue_sweep_enabled"] = "false"
os.environ["auto_reports_enabled"] = "false"
os.environ.pop("admin_password", None)

from toolcrib import db  # noqa: E402
from toolcrib.config import set_settings_for_test  # noqa: E402
from toolcrib.models import Tool, User  # noqa: E402
from toolcrib.security import hash_password  # noqa: E402
from toolcrib.store import InMemoryStore  # noqa: E402


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 10, 7, 0, 0))


@pytest.fixture
def store():
    s = InMemoryStore()
    s.put_tool(Tool(tool_code="T1", description="Torque wrench", quantity=5, available_quantity=5))
    s.add_user(User(username="ama", password_hash="x", role="attendant", shift="B",
                    shift_time="morning", created_at=datetime(2024, 1, 1, 8, 0)))
    s.add_user(User(username="kofi", password_hash="x", role="attendant", shift="C",
                    shift_time="evening", created_at=datetime(2024, 1, 1, 8, 0)))
    return s


@pytest.fixture
def issue_request():
    return {
        "date": "2024-01-10",
        "tool_code": "T1",
        "quantity": 2,
        "issued_to_name": "Kwame Mensah",
        "issued_to_id": "E-104",
        "department": "Maintenance",
        "time_out": "07:15:00",
    }


@pytest.fixture(scope="session")
def engine():
    set_settings_for_test(secret_key="test_secret", overdue_sweep_enabled=False, auto_reports_enabled=False)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        session.add(User(username="boss", password_hash=hash_password("boss123"), role="admin"))
        session.add(User(username="ama", password_hash=hash_password("ama123"), role="attendant",
                         shift="B", shift_time="morning"))
        session.add(User(username="kofi", password_hash=hash_password("kofi123"), role="attendant",
                         shift="C", shift_time="evening"))
        session.commit()
    return engine


@pytest.fixture(scope="session")
def client(engine):
    from toolcrib.main import app

    # 后台任务和依赖都走 db.engine，直接换掉
    original = db.engine
    db.engine = engine

    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[db.get_session] = override_get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    db.engine = original


def login(client, username: str, password: str) -> dict:
    r = client.post("/auth/login", data={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture(scope="session")
def admin_h(client):
    return login(client, "boss", "boss123")


@pytest.fixture(scope="session")
def ama_h(client):
    return login(client, "ama", "ama123")


@pytest.fixture(scope="session")
def kofi_h(client):
    return login(client, "kofi", "kofi123")
