"""Persistence seam for tools, issuances and users.

Services talk to a ``Store`` and never to a session directly. Every put is a
whole-record replace; there is no field-level patching and no cross-call
locking, so the read-modify-write discipline lives in the callers.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from sqlmodel import Session, select

from toolcrib.models import Tool, ToolIssuance, User


@dataclass(frozen=True)
class IssuanceFilter:
    status: Optional[str] = None
    is_overdue: Optional[bool] = None
    attendant_name: Optional[str] = None

    def matches(self, issuance: ToolIssuance) -> bool:
        if self.status is not None and issuance.status != self.status:
            return False
        if self.is_overdue is not None and issuance.is_overdue != self.is_overdue:
            return False
        if self.attendant_name is not None and issuance.attendant_name != self.attendant_name:
            return False
        return True


class Store(Protocol):
    def get_tool(self, tool_code: str) -> Optional[Tool]: ...

    def put_tool(self, tool: Tool) -> Tool: ...

    def list_tools(self) -> list[Tool]: ...

    def get_issuance(self, issuance_id: int) -> Optional[ToolIssuance]: ...

    def put_issuance(self, issuance: ToolIssuance) -> ToolIssuance:
        """Write the whole record; assigns a new id when ``issuance.id`` is None."""
        ...

    def put_issuances(self, issuances: Iterable[ToolIssuance]) -> None:
        """Write several records as one batch."""
        ...

    def list_issuances(self, filter: Optional[IssuanceFilter] = None) -> list[ToolIssuance]: ...

    def get_user(self, username: str) -> Optional[User]: ...

    def list_users(self, role: Optional[str] = None) -> list[User]: ...


class SqlModelStore:
    def __init__(self, session: Session):
        self.session = session

    def _commit(self, obj) -> None:
        # 失败先回滚，session 还能接着用（调用方可能要做补偿写入）
        try:
            self.session.add(obj)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def get_tool(self, tool_code: str) -> Optional[Tool]:
        return self.session.exec(select(Tool).where(Tool.tool_code == tool_code)).first()

    def put_tool(self, tool: Tool) -> Tool:
        self._commit(tool)
        self.session.refresh(tool)
        return tool

    def list_tools(self) -> list[Tool]:
        return list(self.session.exec(select(Tool).order_by(Tool.id.asc())).all())

    def get_issuance(self, issuance_id: int) -> Optional[ToolIssuance]:
        return self.session.get(ToolIssuance, issuance_id)

    def put_issuance(self, issuance: ToolIssuance) -> ToolIssuance:
        self._commit(issuance)
        self.session.refresh(issuance)
        return issuance

    def put_issuances(self, issuances: Iterable[ToolIssuance]) -> None:
        # 一次 commit：中途失败整批回滚，不会写坏别的记录
        items = list(issuances)
        if not items:
            return
        try:
            self.session.add_all(items)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def list_issuances(self, filter: Optional[IssuanceFilter] = None) -> list[ToolIssuance]:
        stmt = select(ToolIssuance)
        if filter is not None:
            if filter.status is not None:
                stmt = stmt.where(ToolIssuance.status == filter.status)
            if filter.is_overdue is not None:
                stmt = stmt.where(ToolIssuance.is_overdue == filter.is_overdue)
            if filter.attendant_name is not None:
                stmt = stmt.where(ToolIssuance.attendant_name == filter.attendant_name)
        return list(self.session.exec(stmt.order_by(ToolIssuance.id.asc())).all())

    def get_user(self, username: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.username == username)).first()

    def list_users(self, role: Optional[str] = None) -> list[User]:
        stmt = select(User)
        if role is not None:
            stmt = stmt.where(User.role == role)
        return list(self.session.exec(stmt.order_by(User.id.asc())).all())


def _clone(obj):
    return type(obj).model_validate(obj.model_dump())


class InMemoryStore:
    """Dict-backed store. Records are copied in and out, like a real round trip."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._issuances: dict[int, ToolIssuance] = {}
        self._users: dict[str, User] = {}
        self._next_tool_id = 1
        self._next_issuance_id = 1

    def get_tool(self, tool_code: str) -> Optional[Tool]:
        tool = self._tools.get(tool_code)
        return _clone(tool) if tool is not None else None

    def put_tool(self, tool: Tool) -> Tool:
        if tool.id is None:
            tool.id = self._next_tool_id
            self._next_tool_id += 1
        # tool_code 可能被改过，按 id 去掉旧 key
        self._tools = {code: t for code, t in self._tools.items() if t.id != tool.id}
        self._tools[tool.tool_code] = _clone(tool)
        return tool

    def list_tools(self) -> list[Tool]:
        return [_clone(t) for t in sorted(self._tools.values(), key=lambda t: t.id)]

    def get_issuance(self, issuance_id: int) -> Optional[ToolIssuance]:
        issuance = self._issuances.get(issuance_id)
        return _clone(issuance) if issuance is not None else None

    def put_issuance(self, issuance: ToolIssuance) -> ToolIssuance:
        if issuance.id is None:
            issuance.id = self._next_issuance_id
            self._next_issuance_id += 1
        self._issuances[issuance.id] = _clone(issuance)
        return issuance

    def put_issuances(self, issuances: Iterable[ToolIssuance]) -> None:
        staged = {}
        for issuance in issuances:
            if issuance.id is None:
                raise ValueError("batch writes only update existing issuances")
            staged[issuance.id] = _clone(issuance)
        self._issuances.update(staged)

    def list_issuances(self, filter: Optional[IssuanceFilter] = None) -> list[ToolIssuance]:
        items = sorted(self._issuances.values(), key=lambda i: i.id)
        return [_clone(i) for i in items if filter is None or filter.matches(i)]

    def get_user(self, username: str) -> Optional[User]:
        user = self._users.get(username)
        return _clone(user) if user is not None else None

    def list_users(self, role: Optional[str] = None) -> list[User]:
        users = sorted(self._users.values(), key=lambda u: u.id)
        return [_clone(u) for u in users if role is None or u.role == role]

    def add_user(self, user: User) -> User:
        if user.id is None:
            user.id = len(self._users) + 1
        self._users[user.username] = _clone(user)
        return user
