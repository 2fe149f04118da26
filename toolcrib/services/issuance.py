"""Issuance state machine.

``issued`` is the only open state. Returning moves it to ``returned``,
``lost`` or ``damaged``; an admin can close any record as
``cleared_overdue``. Overdue is a flag on top of the status, set by the
sweep and never cleared by a return.
"""
from datetime import datetime, time
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from toolcrib.errors import IssuanceNotFound, IssuanceNotIssued, ValidationError
from toolcrib.logging_config import get_logger
from toolcrib.models import ToolIssuance, User
from toolcrib.schemas import IssuanceCreate, IssuanceReturn, IssuanceStatus, ReturnCondition
from toolcrib.services.ledger import InventoryLedger
from toolcrib.services.shift_window import compute_window
from toolcrib.store import IssuanceFilter, Store

logger = get_logger(__name__)

DEFAULT_SHIFT = "A"
DEFAULT_SHIFT_TIME = "morning"

ALLOWED_TRANSITIONS: dict[IssuanceStatus, list[IssuanceStatus]] = {
    IssuanceStatus.issued: [
        IssuanceStatus.returned,
        IssuanceStatus.lost,
        IssuanceStatus.damaged,
        IssuanceStatus.cleared_overdue,
    ],
    IssuanceStatus.returned: [IssuanceStatus.cleared_overdue],
    IssuanceStatus.lost: [IssuanceStatus.cleared_overdue],
    IssuanceStatus.damaged: [IssuanceStatus.cleared_overdue],
    IssuanceStatus.cleared_overdue: [IssuanceStatus.cleared_overdue],
}


def can_transition(current: Union[IssuanceStatus, str], new: Union[IssuanceStatus, str]) -> bool:
    return IssuanceStatus(new) in ALLOWED_TRANSITIONS.get(IssuanceStatus(current), [])


def status_for_condition(condition: Optional[str]) -> IssuanceStatus:
    if condition == ReturnCondition.lost.value:
        return IssuanceStatus.lost
    if condition == ReturnCondition.damaged.value:
        return IssuanceStatus.damaged
    return IssuanceStatus.returned


def hours_overdue(issuance: ToolIssuance, now: datetime) -> float:
    hours = (now - issuance.shift_end_time).total_seconds() / 3600
    return round(max(hours, 0.0), 1)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)


def _parse(model: type[BaseModel], data: Mapping[str, Any]) -> tuple[Any, list[str]]:
    """Parse ``data``, dropping fields that fail to parse.

    Returns the model built from the remaining fields and the names of the
    dropped ones, so the caller can report them together with missing ones.
    """
    raw = dict(data)
    try:
        return model.model_validate(raw), []
    except PydanticValidationError as e:
        invalid: list[str] = []
        for err in e.errors():
            name = str(err["loc"][0]) if err["loc"] else ""
            if name and name not in invalid:
                invalid.append(name)
        if not invalid:
            raise ValidationError([], "Invalid request body") from e
    parsed = model.model_validate({k: v for k, v in raw.items() if k not in invalid})
    return parsed, invalid


class IssuanceLifecycle:
    def __init__(
        self,
        store: Store,
        ledger: Optional[InventoryLedger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.clock = clock
        self.ledger = ledger or InventoryLedger(store, clock=clock)

    # ---- 读 ----

    def get(self, issuance_id: int) -> ToolIssuance:
        issuance = self.store.get_issuance(issuance_id)
        if issuance is None:
            raise IssuanceNotFound(issuance_id)
        return issuance

    def list_issuances(self, attendant_name: Optional[str] = None) -> list[ToolIssuance]:
        items = self.store.list_issuances(IssuanceFilter(attendant_name=attendant_name))
        return sorted(items, key=lambda i: (i.created_at, i.id), reverse=True)

    def list_overdue(self) -> list[ToolIssuance]:
        # 管理员清除过的不再提醒
        items = self.store.list_issuances(IssuanceFilter(is_overdue=True))
        return [i for i in items if i.status != IssuanceStatus.cleared_overdue.value]

    # ---- 写 ----

    def issue(
        self,
        request: Union[IssuanceCreate, Mapping[str, Any]],
        attendant: Union[User, str, None],
    ) -> ToolIssuance:
        invalid: list[str] = []
        if not isinstance(request, IssuanceCreate):
            request, invalid = _parse(IssuanceCreate, request)
        if isinstance(attendant, str):
            username = attendant
            attendant = self.store.get_user(username)
            if attendant is None:
                # 账号查不到就按默认班次算，名字照记
                attendant = User(username=username, password_hash="")

        missing = []
        if request.date is None:
            missing.append("date")
        if _blank(request.tool_code):
            missing.append("tool_code")
        if request.quantity is None or request.quantity <= 0:
            missing.append("quantity")
        if _blank(request.issued_to_name):
            missing.append("issued_to_name")
        if _blank(request.department):
            missing.append("department")
        if request.time_out is None:
            missing.append("time_out")
        if missing or invalid:
            # 缺的和格式不对的按字段顺序一起报
            raise ValidationError([f for f in IssuanceCreate.model_fields if f in missing or f in invalid])

        now = self.clock()
        shift = (attendant.shift if attendant else None) or DEFAULT_SHIFT
        shift_time = (attendant.shift_time if attendant else None) or DEFAULT_SHIFT_TIME
        window = compute_window(shift_time, request.date)

        shift_day = 1
        if attendant is not None and attendant.created_at is not None:
            shift_day = max((now - attendant.created_at).days, 0) + 1

        tool_code = request.tool_code.strip()
        posting = self.ledger.post(tool_code, -request.quantity)
        tool = posting.tool

        issuance = ToolIssuance(
            date=request.date,
            tool_code=tool_code,
            tool_description=(request.tool_description or tool.description or "").strip(),
            quantity=request.quantity,
            issued_to_name=request.issued_to_name.strip(),
            issued_to_id=(request.issued_to_id or "").strip(),
            department=request.department.strip(),
            attendant_name=attendant.username if attendant else "",
            attendant_shift=shift,
            attendant_shift_time=shift_time,
            shift_day=shift_day,
            time_out=request.time_out,
            comments=(request.comments or "").strip(),
            status=IssuanceStatus.issued.value,
            is_overdue=False,
            shift_start_time=window.start,
            shift_end_time=window.end,
            created_at=now,
            updated_at=now,
        )
        try:
            issuance = self.store.put_issuance(issuance)
        except Exception:
            # 记录没写进去，库存还回去
            self.ledger.reverse(posting)
            raise
        logger.info(
            "issued #{} {} x{} to {} ({} shift {}, due {})",
            issuance.id, tool_code, issuance.quantity, issuance.issued_to_name,
            shift_time, shift, window.end.isoformat(),
        )
        return issuance

    def return_tool(self, issuance_id: int, data: Union[IssuanceReturn, Mapping[str, Any], None] = None) -> ToolIssuance:
        if data is None:
            data = IssuanceReturn()
        elif not isinstance(data, IssuanceReturn):
            data, invalid = _parse(IssuanceReturn, data)
            if invalid:
                raise ValidationError(invalid)

        issuance = self.get(issuance_id)
        condition = _enum_value(data.condition_returned)
        new_status = status_for_condition(condition)
        if not can_transition(issuance.status, new_status):
            raise IssuanceNotIssued(issuance_id, issuance.status)

        now = self.clock()

        time_in: Optional[time] = data.time_in
        if new_status == IssuanceStatus.lost:
            # 丢了就不记归还时间
            time_in = None
        elif time_in is None:
            time_in = now.time().replace(microsecond=0)

        # 丢失/损坏也把数量加回可用库存
        posting = self.ledger.post(issuance.tool_code, issuance.quantity)

        issuance.time_in = time_in
        issuance.condition_returned = condition
        issuance.status = new_status.value
        if data.comments is not None and data.comments.strip():
            issuance.comments = data.comments.strip()
        issuance.updated_at = now
        try:
            issuance = self.store.put_issuance(issuance)
        except Exception:
            # 状态没落盘，不能留着多加的库存，否则重试会再加一次
            self.ledger.reverse(posting)
            raise
        logger.info(
            "issuance #{} {} (condition={}, overdue={})",
            issuance.id, issuance.status, condition, issuance.is_overdue,
        )
        return issuance

    def clear_overdue(self, issuance_id: int) -> ToolIssuance:
        issuance = self.get(issuance_id)
        issuance.status = IssuanceStatus.cleared_overdue.value
        issuance.updated_at = self.clock()
        issuance = self.store.put_issuance(issuance)
        logger.info("issuance #{} overdue cleared", issuance.id)
        return issuance
