from datetime import datetime
from fastapi import APIRouter, Depends

from toolcrib.config import get_settings
from toolcrib.deps import get_lifecycle, get_store, require_admin, require_user
from toolcrib.errors import abort
from toolcrib.models import User
from toolcrib.schemas import (
    CountResponse,
    IssuanceCreate,
    IssuanceRead,
    IssuanceReturn,
    OverdueIssuanceRead,
    SweepResponse,
)
from toolcrib.services.issuance import IssuanceLifecycle, hours_overdue
from toolcrib.services.overdue import OverdueScanner
from toolcrib.store import SqlModelStore

router = APIRouter(prefix="/issuances", tags=["issuances"])


@router.post("", response_model=IssuanceRead)
def issue_tool(
    data: IssuanceCreate,
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    user: User = Depends(require_user),
):
    if get_settings().reject_over_issuance and data.tool_code and data.quantity:
        tool = lifecycle.store.get_tool(data.tool_code.strip())
        if tool is not None and data.quantity > tool.available_quantity:
            abort(
                409,
                "INSUFFICIENT_STOCK",
                f"Insufficient stock: {tool.available_quantity} available, {data.quantity} requested",
            )
    return lifecycle.issue(data, user)


@router.get("", response_model=list[IssuanceRead])
def list_issuances(
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    user: User = Depends(require_user),
):
    # 发放员只看自己经手的
    if user.role == "attendant":
        return lifecycle.list_issuances(attendant_name=user.username)
    return lifecycle.list_issuances()


@router.get("/overdue", response_model=list[OverdueIssuanceRead])
def list_overdue(
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    _user: User = Depends(require_user),
):
    now = datetime.now()
    return [
        OverdueIssuanceRead.model_validate({**i.model_dump(), "hours_overdue": hours_overdue(i, now)})
        for i in lifecycle.list_overdue()
    ]


@router.get("/overdue/count", response_model=CountResponse)
def count_overdue(
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    _user: User = Depends(require_user),
):
    return {"count": len(lifecycle.list_overdue())}


@router.post("/overdue/sweep", response_model=SweepResponse)
def sweep_overdue(
    store: SqlModelStore = Depends(get_store),
    _admin: User = Depends(require_admin),
):
    now = datetime.now()
    flagged = OverdueScanner(store).sweep(now)
    return {"flagged": flagged, "swept_at": now}


@router.get("/{issuance_id}", response_model=IssuanceRead)
def get_issuance(
    issuance_id: int,
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    user: User = Depends(require_user),
):
    issuance = lifecycle.get(issuance_id)
    if user.role == "attendant" and issuance.attendant_name != user.username:
        abort(404, "ISSUANCE_NOT_FOUND", f"Tool issuance not found: {issuance_id}")
    return issuance


@router.put("/{issuance_id}/return", response_model=IssuanceRead)
def return_tool(
    issuance_id: int,
    data: IssuanceReturn,
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    _user: User = Depends(require_user),
):
    return lifecycle.return_tool(issuance_id, data)


@router.put("/{issuance_id}/clear-overdue", response_model=IssuanceRead)
def clear_overdue(
    issuance_id: int,
    lifecycle: IssuanceLifecycle = Depends(get_lifecycle),
    _admin: User = Depends(require_admin),
):
    return lifecycle.clear_overdue(issuance_id)
