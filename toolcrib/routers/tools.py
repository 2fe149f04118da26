from datetime import datetime
from fastapi import APIRouter, Depends, File, UploadFile
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError

from toolcrib.db import get_session
from toolcrib.deps import get_store, require_admin, require_user
from toolcrib.errors import abort
from toolcrib.models import Tool, User
from toolcrib.schemas import ToolCreate, ToolImportResponse, ToolRead, ToolUpdate
from toolcrib.services.importer import import_tools
from toolcrib.store import SqlModelStore

router = APIRouter(tags=["tools"])


@router.get("/tools", response_model=list[ToolRead])
def list_available_tools(
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    # 发放页下拉框只给还有库存的
    stmt = select(Tool).where(Tool.available_quantity > 0).order_by(Tool.tool_code.asc())
    return session.exec(stmt).all()


@router.get("/admin/tools", response_model=list[ToolRead])
def list_tools(
    store: SqlModelStore = Depends(get_store),
    _admin: User = Depends(require_admin),
):
    return store.list_tools()


@router.post("/admin/tools", response_model=ToolRead)
def create_tool(
    data: ToolCreate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    code = data.tool_code.strip()
    if session.exec(select(Tool).where(Tool.tool_code == code)).first():
        abort(409, "TOOL_CODE_EXISTS", f"Tool code already exists: {code}")

    tool = Tool(
        tool_code=code,
        description=data.description.strip(),
        quantity=data.quantity,
        available_quantity=data.quantity,
    )
    session.add(tool)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, "TOOL_CODE_EXISTS", f"Tool code already exists: {code}")
    session.refresh(tool)
    return tool


@router.put("/admin/tools/{tool_id}", response_model=ToolRead)
def update_tool(
    tool_id: int,
    data: ToolUpdate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    tool = session.get(Tool, tool_id)
    if not tool:
        abort(404, "NOT_FOUND", "Tool not found")

    if data.tool_code is not None and data.tool_code.strip() != tool.tool_code:
        code = data.tool_code.strip()
        if session.exec(select(Tool).where(Tool.tool_code == code)).first():
            abort(409, "TOOL_CODE_EXISTS", f"Tool code already exists: {code}")
        tool.tool_code = code
    if data.description is not None:
        tool.description = data.description.strip()
    if data.quantity is not None:
        # 总数变多少，可借数量跟着变多少
        diff = data.quantity - tool.quantity
        tool.quantity = data.quantity
        tool.available_quantity = min(max(0, tool.available_quantity + diff), tool.quantity)

    tool.updated_at = datetime.now()
    session.add(tool)
    session.commit()
    session.refresh(tool)
    return tool


@router.post("/admin/tools/import", response_model=ToolImportResponse)
async def import_tools_xlsx(
    excel: UploadFile = File(...),
    store: SqlModelStore = Depends(get_store),
    _admin: User = Depends(require_admin),
):
    data = await excel.read()
    result = import_tools(store, data)
    return {"imported": result.imported, "errors": result.errors}
