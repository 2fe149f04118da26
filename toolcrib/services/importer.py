import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from openpyxl import load_workbook

from toolcrib.errors import ValidationError
from toolcrib.logging_config import get_logger
from toolcrib.models import Tool
from toolcrib.store import Store

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("tool_code", "description", "quantity")


@dataclass
class ImportResult:
    imported: int = 0
    errors: list[str] = field(default_factory=list)


def _norm_header(v) -> str:
    return str(v).strip().lower() if v is not None else ""


def _norm_int(v):
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


def import_tools(store: Store, data: bytes, clock: Callable[[], datetime] = datetime.now) -> ImportResult:
    """Replace-on-import tools from the first sheet of an xlsx workbook.

    Each complete row overwrites the tool with that code, resetting both the
    total and the available quantity. Rows that can't be used are reported
    as ``Row N: ...`` (N is the spreadsheet row number) and skipped.
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(["excel"], f"Failed to process Excel file: {e}")

    ws = wb.worksheets[0]
    rows = ws.iter_rows(values_only=True)
    header = next(rows, None)
    columns = [_norm_header(v) for v in (header or [])]
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        wb.close()
        raise ValidationError(missing, f"Excel header is missing columns: {', '.join(missing)}")
    idx = {c: columns.index(c) for c in REQUIRED_COLUMNS}

    result = ImportResult()
    for row_no, row in enumerate(rows, start=2):
        def cell(name):
            i = idx[name]
            return row[i] if i < len(row) else None

        if all(v is None for v in row):
            continue
        code = str(cell("tool_code")).strip() if cell("tool_code") is not None else ""
        description = str(cell("description")).strip() if cell("description") is not None else ""
        quantity = _norm_int(cell("quantity"))

        if not code or not description or not quantity:
            result.errors.append(f"Row {row_no}: tool_code, description and quantity are required")
            continue
        if quantity < 0:
            result.errors.append(f"Row {row_no}: quantity must be >= 0")
            continue

        now = clock()
        tool = store.get_tool(code)
        if tool is None:
            tool = Tool(tool_code=code, created_at=now)
        tool.description = description
        tool.quantity = quantity
        tool.available_quantity = quantity
        tool.updated_at = now
        store.put_tool(tool)
        result.imported += 1

    wb.close()
    logger.info("tool import: {} imported, {} error(s)", result.imported, len(result.errors))
    return result
