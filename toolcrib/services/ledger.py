from datetime import datetime
from typing import Callable, NamedTuple

from toolcrib.errors import ToolNotFound
from toolcrib.logging_config import get_logger
from toolcrib.models import Tool
from toolcrib.store import Store

logger = get_logger(__name__)


class Posting(NamedTuple):
    tool: Tool
    old_qty: int
    applied: int  # 实际变动量，压到 0 时小于请求量


def calc_new_available(old_qty: int, signed_delta: int) -> tuple[int, bool]:
    """Return (new available quantity, whether the zero clamp engaged)."""
    raw = old_qty + signed_delta
    if raw < 0:
        return 0, True
    return raw, False


class InventoryLedger:
    """Applies signed deltas to a tool's available quantity.

    Stock never goes negative: a delta that would overshoot is clamped to 0
    and the deficit is only logged, not recorded.
    """

    def __init__(self, store: Store, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def post(self, tool_code: str, signed_delta: int) -> Posting:
        tool = self.store.get_tool(tool_code)
        if tool is None:
            raise ToolNotFound(tool_code)

        old_qty = tool.available_quantity
        new_qty, clamped = calc_new_available(old_qty, signed_delta)
        if clamped:
            logger.warning(
                "available quantity of {} clamped to 0 ({} {:+d}); deficit of {} not recorded",
                tool_code, old_qty, signed_delta, -(old_qty + signed_delta),
            )

        tool.available_quantity = new_qty
        tool.updated_at = self.clock()
        tool = self.store.put_tool(tool)
        logger.debug("ledger {} {:+d}: {} -> {}", tool_code, signed_delta, old_qty, new_qty)
        return Posting(tool, old_qty, new_qty - old_qty)

    def apply_delta(self, tool_code: str, signed_delta: int) -> Tool:
        return self.post(tool_code, signed_delta).tool

    def reverse(self, posting: Posting) -> None:
        """Undo ``posting`` after the write it belonged to failed.

        Errors are logged and swallowed so the caller can re-raise the
        original failure.
        """
        try:
            self.post(posting.tool.tool_code, -posting.applied)
        except Exception:
            logger.exception(
                "could not reverse {:+d} on {}; available quantity needs a manual fix",
                posting.applied, posting.tool.tool_code,
            )
