import asyncio
import contextlib
from datetime import datetime
from typing import Callable, Optional

from toolcrib.logging_config import get_logger
from toolcrib.schemas import IssuanceStatus
from toolcrib.store import IssuanceFilter, Store

logger = get_logger(__name__)


class OverdueScanner:
    """Flags open issuances whose shift window has ended.

    Only ``is_overdue``/``overdue_since`` are written; the status stays
    ``issued``. Already flagged records are not candidates, so repeated
    sweeps with the same ``now`` change nothing.
    """

    def __init__(self, store: Store):
        self.store = store

    def sweep(self, now: datetime) -> int:
        candidates = self.store.list_issuances(
            IssuanceFilter(status=IssuanceStatus.issued.value, is_overdue=False)
        )
        flagged = []
        for issuance in candidates:
            if now >= issuance.shift_end_time:
                issuance.is_overdue = True
                issuance.overdue_since = now
                flagged.append(issuance)
                logger.info(
                    "tool {} issued to {} is now overdue (issuance #{})",
                    issuance.tool_code, issuance.issued_to_name, issuance.id,
                )

        self.store.put_issuances(flagged)
        return len(flagged)


class OverdueTicker:
    """Drives a sweep on a fixed interval.

    ``tick()`` runs one sweep at ``clock()`` and is what tests call with a
    synthetic clock. ``start()`` launches ``run()`` as a background task on
    the running loop; overlapping sweeps are avoided only by the interval.
    Each tick runs in a worker thread, off the event loop. The report job reuses the same ticker with its own ``label``.
    """

    def __init__(
        self,
        run_sweep: Callable[[datetime], int],
        interval: float = 30 * 60,
        first_delay: float = 5,
        clock: Callable[[], datetime] = datetime.now,
        label: str = "overdue sweep",
    ):
        self.run_sweep = run_sweep
        self.label = label
        self.interval = interval
        self.first_delay = first_delay
        self.clock = clock
        self.last_run: Optional[datetime] = None
        self.last_flagged = 0
        self._task: Optional[asyncio.Task] = None

    def tick(self) -> int:
        now = self.clock()
        flagged = self.run_sweep(now)
        self.last_run = now
        self.last_flagged = flagged
        if flagged:
            logger.info("{} at {} handled {} item(s)", self.label, now.isoformat(), flagged)
        return flagged

    async def run(self) -> None:
        await asyncio.sleep(self.first_delay)
        while True:
            try:
                await asyncio.to_thread(self.tick)
            except Exception:
                # 失败只记日志，下个周期再试
                logger.exception("{} failed", self.label)
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
