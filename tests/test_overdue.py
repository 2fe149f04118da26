import asyncio
import threading
from datetime import datetime, timedelta

import pytest

from toolcrib.services.issuance import IssuanceLifecycle
from toolcrib.services.overdue import OverdueScanner, OverdueTicker


@pytest.fixture
def lifecycle(store, clock):
    return IssuanceLifecycle(store, clock=clock)


def test_sweep_flags_only_elapsed_windows(lifecycle, store, issue_request):
    morning = lifecycle.issue({**issue_request, "quantity": 1}, "ama")
    evening = lifecycle.issue({**issue_request, "quantity": 1}, "kofi")
    scanner = OverdueScanner(store)

    # 早班窗口结束前一刻不算
    assert scanner.sweep(datetime(2024, 1, 10, 18, 29, 59)) == 0

    now = datetime(2024, 1, 10, 18, 30)
    assert scanner.sweep(now) == 1
    m = store.get_issuance(morning.id)
    assert m.is_overdue is True
    assert m.overdue_since == now
    assert m.status == "issued"
    assert store.get_issuance(evening.id).is_overdue is False


def test_sweep_is_idempotent(lifecycle, store, issue_request):
    lifecycle.issue({**issue_request, "quantity": 1}, "ama")
    lifecycle.issue({**issue_request, "quantity": 1}, "kofi")
    scanner = OverdueScanner(store)

    now = datetime(2024, 1, 12, 0, 0)
    assert scanner.sweep(now) == 2
    before = [i.model_dump() for i in store.list_issuances()]
    assert scanner.sweep(now) == 0
    assert [i.model_dump() for i in store.list_issuances()] == before


def test_sweep_keeps_first_overdue_since(lifecycle, store, issue_request):
    i = lifecycle.issue(issue_request, "ama")
    scanner = OverdueScanner(store)
    first = datetime(2024, 1, 10, 19, 0)
    scanner.sweep(first)
    scanner.sweep(first + timedelta(hours=5))
    assert store.get_issuance(i.id).overdue_since == first


def test_sweep_skips_closed_issuances(lifecycle, store, issue_request):
    returned = lifecycle.issue({**issue_request, "quantity": 1}, "ama")
    lifecycle.return_tool(returned.id, {"condition_returned": "Good"})
    cleared = lifecycle.issue({**issue_request, "quantity": 1}, "ama")
    lifecycle.clear_overdue(cleared.id)

    assert OverdueScanner(store).sweep(datetime(2024, 2, 1)) == 0
    assert lifecycle.list_overdue() == []


def test_overdue_issuance_can_still_be_marked_lost(lifecycle, store, issue_request):
    i = lifecycle.issue(issue_request, "ama")
    OverdueScanner(store).sweep(datetime(2024, 1, 11))
    r = lifecycle.return_tool(i.id, {"condition_returned": "Lost/Missing"})
    assert r.status == "lost"
    assert r.is_overdue is True


def test_ticker_tick_uses_clock(lifecycle, store, clock, issue_request):
    lifecycle.issue(issue_request, "ama")
    ticker = OverdueTicker(OverdueScanner(store).sweep, interval=60, first_delay=0, clock=clock)

    assert ticker.tick() == 0
    assert ticker.last_run == datetime(2024, 1, 10, 7, 0)

    clock.advance(hours=12)
    assert ticker.tick() == 1
    assert ticker.last_flagged == 1
    assert ticker.tick() == 0


def test_ticker_loop_survives_failures_and_stops():
    calls = []

    def flaky(now):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("store down")
        return 0

    async def scenario():
        ticker = OverdueTicker(flaky, interval=0.01, first_delay=0, clock=lambda: datetime(2024, 1, 10))
        ticker.start()
        assert ticker.running
        for _ in range(100):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.01)
        await ticker.stop()
        assert not ticker.running

    asyncio.run(scenario())
    assert len(calls) >= 3


def test_ticker_loop_runs_tick_off_the_event_loop_thread():
    threads = []

    def record(now):
        threads.append(threading.get_ident())
        return 0

    async def scenario():
        ticker = OverdueTicker(record, interval=0.01, first_delay=0, clock=lambda: datetime(2024, 1, 10))
        ticker.start()
        for _ in range(100):
            if threads:
                break
            await asyncio.sleep(0.01)
        await ticker.stop()
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())
    assert threads
    assert loop_thread not in threads
