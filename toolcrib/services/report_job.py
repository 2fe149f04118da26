"""Scheduled XLSX reports written to disk.

Every run writes one 10-day report per attendant with recent issuances and
one monthly admin report covering the current month. Empty reports are
skipped. File names carry the run date, so a second run on the same day
overwrites the first.
"""
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Union

from toolcrib.logging_config import get_logger
from toolcrib.services.reports import attendant_recent, build_issuances_xlsx, monthly_report
from toolcrib.store import Store

logger = get_logger(__name__)

MONTHLY_RUN_HOUR = 2


def ten_day_filename(username: str, now: datetime) -> str:
    slug = re.sub(r"\s+", "-", username)
    return f"10-day-report-{slug}-{now.date().isoformat()}.xlsx"


def monthly_filename(now: datetime) -> str:
    return f"monthly-admin-report-{now.date().isoformat()}.xlsx"


def seconds_until_next_month(now: datetime) -> float:
    """Delay until 02:00 on the 1st of the next month."""
    if now.month == 12:
        target = datetime(now.year + 1, 1, 1, MONTHLY_RUN_HOUR)
    else:
        target = datetime(now.year, now.month + 1, 1, MONTHLY_RUN_HOUR)
    return (target - now).total_seconds()


def generate_reports(store: Store, out_dir: Union[str, Path], now: datetime) -> list[Path]:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    today = now.date()
    items = store.list_issuances()
    written: list[Path] = []

    for attendant in store.list_users(role="attendant"):
        rows = attendant_recent(items, attendant.username, today)
        if not rows:
            continue
        path = out / ten_day_filename(attendant.username, now)
        path.write_bytes(build_issuances_xlsx(
            rows, f"10-Day Shift Report - {attendant.username}", user=attendant, generated_at=now,
        ))
        written.append(path)
        logger.info("generated 10-day report for {}: {}", attendant.username, path.name)

    rows = monthly_report(items, today)
    if rows:
        path = out / monthly_filename(now)
        path.write_bytes(build_issuances_xlsx(rows, "Monthly Admin Report", generated_at=now))
        written.append(path)
        logger.info("generated monthly admin report: {}", path.name)

    return written
