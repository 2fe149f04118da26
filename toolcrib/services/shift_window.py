from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from toolcrib.errors import InvalidShiftTimeOfDay

# 早班 06:30-18:30，晚班 18:30-次日 06:30
SHIFT_CHANGE_MORNING = time(6, 30)
SHIFT_CHANGE_EVENING = time(18, 30)

SHIFT_LABELS = {
    "morning": "Morning (6:30am-18:30pm)",
    "evening": "Evening (18:30pm-6:30am)",
}


@dataclass(frozen=True)
class ShiftWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def compute_window(shift_time_of_day: str, reference_date: date | datetime) -> ShiftWindow:
    # 只取日期部分，传进来的时分秒忽略
    day = reference_date.date() if isinstance(reference_date, datetime) else reference_date

    if shift_time_of_day == "morning":
        return ShiftWindow(
            start=datetime.combine(day, SHIFT_CHANGE_MORNING),
            end=datetime.combine(day, SHIFT_CHANGE_EVENING),
        )
    if shift_time_of_day == "evening":
        return ShiftWindow(
            start=datetime.combine(day, SHIFT_CHANGE_EVENING),
            end=datetime.combine(day + timedelta(days=1), SHIFT_CHANGE_MORNING),
        )
    raise InvalidShiftTimeOfDay(shift_time_of_day)
