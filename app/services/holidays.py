import json
import logging
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

from app.core.config import settings
from app.core.errors import RateConfigError

logger = logging.getLogger(__name__)


class HolidayCalendar(Protocol):
    def is_holiday(self, day: date) -> bool:
        ...


class StaticHolidayCalendar:
    """Holiday calendar backed by a fixed set of dates"""

    def __init__(self, holidays: Optional[Dict[date, str]] = None):
        self._holidays = dict(holidays or {})

    @classmethod
    def from_dates(cls, days: Iterable[date]) -> "StaticHolidayCalendar":
        return cls({d: "Holiday" for d in days})

    def is_holiday(self, day: date) -> bool:
        return day in self._holidays

    def name_of(self, day: date) -> Optional[str]:
        return self._holidays.get(day)

    def __len__(self):
        return len(self._holidays)


def load_holiday_calendar(path: Optional[str] = None) -> StaticHolidayCalendar:
    path = Path(path or settings.HOLIDAY_CALENDAR_FILE)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        holidays = {
            date.fromisoformat(entry["date"]): entry.get("name", "Holiday")
            for entry in raw.get("holidays", [])
        }
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise RateConfigError(f"Holiday calendar {path} is malformed: {e}") from e

    logger.info(f"Loaded {len(holidays)} holidays from {path}")
    return StaticHolidayCalendar(holidays)
