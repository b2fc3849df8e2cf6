"""
Doctor availability listings.

Rows of the doctor schedule sheet become per-location lists of
{day, start, end, weeks}. Times may arrive as spreadsheet fractional-day
numbers (0.375 is 09:00) and are rendered as HH:MM.
"""

import re
from datetime import date as date_type
from typing import Any, Dict, List, Mapping, Optional, Sequence

WEEK_COLUMNS = (
    ("1st Week", "1st"),
    ("2nd Week", "2nd"),
    ("3rd Week", "3rd"),
    ("4th Week", "4th"),
    ("5th Week", "5th"),
)

DAYS_OF_WEEK = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_FALSE_STRINGS = {"", "false", "no", "0", "n"}
_TIME_RE = re.compile(r"(\d+):(\d+)")


def is_flag_set(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if value is None:
        return False
    return str(value).strip().lower() not in _FALSE_STRINGS


def excel_time_to_string(value: Any) -> Any:
    """0.375 -> "09:00". Non-numeric values pass through."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    total_minutes = round(value * 24 * 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def active_weeks(slot: Mapping[str, Any]) -> List[str]:
    return [label for column, label in WEEK_COLUMNS if is_flag_set(slot.get(column))]


def format_availability(raw: Sequence[Mapping[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group schedule rows by location, dropping rows with no week flag set."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for slot in raw:
        weeks = active_weeks(slot)
        if not weeks:
            continue
        grouped.setdefault(slot.get("Location", ""), []).append({
            "day": slot.get("Day", ""),
            "start": excel_time_to_string(slot.get("Start Time", "")),
            "end": excel_time_to_string(slot.get("End Time", "")),
            "weeks": weeks,
        })
    return grouped


# Proximity sort

def weekday_index(day: date_type) -> int:
    """Sunday-first weekday index (Sunday = 0)."""
    return (day.weekday() + 1) % 7


def day_distance(day_name: str, today_index: int) -> int:
    """Days from today until day_name; unknown names sort after every real day."""
    name = (day_name or "").strip().capitalize()
    if name not in DAYS_OF_WEEK:
        return 7
    return (DAYS_OF_WEEK.index(name) - today_index + 7) % 7


def parse_minutes(value: Any) -> int:
    """Minutes since midnight for "HH:MM", "H:MM AM/PM" or a fractional-day number."""
    value = excel_time_to_string(value)
    match = _TIME_RE.search(str(value or ""))
    if not match:
        return 0
    hours, minutes = int(match.group(1)), int(match.group(2))
    upper = str(value).upper()
    if "PM" in upper and hours < 12:
        hours += 12
    elif "AM" in upper and hours == 12:
        hours = 0
    return hours * 60 + minutes


def sort_by_proximity(
    slots: Sequence[Mapping[str, Any]],
    today: Optional[date_type] = None,
    day_key: str = "Day",
    start_key: str = "Start Time",
) -> List[Mapping[str, Any]]:
    """Order slots by days from today, then by start time."""
    today_index = weekday_index(today or date_type.today())
    return sorted(
        slots,
        key=lambda slot: (
            day_distance(slot.get(day_key, ""), today_index),
            parse_minutes(slot.get(start_key, "")),
        ),
    )


def availability_prompt(slots: Sequence[Mapping[str, Any]], today: Optional[date_type] = None) -> str:
    lines = [
        f"- {slot.get('Day', '')}, {excel_time_to_string(slot.get('Start Time', ''))}"
        for slot in sort_by_proximity([s for s in slots if active_weeks(s)], today)
    ]
    return "Please select time slot for the appointment\n\n" + "\n".join(lines)
