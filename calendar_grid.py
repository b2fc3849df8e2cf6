"""
Monthly calendar sheets.

Each month has its own sheet named "{Month} {YY}" (e.g. "May 25"). Row 2
holds the day-of-month labels from column B on, column A holds the time
slot labels from row 3 down, and a booked slot's cell holds a marker
"{location} - {appointment id} - {patient name}". A blank cell is free.
"""

import logging
from typing import Dict, List, Optional, Tuple

from database import Workbook, cell_ref
from errors import CalendarCellUnresolved

logger = logging.getLogger(__name__)


def parse_date(date: str) -> Tuple[str, str, str]:
    """Split "21 May 2025" into ("21", "May", "2025")."""
    parts = (date or "").split()
    if len(parts) != 3 or not parts[2].isdigit() or len(parts[2]) not in (2, 4):
        raise CalendarCellUnresolved(f"Cannot derive a calendar month from date {date!r}")
    return parts[0], parts[1], parts[2]


def month_sheet_for(date: str) -> str:
    _, month, year = parse_date(date)
    return f"{month} {year[-2:]}"


def booking_marker(location: str, appointment_id: str, patient_name: str) -> str:
    return f"{location} - {appointment_id} - {patient_name}"


def _cell(values: List[list], row: int, col: int) -> str:
    if row >= len(values) or col >= len(values[row]):
        return ""
    value = values[row][col]
    return "" if value is None else str(value)


class CalendarGrid:
    DAY_ROW = 1
    FIRST_SLOT_ROW = 2

    def __init__(self, workbook: Workbook):
        self.workbook = workbook

    @classmethod
    def _locate(cls, values: List[list], day: str, time: str) -> Optional[Tuple[int, int]]:
        day, time = day.strip(), time.strip()

        day_col = -1
        if len(values) > cls.DAY_ROW:
            for j, label in enumerate(values[cls.DAY_ROW]):
                if j > 0 and label is not None and str(label).strip() == day:
                    day_col = j
                    break

        time_row = -1
        for i in range(cls.FIRST_SLOT_ROW, len(values)):
            if _cell(values, i, 0).strip() == time:
                time_row = i
                break

        if day_col == -1 or time_row == -1:
            return None
        return time_row, day_col

    def _values(self, month_sheet: str) -> List[list]:
        # A month without a sheet has no cells
        if month_sheet not in self.workbook.sheet_titles():
            logger.debug(f"Calendar sheet {month_sheet} does not exist")
            return []
        return self.workbook.get_values(month_sheet)

    def find_cell(self, month_sheet: str, day: str, time: str) -> Optional[Tuple[int, int]]:
        """Zero-based (row, col) of the slot, or None when the sheet, day or time is absent."""
        return self._locate(self._values(month_sheet), day, time)

    def is_available(self, month_sheet: str, day: str, time: str) -> bool:
        values = self._values(month_sheet)
        location = self._locate(values, day, time)
        if location is None:
            return False
        return _cell(values, *location).strip() == ""

    def set_cell(self, month_sheet: str, day: str, time: str, value: str) -> None:
        location = self.find_cell(month_sheet, day, time)
        if location is None:
            raise CalendarCellUnresolved(
                f"No calendar cell for day {day} at {time} in sheet {month_sheet}"
            )
        self.workbook.update_range(month_sheet, cell_ref(*location), [[value]])
        logger.debug(f"Calendar {month_sheet} {cell_ref(*location)} set")

    def mark(self, date: str, time: str, marker: str) -> None:
        day, _, _ = parse_date(date)
        self.set_cell(month_sheet_for(date), day, time, marker)

    def clear(self, date: str, time: str) -> None:
        day, _, _ = parse_date(date)
        self.set_cell(month_sheet_for(date), day, time, "")

    def month_summary(self, month_sheet: str) -> Dict[str, Dict[str, int]]:
        """Free and booked slot counts per day label."""
        values = self._values(month_sheet)
        if len(values) <= self.DAY_ROW:
            return {}
        slot_rows = [
            i for i in range(self.FIRST_SLOT_ROW, len(values)) if _cell(values, i, 0).strip()
        ]
        summary: Dict[str, Dict[str, int]] = {}
        for col, label in enumerate(values[self.DAY_ROW]):
            label = "" if label is None else str(label).strip()
            if col == 0 or not label:
                continue
            booked = sum(1 for i in slot_rows if _cell(values, i, col).strip())
            summary[label] = {"free": len(slot_rows) - booked, "booked": booked}
        return summary
