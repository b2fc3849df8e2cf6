"""
Test configuration and fixtures.

Provides:
- An in-memory workbook seeded with a booking sheet, doctor schedule,
  clinic list and monthly calendar sheets
- A BookingService over that workbook
- A TestClient with the booking service dependency overridden
"""
from typing import Dict, List, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient

from booking import BookingService
from calendar_grid import CalendarGrid
from database import MemoryWorkbook, RowStore
from main import app, get_booking_service
from schemas import get_booking_schema

EXISTING_ID = "1234567890"

TIME_SLOTS = ("09:00", "09:30", "10:00", "10:30")

V2_HEADERS = [
    "Appointment ID", "Patient Name", "Contact Number", "Reason For Visit",
    "Preferred Doctor", "Date", "Time", "Location",
]

V1_HEADERS = [
    "Appointment ID", "Doctor", "Clinic Location", "Patient Name",
    "Contact Number", "Reason to Visit", "Appointment Time",
]

SCHEDULE_HEADERS = [
    "Doctor Name", "Location", "Day", "Start Time", "End Time",
    "1st Week", "2nd Week", "3rd Week", "4th Week", "5th Week",
]


def month_grid(
    title: str,
    days: int = 31,
    times: Sequence[str] = TIME_SLOTS,
    booked: Dict[Tuple[str, str], str] = None,
) -> List[list]:
    """Calendar sheet: title row, day labels row, then one row per time slot."""
    booked = booked or {}
    rows = [[title], ["Time"] + [str(d) for d in range(1, days + 1)]]
    for time in times:
        row = [time] + [""] * days
        for (day, slot), marker in booked.items():
            if slot == time:
                row[int(day)] = marker
        rows.append(row)
    return rows


def seed_sheets() -> Dict[str, List[list]]:
    return {
        "Patients_Booking": [
            V2_HEADERS,
            [EXISTING_ID, "Alice Moyo", "0700000001", "Checkup",
             "Dr. Smith", "21 May 2025", "09:00", "Downtown"],
        ],
        "Doctors-Availability": [
            SCHEDULE_HEADERS,
            ["Dr. Smith", "Downtown", "Monday", 0.375, 0.5, True, True, False, False, False],
            ["Dr. Smith", "Downtown", "Friday", "10:00", "12:00", True, True, True, True, True],
            ["Dr. Smith", "Uptown", "Wednesday", "2:00 PM", "4:00 PM", False, False, True, False, False],
            ["Dr. Smith", "Uptown", "Tuesday", "09:00", "10:00", False, False, False, False, False],
            ["Dr. Jones", "Uptown", "Thursday", "11:00", "13:00", True, False, False, False, False],
        ],
        "Clinic-Locations": [
            ["Clinic Location"],
            ["Downtown"],
            ["Uptown"],
            ["Downtown"],
        ],
        "May 25": month_grid(
            "May 2025",
            booked={("21", "09:00"): f"Downtown - {EXISTING_ID} - Alice Moyo"},
        ),
        "June 25": month_grid("June 2025", days=30),
    }


@pytest.fixture
def workbook() -> MemoryWorkbook:
    return MemoryWorkbook(seed_sheets())


@pytest.fixture
def calendar(workbook) -> CalendarGrid:
    return CalendarGrid(workbook)


@pytest.fixture
def service(workbook, calendar) -> BookingService:
    return BookingService(RowStore(workbook), calendar, get_booking_schema("v2"))


@pytest.fixture
def client(service):
    app.dependency_overrides[get_booking_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def read_cell(workbook, calendar):
    """Read one calendar cell by day label and time label."""
    def _read(sheet: str, day: str, time: str) -> str:
        location = calendar.find_cell(sheet, day, time)
        assert location is not None
        row, col = location
        values = workbook.get_values(sheet)
        return values[row][col] if col < len(values[row]) else ""
    return _read
