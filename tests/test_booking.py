"""
Tests for the booking service.

Coverage:
- Slot uniqueness, keyed with or without the date
- Create / fetch / reschedule / cancel against both sheets
- Best-effort calendar writes
- Id normalization and error kinds
"""

import pytest

from booking import BookingService, normalize_id
from calendar_grid import CalendarGrid
from database import MemoryWorkbook, RowStore
from errors import NotFound, SlotTaken, StoreFailure, ValidationError
from schemas import get_booking_schema

from conftest import EXISTING_ID, V1_HEADERS, month_grid


def book(service, **overrides):
    fields = dict(
        doctor="Dr. Smith",
        clinic_location="Downtown",
        patient_name="Bongani Dube",
        contact_number="0700000002",
        visit_reason="Follow-up",
        time="10:00",
        date="21 May 2025",
    )
    fields.update(overrides)
    return service.create(**fields)


# =============================================================================
# Reads
# =============================================================================

def test_list_all_is_idempotent(service):
    assert service.list_all() == service.list_all()
    assert [a.appointment_id for a in service.list_all()] == [EXISTING_ID]


def test_list_clinics_deduplicates_in_order(service):
    assert service.list_clinics() == ["Downtown", "Uptown"]


def test_list_doctors_filters_by_location(service):
    assert service.list_doctors() == ["Dr. Smith", "Dr. Jones"]
    assert service.list_doctors("Uptown") == ["Dr. Smith", "Dr. Jones"]
    assert service.list_doctors(" Downtown ") == ["Dr. Smith"]
    assert service.list_doctors("Nowhere") == []


def test_doctor_schedule_keeps_numeric_times(service):
    rows = service.doctor_schedule("Dr. Smith")
    assert len(rows) == 4
    assert rows[0]["Start Time"] == 0.375


# =============================================================================
# Create
# =============================================================================

def test_create_then_fetch_round_trip(service):
    result = book(service)
    created = result.appointment

    assert len(created.appointment_id) == 10
    assert created.appointment_id.isdigit()
    assert service.fetch_by_id(created.appointment_id) == created


def test_create_marks_calendar(service, read_cell):
    result = book(service)

    assert result.calendar == "ok"
    marker = f"Downtown - {result.appointment.appointment_id} - Bongani Dube"
    assert read_cell("May 25", "21", "10:00") == marker


def test_create_rejects_taken_slot(service):
    with pytest.raises(SlotTaken):
        book(service, time="09:00")


def test_create_same_time_other_date_allowed_when_keyed_on_date(service):
    result = book(service, time="09:00", date="22 May 2025")
    assert result.appointment.date == "22 May 2025"


def test_create_same_time_other_date_collides_when_keyed_on_time_only(workbook):
    service = BookingService(
        RowStore(workbook), CalendarGrid(workbook), get_booking_schema("v2"), key_includes_date=False
    )
    with pytest.raises(SlotTaken):
        book(service, time="09:00", date="22 May 2025")


def test_create_other_doctor_same_slot_allowed(service):
    result = book(service, doctor="Dr. Jones", time="09:00")
    assert result.appointment.doctor == "Dr. Jones"


@pytest.mark.parametrize("missing", ["doctor", "clinic_location", "patient_name", "contact_number", "time", "date"])
def test_create_requires_fields(service, missing):
    with pytest.raises(ValidationError, match=missing):
        book(service, **{missing: "  "})


def test_create_strips_quotes_and_whitespace(service):
    result = book(service, patient_name='  "Bongani Dube" ')
    assert result.appointment.patient_name == "Bongani Dube"


def test_create_with_unknown_time_keeps_row_and_reports_calendar_failure(service):
    result = book(service, time="07:15")

    assert result.calendar == "failed"
    assert service.fetch_by_id(result.appointment.appointment_id) is not None


def test_create_with_malformed_date_reports_calendar_failure(service):
    result = book(service, date="2025-05-21")
    assert result.calendar == "failed"


def test_create_writes_columns_in_schema_order(service, workbook):
    result = book(service)
    row = workbook.sheets["Patients_Booking"][-1]
    assert row == [
        result.appointment.appointment_id, "Bongani Dube", "0700000002", "Follow-up",
        "Dr. Smith", "21 May 2025", "10:00", "Downtown",
    ]


# =============================================================================
# Reschedule
# =============================================================================

def test_reschedule_updates_time_without_duplicating(service):
    result = service.reschedule(EXISTING_ID, time="10:30")

    matches = [a for a in service.list_all() if a.appointment_id == EXISTING_ID]
    assert len(matches) == 1
    assert matches[0].time == "10:30"
    assert result.appointment.patient_name == "Alice Moyo"


def test_reschedule_moves_calendar_marker(service, read_cell):
    result = service.reschedule(EXISTING_ID, time="10:30", date="2 June 2025")

    assert result.calendar == "ok"
    assert read_cell("May 25", "21", "09:00") == ""
    assert read_cell("June 25", "2", "10:30") == f"Downtown - {EXISTING_ID} - Alice Moyo"


def test_reschedule_into_taken_slot(service):
    other = book(service, time="10:00").appointment
    with pytest.raises(SlotTaken, match="New appointment slot"):
        service.reschedule(other.appointment_id, time="09:00")


def test_reschedule_same_slot_is_not_a_collision_with_itself(service):
    result = service.reschedule(EXISTING_ID, time="09:00", visit_reason="Results")
    assert result.appointment.visit_reason == "Results"


def test_reschedule_keeps_unspecified_fields(service):
    result = service.reschedule(EXISTING_ID, contact_number="0711111111")
    fetched = service.fetch_by_id(EXISTING_ID)

    assert fetched == result.appointment
    assert fetched.contact_number == "0711111111"
    assert fetched.time == "09:00"
    assert fetched.doctor == "Dr. Smith"


def test_reschedule_targets_the_right_row(service, workbook):
    first = book(service, time="09:30").appointment
    second = book(service, time="10:00").appointment

    service.reschedule(first.appointment_id, time="10:30")

    rows = workbook.sheets["Patients_Booking"]
    assert rows[1][0] == EXISTING_ID and rows[1][6] == "09:00"
    assert rows[2][0] == first.appointment_id and rows[2][6] == "10:30"
    assert rows[3][0] == second.appointment_id and rows[3][6] == "10:00"


def test_reschedule_unknown_id(service):
    with pytest.raises(NotFound):
        service.reschedule("0000000000", time="10:00")


def test_reschedule_rejects_unknown_fields(service):
    with pytest.raises(ValidationError):
        service.reschedule(EXISTING_ID, status="cancelled")


# =============================================================================
# Cancel and fetch
# =============================================================================

def test_cancel_clears_row_and_calendar(service, read_cell):
    result = service.cancel(EXISTING_ID)

    assert result.calendar == "ok"
    assert service.fetch_by_id(EXISTING_ID) is None
    assert read_cell("May 25", "21", "09:00") == ""


def test_cancel_deletes_only_its_row(service, workbook):
    first = book(service, time="09:30").appointment
    second = book(service, time="10:00").appointment

    service.cancel(first.appointment_id)

    ids = [row[0] for row in workbook.sheets["Patients_Booking"][1:]]
    assert ids == [EXISTING_ID, second.appointment_id]


def test_cancel_succeeds_when_calendar_cell_missing(service):
    result = book(service, time="07:15")
    cancelled = service.cancel(result.appointment.appointment_id)

    assert cancelled.calendar == "failed"
    assert service.fetch_by_id(result.appointment.appointment_id) is None


def test_create_without_month_sheet_keeps_row(service):
    result = book(service, date="3 July 2025")

    assert result.calendar == "failed"
    assert service.fetch_by_id(result.appointment.appointment_id) is not None
    with pytest.raises(SlotTaken):
        book(service, date="3 July 2025")


def test_cancel_without_month_sheet_still_deletes_row(service, workbook):
    workbook.append_row("Patients_Booking", [
        "5555555555", "Cy Ndlovu", "0700000003", "Checkup", "Dr. Smith", "3 July 2025", "09:00", "Downtown",
    ])

    result = service.cancel("5555555555")

    assert result.calendar == "failed"
    assert service.fetch_by_id("5555555555") is None


def test_calendar_write_failure_is_reported(service, workbook, monkeypatch):
    def broken_update(sheet, start_cell, rows):
        raise StoreFailure("Spreadsheet request failed: 503")

    monkeypatch.setattr(workbook, "update_range", broken_update)
    result = service.cancel(EXISTING_ID)

    assert result.calendar == "failed"
    assert service.fetch_by_id(EXISTING_ID) is None


def test_cancel_twice(service):
    service.cancel(EXISTING_ID)
    with pytest.raises(NotFound):
        service.cancel(EXISTING_ID)


def test_fetch_normalizes_ids(service):
    assert service.fetch_by_id(f' "{EXISTING_ID}"\r\n') is not None
    assert service.fetch_by_id("12345\u200b67890") is not None
    assert service.fetch_by_id("") is None


def test_normalize_id():
    assert normalize_id(' "12 34"\n') == "1234"
    assert normalize_id(None) == ""


# =============================================================================
# Calendar checks
# =============================================================================

def test_slot_available(service):
    assert service.slot_available("21 May 2025", "09:00") is False
    assert service.slot_available("21 May 2025", "09:30") is True
    assert service.slot_available("21 May 2025", "07:00") is False


def test_slot_available_without_month_sheet(service):
    assert service.slot_available("3 July 2025", "09:00") is False


def test_slot_available_rejects_bad_date(service):
    with pytest.raises(ValidationError):
        service.slot_available("May 2025", "09:00")


def test_month_summary(service):
    days = service.month_summary(2025, 5)
    assert days["21"] == {"free": 3, "booked": 1}
    assert days["1"] == {"free": 4, "booked": 0}


# =============================================================================
# Legacy layout without a Date column
# =============================================================================

@pytest.fixture
def legacy_service():
    workbook = MemoryWorkbook({
        "Patients_Booking": [
            V1_HEADERS,
            [EXISTING_ID, "Dr. Smith", "Downtown", "Alice Moyo", "0700000001", "Checkup", "09:00"],
        ],
        "May 25": month_grid("May 2025"),
    })
    return BookingService(RowStore(workbook), CalendarGrid(workbook), get_booking_schema("v1"))


def test_legacy_layout_keys_on_time_only(legacy_service):
    assert legacy_service.key_includes_date is False
    with pytest.raises(SlotTaken):
        book(legacy_service, time="09:00", date="22 May 2025")


def test_legacy_layout_reads_records(legacy_service):
    appointment = legacy_service.fetch_by_id(EXISTING_ID)
    assert appointment.doctor == "Dr. Smith"
    assert appointment.time == "09:00"
    assert appointment.date == ""


def test_legacy_layout_skips_calendar_without_date(legacy_service):
    assert legacy_service.cancel(EXISTING_ID).calendar == "skipped"


def test_legacy_layout_never_touches_calendar(legacy_service):
    workbook = legacy_service.calendar.workbook
    before = [list(row) for row in workbook.sheets["May 25"]]

    result = book(legacy_service, time="10:00", date="21 May 2025")
    assert result.calendar == "skipped"
    assert result.appointment.date == ""

    assert legacy_service.cancel(result.appointment.appointment_id).calendar == "skipped"
    assert workbook.sheets["May 25"] == before


def test_legacy_layout_does_not_require_date(legacy_service):
    result = book(legacy_service, time="10:30", date="")
    assert legacy_service.fetch_by_id(result.appointment.appointment_id).time == "10:30"


def test_legacy_layout_reschedule_ignores_date(legacy_service):
    result = legacy_service.reschedule(EXISTING_ID, time="10:30", date="22 May 2025")

    assert result.calendar == "skipped"
    assert result.appointment.date == ""
    assert legacy_service.fetch_by_id(EXISTING_ID).time == "10:30"
