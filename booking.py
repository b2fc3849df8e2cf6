"""
Booking service.

Appointments are rows of the booking sheet and, redundantly, markers in the
monthly calendar sheets. The booking row is the primary write; the calendar
write is best effort and its outcome is reported in BookingResult.calendar
rather than raised.

There is no locking: two concurrent bookings of the same slot can both pass
the uniqueness scan before either row is appended.
"""

import functools
import logging
import re
import secrets
import string
from calendar import month_name
from typing import Any, Dict, List, Optional, Sequence, Tuple

from calendar_grid import CalendarGrid, booking_marker, month_sheet_for, parse_date
from database import RowStore
from errors import CalendarCellUnresolved, NotFound, SlotTaken, StoreFailure, ValidationError
from schemas import Appointment, BookingResult, BookingSchema, CalendarStatus

logger = logging.getLogger(__name__)

ID_LENGTH = 10

REQUIRED_FIELDS = ("doctor", "clinic_location", "patient_name", "contact_number", "time", "date")
UPDATABLE_FIELDS = ("doctor", "clinic_location", "patient_name", "contact_number", "visit_reason", "time", "date")

_ID_NOISE_RE = re.compile(r'[\u200b\s"]')


def generate_appointment_id(size: int = ID_LENGTH) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(size))


def normalize_id(value: Any) -> str:
    """Strip whitespace, zero-width spaces, line breaks and quotes from an id."""
    return _ID_NOISE_RE.sub("", str(value or ""))


def clean_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().replace('"', "")


def _unique(values: Sequence[str]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _store_operation(operation: str):
    """Log store failures with the operation name before they propagate."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except StoreFailure as e:
                logger.error(f"{operation} failed: {e.message}")
                raise
        return wrapper
    return decorator


class BookingService:
    def __init__(
        self,
        store: RowStore,
        calendar: CalendarGrid,
        schema: BookingSchema,
        booking_sheet: str = "Patients_Booking",
        doctors_sheet: str = "Doctors-Availability",
        clinics_sheet: str = "Clinic-Locations",
        key_includes_date: bool = True,
    ):
        self.store = store
        self.calendar = calendar
        self.schema = schema
        self.booking_sheet = booking_sheet
        self.doctors_sheet = doctors_sheet
        self.clinics_sheet = clinics_sheet
        # A layout without a Date column cannot key on the date
        self.key_includes_date = key_includes_date and schema.has("date")

    # Helpers

    def _records(self) -> List[Appointment]:
        return self.store.read_records(self.booking_sheet, self.schema)

    def _slot_key(self, record: Appointment) -> Tuple[str, ...]:
        key = (record.doctor, record.clinic_location, record.time)
        if self.key_includes_date:
            key += (record.date,)
        return key

    def _check_slot(
        self,
        records: Sequence[Appointment],
        candidate: Appointment,
        message: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        key = self._slot_key(candidate)
        for record in records:
            if not record.appointment_id:
                continue
            if exclude_id is not None and normalize_id(record.appointment_id) == exclude_id:
                continue
            if self._slot_key(record) == key:
                raise SlotTaken(message)

    @staticmethod
    def _locate(records: Sequence[Appointment], appointment_id: str) -> Tuple[int, Appointment]:
        for index, record in enumerate(records):
            if record.appointment_id and normalize_id(record.appointment_id) == appointment_id:
                return index, record
        raise NotFound("Appointment not found")

    def _tracks_calendar(self, record: Appointment) -> bool:
        # Layouts without a Date column never touch the calendar
        return self.schema.has("date") and bool(record.date) and bool(record.time)

    def _mark_calendar(self, record: Appointment) -> CalendarStatus:
        if not self._tracks_calendar(record):
            return "skipped"
        marker = booking_marker(record.clinic_location, record.appointment_id, record.patient_name)
        try:
            self.calendar.mark(record.date, record.time, marker)
        except (CalendarCellUnresolved, StoreFailure) as e:
            logger.warning(f"Calendar not marked for appointment {record.appointment_id}: {e.message}")
            return "failed"
        return "ok"

    def _clear_calendar(self, record: Appointment) -> CalendarStatus:
        if not self._tracks_calendar(record):
            return "skipped"
        try:
            self.calendar.clear(record.date, record.time)
        except (CalendarCellUnresolved, StoreFailure) as e:
            logger.warning(f"Calendar not cleared for appointment {record.appointment_id}: {e.message}")
            return "failed"
        return "ok"

    # Appointments

    @_store_operation("create appointment")
    def create(
        self,
        doctor: Optional[str] = None,
        clinic_location: Optional[str] = None,
        patient_name: Optional[str] = None,
        contact_number: Optional[str] = None,
        visit_reason: Optional[str] = None,
        time: Optional[str] = None,
        date: Optional[str] = None,
    ) -> BookingResult:
        fields = {
            "doctor": clean_value(doctor),
            "clinic_location": clean_value(clinic_location),
            "patient_name": clean_value(patient_name),
            "contact_number": clean_value(contact_number),
            "visit_reason": clean_value(visit_reason),
            "time": clean_value(time),
            "date": clean_value(date),
        }
        if not self.schema.has("date"):
            fields["date"] = ""
        for name in REQUIRED_FIELDS:
            if name == "date" and not self.schema.has("date"):
                continue
            if not fields[name]:
                raise ValidationError(f"{name} is required")

        record = Appointment(appointment_id=generate_appointment_id(), **fields)
        self._check_slot(self._records(), record, "Appointment slot already taken")

        self.store.append_row(self.booking_sheet, RowStore.record_to_row(self.schema, record))
        logger.info(f"Appointment {record.appointment_id} booked for {record.doctor} at {record.clinic_location}")

        return BookingResult(appointment=record, calendar=self._mark_calendar(record))

    @_store_operation("reschedule appointment")
    def reschedule(
        self,
        appointment_id: str,
        time: Optional[str] = None,
        date: Optional[str] = None,
        **other_fields: Optional[str],
    ) -> BookingResult:
        """
        Apply a partial update. Fields that are not given (or blank) keep
        their stored values. When the date or time moves, the old calendar
        cell is cleared before the new one is marked.
        """
        unknown = set(other_fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field: {sorted(unknown)[0]}")
        wanted = normalize_id(appointment_id)
        if not wanted:
            raise ValidationError("Appointment ID is required")

        records = self._records()
        index, current = self._locate(records, wanted)

        changes: Dict[str, str] = {}
        for name, value in {"time": time, "date": date, **other_fields}.items():
            value = clean_value(value)
            # Fields the layout has no column for are not stored
            if value and self.schema.has(name):
                changes[name] = value
        updated = current.model_copy(update=changes)

        if self._slot_key(updated) != self._slot_key(current):
            self._check_slot(records, updated, "New appointment slot already taken", exclude_id=wanted)

        self.store.update_row(self.booking_sheet, index, RowStore.record_to_row(self.schema, updated))
        logger.info(f"Appointment {updated.appointment_id} updated: {sorted(changes)}")

        statuses = []
        if (current.date, current.time) != (updated.date, updated.time):
            statuses.append(self._clear_calendar(current))
        statuses.append(self._mark_calendar(updated))
        return BookingResult(appointment=updated, calendar=_combine(statuses))

    @_store_operation("cancel appointment")
    def cancel(self, appointment_id: str) -> BookingResult:
        wanted = normalize_id(appointment_id)
        if not wanted:
            raise ValidationError("Appointment ID is required")

        # Resolve the index from a fresh read; any earlier write may have shifted rows
        index, current = self._locate(self._records(), wanted)
        self.store.delete_row(self.booking_sheet, index)
        logger.info(f"Appointment {current.appointment_id} cancelled")

        return BookingResult(appointment=current, calendar=self._clear_calendar(current))

    @_store_operation("fetch appointment")
    def fetch_by_id(self, appointment_id: str) -> Optional[Appointment]:
        wanted = normalize_id(appointment_id)
        if not wanted:
            return None
        try:
            return self._locate(self._records(), wanted)[1]
        except NotFound:
            return None

    @_store_operation("list appointments")
    def list_all(self) -> List[Appointment]:
        return [record for record in self._records() if record.appointment_id]

    # Clinics and doctors

    @_store_operation("list clinics")
    def list_clinics(self) -> List[str]:
        rows = self.store.read_table(self.clinics_sheet)
        return _unique([row.get("Clinic Location", "") for row in rows])

    @_store_operation("list doctors")
    def list_doctors(self, location: Optional[str] = None) -> List[str]:
        rows = self.store.read_table(self.doctors_sheet)
        if location:
            location = location.strip()
            rows = [row for row in rows if row.get("Location", "") == location]
        return _unique([row.get("Doctor Name", "") for row in rows])

    @_store_operation("doctor schedule")
    def doctor_schedule(self, doctor: str) -> List[Dict[str, Any]]:
        doctor = clean_value(doctor)
        rows = self.store.read_table(self.doctors_sheet, unformatted=True)
        return [row for row in rows if row.get("Doctor Name", "") == doctor]

    # Calendar

    @_store_operation("slot availability")
    def slot_available(self, date: str, time: str) -> bool:
        try:
            day, _, _ = parse_date(clean_value(date))
        except CalendarCellUnresolved as e:
            raise ValidationError(e.message) from e
        return self.calendar.is_available(month_sheet_for(clean_value(date)), day, clean_value(time))

    @_store_operation("month summary")
    def month_summary(self, year: int, month: int) -> Dict[str, Dict[str, int]]:
        return self.calendar.month_summary(f"{month_name[month]} {year % 100:02d}")


def _combine(statuses: Sequence[CalendarStatus]) -> CalendarStatus:
    if "failed" in statuses:
        return "failed"
    if all(status == "skipped" for status in statuses):
        return "skipped"
    return "ok"
