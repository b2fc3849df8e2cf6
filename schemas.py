"""
Booking Schemas

Pydantic models for the booking sheet and the API payloads.

The booking sheet has had more than one column layout. Each layout is a
BookingSchema: an ordered list of (field, header) pairs where the field is
the canonical Appointment attribute and the header is the text in row 1 of
the sheet. Rows are written in this order.
"""

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field


class BookingSchema(BaseModel):
    version: str
    columns: List[Tuple[str, str]]

    @property
    def field_names(self) -> List[str]:
        return [field for field, _ in self.columns]

    def has(self, field: str) -> bool:
        return field in self.field_names


BOOKING_SCHEMAS: Dict[str, BookingSchema] = {
    "v1": BookingSchema(
        version="v1",
        columns=[
            ("appointment_id", "Appointment ID"),
            ("doctor", "Doctor"),
            ("clinic_location", "Clinic Location"),
            ("patient_name", "Patient Name"),
            ("contact_number", "Contact Number"),
            ("visit_reason", "Reason to Visit"),
            ("time", "Appointment Time"),
        ],
    ),
    "v2": BookingSchema(
        version="v2",
        columns=[
            ("appointment_id", "Appointment ID"),
            ("patient_name", "Patient Name"),
            ("contact_number", "Contact Number"),
            ("visit_reason", "Reason For Visit"),
            ("doctor", "Preferred Doctor"),
            ("date", "Date"),
            ("time", "Time"),
            ("clinic_location", "Location"),
        ],
    ),
}


def get_booking_schema(version: str) -> BookingSchema:
    try:
        return BOOKING_SCHEMAS[version]
    except KeyError:
        raise ValueError(f"Unknown booking schema version: {version}") from None


# Booking records

class Appointment(BaseModel):
    """
    One row of the booking sheet, in canonical field names.
    """
    appointment_id: str = Field(..., description="System-generated 10 digit id")
    doctor: str = ""
    clinic_location: str = ""
    patient_name: str = ""
    contact_number: str = ""
    visit_reason: str = ""
    date: str = Field("", description="D Month YYYY, e.g. 21 May 2025")
    time: str = Field("", description="Calendar row label, e.g. 09:00 or 9:00 AM")


class AppointmentCreate(BaseModel):
    doctor: Optional[str] = None
    clinic_location: Optional[str] = None
    patient_name: Optional[str] = None
    contact_number: Optional[str] = None
    visit_reason: Optional[str] = None
    time: Optional[str] = Field(None, validation_alias=AliasChoices("time", "appointment_time"))
    date: Optional[str] = None


class AppointmentUpdate(BaseModel):
    doctor: Optional[str] = None
    clinic_location: Optional[str] = None
    patient_name: Optional[str] = None
    contact_number: Optional[str] = None
    visit_reason: Optional[str] = None
    time: Optional[str] = Field(None, validation_alias=AliasChoices("time", "appointment_time"))
    date: Optional[str] = None


CalendarStatus = Literal["ok", "failed", "skipped"]


class BookingResult(BaseModel):
    """Outcome of a booking mutation: the row write and the calendar write."""
    status: Literal["success"] = "success"
    appointment: Appointment
    calendar: CalendarStatus = "ok"
