import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from availability import availability_prompt, format_availability, sort_by_proximity
from booking import BookingService
from calendar_grid import CalendarGrid
from config import settings
from database import RowStore, workbook
from errors import BookingError, NotFound, SlotTaken, StoreFailure, ValidationError
from schemas import AppointmentCreate, AppointmentUpdate, BookingResult, get_booking_schema

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Clinic Booking Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

def get_booking_service() -> BookingService:
    if workbook is None:
        raise StoreFailure("Spreadsheet backend not configured")
    return BookingService(
        RowStore(workbook),
        CalendarGrid(workbook),
        get_booking_schema(settings.BOOKING_SCHEMA),
        booking_sheet=settings.BOOKING_SHEET,
        doctors_sheet=settings.DOCTORS_SHEET,
        clinics_sheet=settings.CLINICS_SHEET,
        key_includes_date=settings.SLOT_KEY_INCLUDES_DATE,
    )


# Error handling

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "status": "error"})


@app.exception_handler(BookingError)
def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed unexpectedly")
    return error_response(500, "Internal server error")


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        loc = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{loc}: {errors[0].get('msg')}" if loc else errors[0].get("msg")
    else:
        message = "Invalid request"
    return error_response(400, message)


# Routes

@app.get("/")
def read_root():
    return {"message": "Clinic Booking Backend Running"}


@app.get("/clinics")
def get_clinics(service: BookingService = Depends(get_booking_service)):
    return {"clinics": service.list_clinics()}


@app.get("/doctors")
def get_doctors(
    location: Optional[str] = None,
    service: BookingService = Depends(get_booking_service),
):
    return {"doctors": service.list_doctors(location)}


@app.get("/doctors/{name}/availability")
def get_doctor_availability(
    name: str,
    sort: Optional[str] = Query(None, pattern="^proximity$"),
    service: BookingService = Depends(get_booking_service),
):
    raw = service.doctor_schedule(name)
    if sort == "proximity":
        raw = sort_by_proximity(raw)
    return {"availability": format_availability(raw)}


@app.get("/calendar-availability")
def calendar_availability(
    date_str: str = Query(..., alias="date"),
    time: str = Query(...),
    service: BookingService = Depends(get_booking_service),
):
    return {"date": date_str, "time": time, "available": service.slot_available(date_str, time)}


@app.get("/calendar-availability/month")
def calendar_month_availability(
    year: int = Query(..., ge=1970, le=2100),
    month: int = Query(..., ge=1, le=12),
    service: BookingService = Depends(get_booking_service),
):
    return {"year": year, "month": month, "days": service.month_summary(year, month)}


@app.get("/appointments")
def list_appointments(service: BookingService = Depends(get_booking_service)):
    return {"appointments": service.list_all()}


@app.post("/appointments", response_model=BookingResult)
def create_appointment(
    payload: AppointmentCreate,
    service: BookingService = Depends(get_booking_service),
):
    return service.create(**payload.model_dump())


@app.get("/appointments/{appointment_id}")
def get_appointment(appointment_id: str, service: BookingService = Depends(get_booking_service)):
    appointment = service.fetch_by_id(appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    return {"appointment": appointment}


@app.put("/appointments/{appointment_id}", response_model=BookingResult)
@app.patch("/appointments/{appointment_id}", response_model=BookingResult)
def reschedule_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    service: BookingService = Depends(get_booking_service),
):
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("No fields to update")
    return service.reschedule(appointment_id, **changes)


@app.delete("/appointments/{appointment_id}")
def cancel_appointment(appointment_id: str, service: BookingService = Depends(get_booking_service)):
    result = service.cancel(appointment_id)
    return {"message": "Appointment cancelled successfully", "calendar": result.calendar}


# Chat task router

def _bullets(values) -> str:
    return "\n".join(f"- {value}" for value in values)


def run_task(task: Optional[str], params: Dict[str, Any], service: BookingService) -> Dict[str, Any]:
    """Answer one chat-flow task with the {"message": ...} envelope."""
    if task == "get_clinics":
        message = {
            "cities": f"Please select your preferred clinic location. \n\n{_bullets(service.list_clinics())}"
        }
    elif task == "get_doctors_by_location":
        location = (params.get("clinic_location") or "").strip()
        if not location:
            raise ValidationError("clinic_location is required")
        doctors = service.list_doctors(location)
        if not doctors:
            message = {"doctor_found": "not_found"}
        else:
            message = {"doctor_found": "found", "doctors": f"Please select doctor. \n\n{_bullets(doctors)}"}
    elif task == "get_doctors_availabilities":
        doctor = (params.get("doctor") or "").strip()
        if not doctor:
            raise ValidationError("doctor is required")
        message = {"availabilities": availability_prompt(service.doctor_schedule(doctor), date.today())}
    elif task == "appointment_save":
        try:
            result = service.create(
                doctor=params.get("doctor"),
                clinic_location=params.get("clinic_location"),
                patient_name=params.get("patient_name"),
                contact_number=params.get("contact_number"),
                visit_reason=params.get("visit_reason"),
                time=params.get("appointment_time") or params.get("time"),
                date=params.get("date"),
            )
            message = {"appointment_id": result.appointment.appointment_id}
        except SlotTaken:
            message = {"error": "already_exists"}
    elif task == "appointment_reschedule":
        try:
            service.reschedule(
                params.get("appointment_id") or "",
                time=params.get("appointment_time") or params.get("time"),
                date=params.get("date"),
            )
            message = {}
        except NotFound:
            message = {"error": "not found"}
        except SlotTaken:
            message = {"error": "already_exists"}
    elif task == "appointment_cancel":
        try:
            service.cancel(params.get("appointment_id") or "")
            message = {}
        except NotFound:
            message = {"error": "not found"}
    elif task == "appointment_fetch":
        appointment = service.fetch_by_id(params.get("appointment_id") or "")
        if appointment is None:
            message = {"error": "not found"}
        else:
            message = {
                "appointment_id": appointment.appointment_id,
                "doctor": appointment.doctor,
                "clinic_location": appointment.clinic_location,
                "patient_name": appointment.patient_name,
                "contact_number": appointment.contact_number,
                "visit_reason": appointment.visit_reason,
                "appointment_time": appointment.time,
                "date": appointment.date,
            }
    else:
        raise ValidationError("Invalid task")
    return {"message": message}


@app.get("/api/appointment")
def appointment_task(request: Request, service: BookingService = Depends(get_booking_service)):
    params = dict(request.query_params)
    return run_task(params.pop("task", None), params, service)


@app.post("/api/appointment")
def appointment_task_post(
    request: Request,
    body: Optional[Dict[str, Any]] = Body(None),
    service: BookingService = Depends(get_booking_service),
):
    params = dict(request.query_params)
    params.update(body or {})
    return run_task(params.pop("task", None), params, service)


@app.get("/test")
def test_backend():
    """Check whether the spreadsheet backend is configured and reachable"""
    response = {
        "backend": "✅ Running",
        "spreadsheet": "❌ Not Configured",
        "backend_type": settings.SHEETS_BACKEND,
        "sheets": [],
    }

    if workbook is not None:
        try:
            response["sheets"] = workbook.sheet_titles()[:20]
            response["spreadsheet"] = "✅ Connected & Working"
        except StoreFailure as e:
            response["spreadsheet"] = f"⚠️  Configured but Error: {e.message[:50]}"

    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
