"""Application configuration with environment variables."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    # CORS (comma-separated)
    CORS_ORIGINS: str = "*"

    # Spreadsheet backend: "google" or "memory"
    SHEETS_BACKEND: str = "google"
    SPREADSHEET_ID: str = ""
    GOOGLE_KEY_FILE: str = "google.json"
    SHEETS_TIMEOUT: float = 15.0

    # Sheet names
    BOOKING_SHEET: str = "Patients_Booking"
    DOCTORS_SHEET: str = "Doctors-Availability"
    CLINICS_SHEET: str = "Clinic-Locations"

    # Booking table layout ("v2" has a Date column, "v1" does not)
    BOOKING_SCHEMA: str = "v2"
    # Key slot uniqueness on the date as well as doctor/location/time
    SLOT_KEY_INCLUDES_DATE: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
