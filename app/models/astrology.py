"""
Pydantic models for birth-detail and explanation requests.

Request bodies keep every field optional so that a missing field is
reported as a validation error with our own message instead of
FastAPI's default 422 payload.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.services.errors import ValidationError

Language = Literal["en", "hi"]

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
}


class OperationKind(str, Enum):
    CHART = "chart"
    DASHA = "dasha"
    YEARLY = "yearly"


# ─────────────────────────────────────────────
# Normalisation helpers
# ─────────────────────────────────────────────

def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _normalise_dob(dob: str) -> str:
    """Convert YYYY-MM-DD or DD/MM/YYYY to an ISO date."""
    dob = dob.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(dob, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    raise ValidationError(f"Cannot parse dob: {dob}")


def _normalise_time(tob: str) -> str:
    """Convert HH:MM, HH:MM:SS or 12h 'hh:mm AM' to HH:MM:SS."""
    tob = tob.strip()
    match_12h = re.match(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)$", tob, re.IGNORECASE)
    if match_12h:
        h, m, s, meridiem = match_12h.groups()
        h = int(h)
        if not 1 <= h <= 12:
            raise ValidationError(f"Cannot parse time: {tob}")
        if meridiem.upper() == "PM" and h != 12:
            h += 12
        elif meridiem.upper() == "AM" and h == 12:
            h = 0
    else:
        match_24h = re.match(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$", tob)
        if not match_24h:
            raise ValidationError(f"Cannot parse time: {tob}")
        h, m, s = match_24h.groups()
        h = int(h)

    m = int(m)
    s = int(s or 0)
    if h > 23 or m > 59 or s > 59:
        raise ValidationError(f"Cannot parse time: {tob}")
    return f"{h:02d}:{m:02d}:{s:02d}"


def _normalise_timezone(tz: Union[str, float]) -> str:
    """Convert '+05:30', '+0530', 'Z' or decimal hours (5.5) to ±HH:MM."""
    if isinstance(tz, (int, float)):
        hours = float(tz)
    else:
        raw = tz.strip()
        if raw.upper() in ("Z", "UTC"):
            return "+00:00"
        match = re.match(r"^([+-])(\d{1,2}):?(\d{2})$", raw)
        if match:
            sign, h, m = match.groups()
            if int(m) > 59:
                raise ValidationError(f"Cannot parse timezone: {raw}")
            hours = int(h) + int(m) / 60
            if sign == "-":
                hours = -hours
        elif re.match(r"^[+-]?\d{1,2}(\.\d+)?$", raw):
            hours = float(raw)
        else:
            raise ValidationError(f"Cannot parse timezone: {raw}")

    if abs(hours) > 14:
        raise ValidationError(f"Timezone offset out of range: {tz}")
    sign = "-" if hours < 0 else "+"
    total_minutes = round(abs(hours) * 60)
    return f"{sign}{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def _format_coordinate(value: float) -> str:
    return str(round(float(value), 6))


# ─────────────────────────────────────────────
# Normalised birth details
# ─────────────────────────────────────────────

class BirthDetails(BaseModel):
    """Validated birth details in the wire format of the astrology provider."""

    dob: str            # "YYYY-MM-DD"
    time: str           # "HH:MM:SS"
    timezone: str       # "+05:30"
    latitude: float
    longitude: float

    @property
    def iso_datetime(self) -> str:
        return f"{self.dob}T{self.time}{self.timezone}"

    @property
    def coordinates(self) -> str:
        return f"{_format_coordinate(self.latitude)},{_format_coordinate(self.longitude)}"

    def fingerprint_params(self) -> Dict[str, str]:
        return {"datetime": self.iso_datetime, "coordinates": self.coordinates}


# ─────────────────────────────────────────────
# Request bodies
# ─────────────────────────────────────────────

class AstrologyRequest(BaseModel):
    """Request body for /api/kundli and /api/dasha"""
    dob: Optional[str] = None
    time: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[Union[str, float]] = None

    def birth_details(self) -> BirthDetails:
        """
        Validate and normalise the birth details.

        Raises ValidationError when any field is missing or malformed.
        A latitude or longitude of exactly 0 is a real place, not a missing value.
        """
        fields = (self.dob, self.time, self.latitude, self.longitude, self.timezone)
        if any(_is_missing(value) for value in fields):
            raise ValidationError("Missing birth details")

        if not -90 <= self.latitude <= 90:
            raise ValidationError(f"Latitude out of range: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValidationError(f"Longitude out of range: {self.longitude}")

        return BirthDetails(
            dob=_normalise_dob(self.dob),
            time=_normalise_time(self.time),
            timezone=_normalise_timezone(self.timezone),
            latitude=self.latitude,
            longitude=self.longitude,
        )


class YearlyRequest(AstrologyRequest):
    """Request body for /api/yearly"""
    language: Language = "en"


class ExplanationRequest(BaseModel):
    """Request body for /api/explain/{chart,dasha,yearly}"""
    data: Any = None
    language: Language = "en"

    def validated_data(self) -> Any:
        if _is_missing(self.data):
            raise ValidationError("Missing data to explain", public_message="Missing data to explain")
        return self.data


class AccessToken(BaseModel):
    """Bearer credential issued by the astrology provider."""
    value: str
    token_type: str = "Bearer"
    expires_in: int = 3600          # seconds, as stated by the provider
    obtained_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
