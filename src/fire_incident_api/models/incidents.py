from pydantic import BaseModel, Field, ValidationError
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from enum import Enum

from ..core.errors import ValidationFailedError


class IncidentType(str, Enum):
    """Closed set of incident categories accepted by the API"""
    STRUCTURE_FIRE = "Structure Fire"
    VEHICLE_FIRE = "Vehicle Fire"
    WILDFIRE = "Wildfire"
    ELECTRICAL_FIRE = "Electrical Fire"
    CHEMICAL_FIRE = "Chemical Fire"
    OTHER = "Other"


INCIDENT_TYPES = [incident_type.value for incident_type in IncidentType]


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IncidentPayload(BaseModel):
    """Client-supplied fields for creating or updating an incident."""
    title: str = Field(min_length=1, max_length=255)
    # Omitted is fine, an explicit null is not
    description: str = None
    incident_type: IncidentType
    location: str = None


class Incident(BaseModel):
    """
    A persisted incident record.

    Field constraints live on IncidentPayload; the record itself only
    describes the stored shape.
    """
    id: str
    title: str
    description: Optional[str] = None
    incident_type: str
    location: Optional[str] = None
    image: Optional[str] = None
    created_at: str = Field(default_factory=utc_timestamp)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class DeleteIncidentResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str


_FIELD_MESSAGES = {
    ("title", "missing"): "Title is required",
    ("title", "string_too_short"): "Title is required",
    ("title", "string_too_long"): "Title too long",
    ("description", "string_type"): "Description must be a string",
    ("location", "string_type"): "Location must be a string",
}


def _describe_error(error: Dict[str, Any]) -> Dict[str, str]:
    field = ".".join(str(part) for part in error.get("loc", ())) or "body"
    if field == "incident_type":
        message = "Invalid incident type"
    else:
        message = _FIELD_MESSAGES.get((field, error["type"]), error["msg"])
    return {"field": field, "message": message}


def validate_incident_payload(data: Dict[str, Any]) -> IncidentPayload:
    """
    Validate raw submitted fields against the incident shape.

    Raises:
        ValidationFailedError: with one entry per failing field
    """
    try:
        return IncidentPayload.model_validate(data)
    except ValidationError as e:
        details: List[Dict[str, str]] = [_describe_error(err) for err in e.errors()]
        raise ValidationFailedError(details=details) from e
