"""
Unit tests for incident models.

Tests cover:
- IncidentType values
- Timestamp format
- Payload validation and error details
- Record serialization
"""

import pytest
from datetime import datetime

from fire_incident_api.core.errors import ValidationFailedError
from fire_incident_api.models.incidents import (
    INCIDENT_TYPES,
    Incident,
    IncidentType,
    utc_timestamp,
    validate_incident_payload,
)


class TestIncidentType:
    """Tests for IncidentType enum"""

    def test_incident_type_values(self):
        """Test the closed set of incident types"""
        assert INCIDENT_TYPES == [
            "Structure Fire",
            "Vehicle Fire",
            "Wildfire",
            "Electrical Fire",
            "Chemical Fire",
            "Other",
        ]

    def test_incident_type_invalid_value(self):
        with pytest.raises(ValueError):
            IncidentType("Grease Fire")


class TestUtcTimestamp:
    def test_format(self):
        """Test millisecond precision with a Z suffix"""
        stamp = utc_timestamp()

        assert stamp.endswith("Z")
        assert len(stamp) == len("2024-01-01T00:00:00.000Z")
        datetime.fromisoformat(stamp.replace("Z", "+00:00"))


class TestValidateIncidentPayload:
    """Tests for schema validation of submitted fields"""

    def test_valid_minimal(self):
        payload = validate_incident_payload({"title": "Brush", "incident_type": "Wildfire"})

        assert payload.title == "Brush"
        assert payload.incident_type == IncidentType.WILDFIRE
        assert payload.description is None
        assert payload.location is None

    def test_valid_full(self, sample_incident_fields):
        payload = validate_incident_payload(sample_incident_fields)

        dumped = payload.model_dump(mode="json", exclude_unset=True)
        assert dumped == sample_incident_fields

    def test_empty_body_reports_both_fields(self):
        """Test that an empty submission names title and incident_type"""
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({})

        details = exc_info.value.details
        assert {"field": "title", "message": "Title is required"} in details
        assert {"field": "incident_type", "message": "Invalid incident type"} in details
        assert exc_info.value.status_code == 400

    def test_empty_title(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({"title": "", "incident_type": "Other"})

        assert exc_info.value.details == [{"field": "title", "message": "Title is required"}]

    def test_title_length_boundary(self):
        validate_incident_payload({"title": "t" * 255, "incident_type": "Other"})

        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({"title": "t" * 256, "incident_type": "Other"})

        assert exc_info.value.details == [{"field": "title", "message": "Title too long"}]

    def test_unknown_incident_type(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({"title": "x", "incident_type": "structure fire"})

        assert exc_info.value.details == [
            {"field": "incident_type", "message": "Invalid incident type"}
        ]

    @pytest.mark.parametrize("field", ["description", "location"])
    def test_null_optional_field_rejected(self, field):
        """Test that an optional text field may be omitted but not sent as null"""
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({"title": "x", "incident_type": "Other", field: None})

        assert exc_info.value.details == [
            {"field": field, "message": f"{field.capitalize()} must be a string"}
        ]

    def test_error_body_shape(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_incident_payload({"incident_type": "Other"})

        body = exc_info.value.to_body()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["field"] == "title"


class TestIncident:
    """Tests for the stored record shape"""

    def test_default_created_at(self):
        incident = Incident(id="1", title="x", incident_type="Other")

        assert incident.created_at.endswith("Z")

    def test_to_json_omits_unset_optionals(self):
        incident = Incident(
            id="1",
            title="x",
            incident_type="Other",
            created_at="2024-05-01T10:00:00.000Z",
        )

        assert incident.to_json() == {
            "id": "1",
            "title": "x",
            "incident_type": "Other",
            "created_at": "2024-05-01T10:00:00.000Z",
        }

    def test_to_json_includes_image(self):
        incident = Incident(id="1", title="x", incident_type="Other", image="/uploads/a.png")

        assert incident.to_json()["image"] == "/uploads/a.png"
