"""
API tests for the incident routes.

Tests cover:
- Listing, creating, updating and deleting incidents
- Image upload on create and update
- Validation and upload failures
- Orphaned upload cleanup
"""

import json
import pytest


def create(client, headers, fields, files=None):
    return client.post("/api/incidents", data=fields, files=files, headers=headers)


class TestListIncidents:
    """Tests for GET /api/incidents"""

    def test_empty(self, test_client):
        response = test_client.get("/api/incidents")

        assert response.status_code == 200
        assert response.json() == []

    def test_latest_first(self, test_client, auth_headers):
        first = create(test_client, auth_headers, {"title": "First", "incident_type": "Wildfire"}).json()
        second = create(test_client, auth_headers, {"title": "Second", "incident_type": "Other"}).json()

        response = test_client.get("/api/incidents")

        assert [i["id"] for i in response.json()] == [second["id"], first["id"]]

    def test_omits_unset_fields(self, test_client, auth_headers):
        create(test_client, auth_headers, {"title": "Bare", "incident_type": "Other"})

        incident = test_client.get("/api/incidents").json()[0]

        assert set(incident) == {"id", "title", "incident_type", "created_at"}


class TestCreateIncident:
    """Tests for POST /api/incidents"""

    def test_create_without_image(self, test_client, auth_headers, sample_incident_fields):
        """Test a form submission with no image returns the new record."""
        response = create(test_client, auth_headers, sample_incident_fields)

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Kitchen Fire"
        assert data["incident_type"] == "Structure Fire"
        assert data["location"] == "12 Elm Street"
        assert data["id"]
        assert data["created_at"].endswith("Z")
        assert "image" not in data

    def test_create_with_json_body(self, test_client, auth_headers):
        response = test_client.post(
            "/api/incidents",
            json={"title": "Car on fire", "incident_type": "Vehicle Fire"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["incident_type"] == "Vehicle Fire"

    def test_create_with_image(self, test_client, auth_headers, sample_incident_fields, png_bytes, settings):
        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("kitchen.png", png_bytes, "image/png")},
        )

        assert response.status_code == 201
        image = response.json()["image"]
        assert image.startswith("/uploads/kitchen-")
        assert image.endswith(".png")
        stored = settings.upload_dir / image.rsplit("/", 1)[-1]
        assert stored.read_bytes() == png_bytes

    def test_uploaded_image_is_served(self, test_client, auth_headers, sample_incident_fields, png_bytes):
        image = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("kitchen.png", png_bytes, "image/png")},
        ).json()["image"]

        response = test_client.get(image)

        assert response.status_code == 200
        assert response.content == png_bytes

    def test_empty_file_part_is_ignored(self, test_client, auth_headers, sample_incident_fields):
        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("", b"", "application/octet-stream")},
        )

        assert response.status_code == 201
        assert "image" not in response.json()

    def test_empty_body_is_rejected(self, test_client, auth_headers):
        """Test that an empty submission lists both missing fields."""
        response = test_client.post("/api/incidents", headers=auth_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        fields = {d["field"] for d in body["details"]}
        assert fields == {"title", "incident_type"}

    def test_malformed_json(self, test_client, auth_headers):
        response = test_client.post(
            "/api/incidents",
            content=b"{oops",
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == [{"field": "body", "message": "Malformed JSON"}]

    def test_unauthorized_creates_nothing(self, test_client, sample_incident_fields, data_file):
        response = create(test_client, {}, sample_incident_fields)

        assert response.status_code == 401
        assert test_client.get("/api/incidents").json() == []
        assert not data_file.exists()

    def test_disallowed_extension(self, test_client, auth_headers, sample_incident_fields, settings):
        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Upload failed"
        assert test_client.get("/api/incidents").json() == []
        assert not any(settings.upload_dir.iterdir())

    def test_mime_mismatch(self, test_client, auth_headers, sample_incident_fields, png_bytes):
        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("kitchen.png", png_bytes, "image/jpeg")},
        )

        assert response.status_code == 400
        assert "does not match" in response.json()["message"]

    def test_file_too_large(self, test_client, auth_headers, sample_incident_fields, settings):
        big = b"\x00" * (settings.max_file_size + 1)

        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("huge.png", big, "image/png")},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "File too large"
        assert not any(settings.upload_dir.iterdir())

    def test_too_many_files(self, test_client, auth_headers, sample_incident_fields, png_bytes):
        files = [("image", (f"f{n}.png", png_bytes, "image/png")) for n in range(6)]

        response = create(test_client, auth_headers, sample_incident_fields, files=files)

        assert response.status_code == 413
        assert response.json()["error"] == "Too many files"

    def test_unexpected_file_field(self, test_client, auth_headers, sample_incident_fields, png_bytes):
        response = create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"photo": ("kitchen.png", png_bytes, "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Unexpected file field"

    def test_invalid_fields_discard_upload(self, test_client, auth_headers, png_bytes, settings):
        """Test that an image stored before a validation failure is removed."""
        response = create(
            test_client,
            auth_headers,
            {"title": "", "incident_type": "Other"},
            files={"image": ("kitchen.png", png_bytes, "image/png")},
        )

        assert response.status_code == 400
        assert not any(settings.upload_dir.iterdir())


class TestUpdateIncident:
    """Tests for PUT /api/incidents/{id}"""

    @pytest.fixture
    def with_image(self, test_client, auth_headers, sample_incident_fields, png_bytes):
        return create(
            test_client,
            auth_headers,
            sample_incident_fields,
            files={"image": ("kitchen.png", png_bytes, "image/png")},
        ).json()

    def test_update_keeps_identity_and_image(self, test_client, auth_headers, with_image):
        response = test_client.put(
            f"/api/incidents/{with_image['id']}",
            data={"title": "Kitchen Fire (contained)", "incident_type": "Structure Fire"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == with_image["id"]
        assert data["created_at"] == with_image["created_at"]
        assert data["image"] == with_image["image"]
        assert data["title"] == "Kitchen Fire (contained)"

    def test_update_replaces_image(self, test_client, auth_headers, with_image, png_bytes):
        response = test_client.put(
            f"/api/incidents/{with_image['id']}",
            data={"title": "New photo", "incident_type": "Structure Fire"},
            files={"image": ("after.gif", png_bytes, "image/gif")},
            headers=auth_headers,
        )

        assert response.status_code == 200
        image = response.json()["image"]
        assert image != with_image["image"]
        assert image.startswith("/uploads/after-")

    def test_update_is_persisted(self, test_client, auth_headers, with_image, data_file):
        test_client.put(
            f"/api/incidents/{with_image['id']}",
            json={"title": "Persisted", "incident_type": "Other"},
            headers=auth_headers,
        )

        on_disk = json.loads(data_file.read_text())
        assert on_disk[0]["title"] == "Persisted"
        assert on_disk[0]["incident_type"] == "Other"

    def test_update_unknown_id(self, test_client, auth_headers, png_bytes, settings):
        response = test_client.put(
            "/api/incidents/does-not-exist",
            data={"title": "Ghost", "incident_type": "Other"},
            files={"image": ("ghost.png", png_bytes, "image/png")},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Incident not found"}
        assert not any(settings.upload_dir.iterdir())

    def test_update_validation(self, test_client, auth_headers, with_image):
        response = test_client.put(
            f"/api/incidents/{with_image['id']}",
            data={"title": "x" * 256, "incident_type": "Other"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == [{"field": "title", "message": "Title too long"}]

    def test_update_null_description_keeps_stored_value(
        self, test_client, auth_headers, with_image
    ):
        response = test_client.put(
            f"/api/incidents/{with_image['id']}",
            json={"title": "A", "incident_type": "Other", "description": None},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == [
            {"field": "description", "message": "Description must be a string"}
        ]
        stored = test_client.get("/api/incidents").json()[0]
        assert stored["description"] == with_image["description"]
        assert stored["title"] == with_image["title"]

    def test_update_requires_token(self, test_client, with_image):
        response = test_client.put(
            f"/api/incidents/{with_image['id']}",
            data={"title": "Sneaky", "incident_type": "Other"},
        )

        assert response.status_code == 401
        assert test_client.get("/api/incidents").json()[0]["title"] == "Kitchen Fire"


class TestDeleteIncident:
    """Tests for DELETE /api/incidents/{id}"""

    def test_delete(self, test_client, auth_headers, sample_incident_fields):
        incident = create(test_client, auth_headers, sample_incident_fields).json()

        response = test_client.delete(f"/api/incidents/{incident['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "Incident deleted successfully"}
        assert test_client.get("/api/incidents").json() == []

    def test_delete_unknown_id(self, test_client, auth_headers):
        response = test_client.delete("/api/incidents/does-not-exist", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Incident not found"

    def test_delete_twice(self, test_client, auth_headers, sample_incident_fields):
        incident = create(test_client, auth_headers, sample_incident_fields).json()
        url = f"/api/incidents/{incident['id']}"

        assert test_client.delete(url, headers=auth_headers).status_code == 200
        assert test_client.delete(url, headers=auth_headers).status_code == 404
