"""Fire Incident API client for making HTTP requests."""

import httpx
import mimetypes
from pathlib import Path
from typing import Optional, List, Dict, Any


class IncidentClientError(Exception):
    """Base exception for incident client errors."""
    pass


class ApiConnectionError(IncidentClientError):
    """Raised when the API cannot be reached or does not answer in time."""
    pass


class ApiError(IncidentClientError):
    """
    Error response returned by the API.

    Categorizes the failure so callers can react to rate limits, auth
    problems and upload rejections without inspecting status codes.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.status_code = status_code
        self.error = error or "Unknown error"
        self.message = message
        self.retry_after = retry_after
        self.details = details or []
        super().__init__(message or self.error or f"HTTP {status_code}")

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429

    @property
    def is_auth(self) -> bool:
        return self.status_code in (401, 403) and not self.is_cors

    @property
    def is_cors(self) -> bool:
        return self.status_code == 403 and "CORS" in self.error

    @property
    def is_upload(self) -> bool:
        lowered = self.error.lower()
        return self.status_code == 413 or "upload" in lowered or "file" in lowered

    @property
    def is_validation(self) -> bool:
        return self.status_code == 400 and bool(self.details)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {
                "error": "Network Error",
                "message": f"HTTP {response.status_code}: {response.reason_phrase}",
            }

        retry_after = data.get("retryAfter")
        header_value = response.headers.get("retry-after")
        if header_value and header_value.isdigit():
            retry_after = int(header_value)

        return cls(
            status_code=response.status_code,
            error=data.get("error", "Unknown error"),
            message=data.get("message"),
            retry_after=retry_after,
            details=data.get("details"),
        )

    def user_friendly_message(self) -> str:
        """Short explanation suitable for showing to an end user."""
        if self.is_rate_limit:
            if "authentication" in self.error.lower():
                minutes = -(-self.retry_after // 60) if self.retry_after else 10
                return (
                    f"Too many login attempts. Please wait {minutes} minutes "
                    "before trying again."
                )
            return (
                f"You're making requests too quickly. Please wait "
                f"{self.retry_after or 60} seconds and try again."
            )

        if self.is_cors:
            return "This client's origin is not allowed by the server."

        if self.is_auth:
            if self.status_code == 401:
                return "Authentication failed. Please check your API token and try again."
            return "You don't have permission to perform this action."

        if self.is_upload:
            if self.status_code == 413:
                if "many" in self.error.lower():
                    return self.message or "Too many files in one request."
                return (
                    "The file you're trying to upload is too large. "
                    "Please choose a smaller file."
                )
            return self.message or "The file could not be uploaded."

        if self.is_validation:
            problems = "; ".join(
                f"{d.get('field', '?')}: {d.get('message', 'invalid')}"
                for d in self.details
            )
            return f"Please check your input. {problems}"

        if self.is_not_found:
            return "The requested incident was not found. It may have been deleted."

        if self.status_code >= 500:
            return "The server encountered an error. Please try again later."

        return self.message or self.error


class IncidentClient:
    """Client for interacting with the Fire Incident API."""

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize the incident client.

        Args:
            base_url: Base URL of the incident API
            api_token: Bearer token sent with mutating requests
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _auth_headers(self) -> Dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            raise ApiConnectionError(f"Failed to connect to API at {self.base_url}: {e}")
        except httpx.TimeoutException:
            raise ApiConnectionError(f"Request timed out after {self.timeout} seconds")
        except httpx.HTTPError as e:
            raise IncidentClientError(f"HTTP error: {e}")

        if response.status_code >= 400:
            raise ApiError.from_response(response)
        return response

    async def _send_incident(
        self,
        method: str,
        path: str,
        fields: Dict[str, Any],
        image_path: Optional[Path],
    ) -> Dict[str, Any]:
        data = {k: v for k, v in fields.items() if v is not None}

        if image_path is None:
            response = await self._request(
                method, path, data=data, headers=self._auth_headers()
            )
            return response.json()

        image_path = Path(image_path)
        content_type = mimetypes.guess_type(image_path.name)[0] or "application/octet-stream"
        with open(image_path, "rb") as fh:
            response = await self._request(
                method,
                path,
                data=data,
                files={"image": (image_path.name, fh, content_type)},
                headers=self._auth_headers(),
            )
        return response.json()

    async def list_incidents(self) -> List[Dict[str, Any]]:
        """
        List all incidents, newest first.

        Raises:
            ApiConnectionError: If the API cannot be reached
            ApiError: For error responses
        """
        response = await self._request("GET", "/api/incidents")
        return response.json()

    async def get_incident(self, incident_id: str) -> Dict[str, Any]:
        """
        Find one incident by ID.

        The API has no single-incident endpoint, so this scans the list.

        Raises:
            ApiError: 404 when no incident has this ID
        """
        for incident in await self.list_incidents():
            if incident.get("id") == incident_id:
                return incident
        raise ApiError(404, "Incident not found")

    async def create_incident(
        self, fields: Dict[str, Any], image_path: Optional[Path] = None
    ) -> Dict[str, Any]:
        """
        Create an incident.

        Args:
            fields: title, incident_type and optional description/location
            image_path: Optional image file to upload
        """
        return await self._send_incident("POST", "/api/incidents", fields, image_path)

    async def update_incident(
        self,
        incident_id: str,
        fields: Dict[str, Any],
        image_path: Optional[Path] = None,
    ) -> Dict[str, Any]:
        """Update an incident; the stored image is kept unless image_path is given."""
        return await self._send_incident(
            "PUT", f"/api/incidents/{incident_id}", fields, image_path
        )

    async def delete_incident(self, incident_id: str) -> Dict[str, Any]:
        response = await self._request(
            "DELETE", f"/api/incidents/{incident_id}", headers=self._auth_headers()
        )
        return response.json()

    async def health(self) -> Dict[str, Any]:
        response = await self._request("GET", "/health")
        return response.json()

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
