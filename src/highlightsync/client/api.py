"""HTTP client for the highlight export service.

This module provides:
- ExportClient: HTTP client for the export, refresh and auth endpoints
- Response schemas validated with pydantic at the network boundary
- The API error taxonomy (transport, HTTP status, malformed payload)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from highlightsync.core.config import ServerConfig

logger = logging.getLogger(__name__)

EXPORT_TARGET = "obsidian"
CLIENT_HEADER = "Obsidian-Client"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(APIError):
    """No response received from the server."""


class AuthenticationError(APIError):
    """Invalid or missing credential."""


class NotFoundError(APIError):
    """Resource not found."""


class ConflictError(APIError):
    """Another client is already syncing."""


class ExportLockedError(APIError):
    """Export is temporarily locked by the server."""


class MalformedResponseError(APIError):
    """Response payload did not match the expected schema."""


# === Response schemas ===


class AuthTokenResponse(BaseModel):
    """Response of the token exchange endpoint."""

    userAccessToken: str | None = None


class ExportRequestResponse(BaseModel):
    """Response of the export init endpoint."""

    latest_id: int
    status: str | None = None


class ExportStatusResponse(BaseModel):
    """Response of the export status endpoint."""

    taskStatus: str
    totalBooks: int = 0
    booksExported: int = 0
    isFinished: bool = False


@dataclass
class ExportRequest:
    """Result of requesting an export.

    Attributes:
        job_id: Latest export job id known to the server.
        created: True when the server started a new job (HTTP 201),
            False when an existing export already satisfies the request.
    """

    job_id: int
    created: bool


ModelT = TypeVar("ModelT", bound=BaseModel)


class ExportClient:
    """HTTP client for the highlight export service."""

    def __init__(
        self,
        config: ServerConfig,
        token: str = "",
        client_id: str = "",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the export client.

        Args:
            config: Server connection settings.
            token: Bearer credential (may be set later via set_credentials).
            client_id: Client correlation identifier sent on every request.
            transport: Optional httpx transport (tests).
        """
        self._config = config
        self._token = token
        self._client_id = client_id
        self._client = httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def config(self) -> ServerConfig:
        """Get the server configuration."""
        return self._config

    def set_credentials(self, token: str, client_id: str) -> None:
        """Update the credential and client identifier."""
        self._token = token
        self._client_id = client_id

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ExportClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self._token}",
            CLIENT_HEADER: self._client_id,
        }

    def _request(
        self,
        method: str,
        url: str,
        authenticated: bool = True,
        **kwargs: object,
    ) -> httpx.Response:
        """Send a request and map failures to API errors."""
        headers = self._auth_headers() if authenticated else {}
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)  # type: ignore[arg-type]
        except httpx.RequestError as e:
            logger.warning("Request %s %s failed: %s", method, url, e)
            raise TransportError("Can't connect to server") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.is_success:
            return response
        status = response.status_code
        logger.warning("Bad response %s for %s", status, response.request.url)
        if status == 401:
            raise AuthenticationError("Invalid or expired token", status)
        if status == 404:
            raise NotFoundError("Resource not found", status)
        if status == 409:
            raise ConflictError("Sync in progress initiated by different client", status)
        if status == 417:
            raise ExportLockedError("Export is locked. Wait for an hour.", status)
        raise APIError(response.reason_phrase or f"HTTP {status}", status)

    @staticmethod
    def _parse(response: httpx.Response, model: type[ModelT]) -> ModelT:
        """Validate a JSON body against a schema."""
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise MalformedResponseError(
                f"Malformed {model.__name__}: {e}", response.status_code
            ) from e

    # === Authentication ===

    def fetch_auth_token(self, client_id: str) -> str | None:
        """Exchange the client identifier for an access token.

        Args:
            client_id: Identifier used when opening the auth page.

        Returns:
            Access token, or None if the user has not authorized yet.
        """
        response = self._request(
            "GET", "/api/auth", authenticated=False, params={"token": client_id}
        )
        return self._parse(response, AuthTokenResponse).userAccessToken or None

    # === Export ===

    def request_export(
        self,
        parent_deleted: bool,
        status_id: int | None = None,
        auto: bool = False,
    ) -> ExportRequest:
        """Ask the server to build an export.

        Args:
            parent_deleted: Whether the local base directory is missing.
            status_id: Optional previous export id.
            auto: Whether the request was triggered automatically.

        Returns:
            ExportRequest with the job id and whether it was newly created.
        """
        params = {"parentPageDeleted": "true" if parent_deleted else "false"}
        if status_id:
            params["statusID"] = str(status_id)
        if auto:
            params["auto"] = "true"
        response = self._request("GET", "/api/obsidian/init", params=params)
        data = self._parse(response, ExportRequestResponse)
        return ExportRequest(job_id=data.latest_id, created=response.status_code == 201)

    def get_export_status(self, job_id: int) -> ExportStatusResponse:
        """Get the status of an export job."""
        response = self._request(
            "GET", "/api/get_export_status", params={"exportStatusId": str(job_id)}
        )
        return self._parse(response, ExportStatusResponse)

    def download_artifact(self, job_id: int) -> bytes:
        """Download the archive produced by an export job."""
        response = self._request("GET", f"/api/download_artifact/{job_id}")
        return response.content

    def refresh_records(self, record_ids: list[str]) -> None:
        """Ask the server to regenerate records in the next export."""
        self._request(
            "POST",
            "/api/refresh_book_export",
            json={"exportTarget": EXPORT_TARGET, "books": list(record_ids)},
        )

    def acknowledge_sync(self) -> None:
        """Acknowledge that an export has been applied locally."""
        self._request("POST", "/api/obsidian/sync_ack")
