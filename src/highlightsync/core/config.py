"""Shared configuration classes for highlightsync.

This module defines the connection settings used by the HTTP client and
the authentication handshake.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_SERVER_URL = "https://readwise.io"
SERVER_URL_ENV = "HIGHLIGHTSYNC_SERVER_URL"


def default_server_url() -> str:
    """Get the export service URL, honoring the environment override."""
    return os.environ.get(SERVER_URL_ENV) or DEFAULT_SERVER_URL


@dataclass
class ServerConfig:
    """Configuration for connecting to the export service.

    Attributes:
        server_url: Base URL of the service (e.g., "https://readwise.io").
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        service_name: Service tag sent during the browser handshake.
    """

    server_url: str = field(default_factory=default_server_url)
    timeout: float = 30.0
    verify_ssl: bool = True
    service_name: str = "obsidian"

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    def auth_page_url(self, client_id: str) -> str:
        """Get the browser URL that starts the authorization handshake.

        Args:
            client_id: Locally generated correlation identifier.

        Returns:
            URL to open in the user's browser.
        """
        return f"{self.server_url}/api_auth?token={client_id}&service={self.service_name}"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")
