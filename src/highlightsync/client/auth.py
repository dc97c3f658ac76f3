"""Access token acquisition through a browser handshake.

The user authorizes this client in the browser; the page is correlated
with the agent through a locally generated client identifier. The agent
then polls the token exchange endpoint until the server issues a token.
"""

from __future__ import annotations

import logging
import secrets
import threading
import webbrowser
from collections.abc import Callable

from highlightsync.client.api import APIError, ExportClient
from highlightsync.client.settings import SettingsStore

logger = logging.getLogger(__name__)

AUTH_MAX_ATTEMPTS = 20
AUTH_POLL_INTERVAL = 1.0  # seconds


def generate_client_id() -> str:
    """Generate a random client correlation identifier."""
    return secrets.token_hex(8)


class TokenManager:
    """Obtains and persists the access credential."""

    def __init__(
        self,
        client: ExportClient,
        store: SettingsStore,
        open_browser: Callable[[str], object] = webbrowser.open,
        max_attempts: int = AUTH_MAX_ATTEMPTS,
        poll_interval: float = AUTH_POLL_INTERVAL,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the token manager.

        Args:
            client: Export service client.
            store: Settings store receiving the credential.
            open_browser: Callable opening a URL in the user's browser.
            max_attempts: Maximum number of token exchange attempts.
            poll_interval: Seconds between attempts.
            cancel_event: Event aborting the wait when set.
        """
        self._client = client
        self._store = store
        self._open_browser = open_browser
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval
        self._cancel = cancel_event or threading.Event()

    def get_client_id(self) -> str:
        """Get the client identifier, generating and persisting it once."""
        with self._store.lock:
            settings = self._store.settings
            if not settings.client_id:
                settings.client_id = generate_client_id()
                self._store.save()
                logger.debug("Generated client id %s", settings.client_id)
            return settings.client_id

    def authenticate(self) -> bool:
        """Run the browser handshake and wait for a token.

        Returns:
            True if a token was obtained and saved.
        """
        client_id = self.get_client_id()
        url = self._client.config.auth_page_url(client_id)
        logger.info("Opening authorization page: %s", url)
        self._open_browser(url)

        for attempt in range(1, self._max_attempts + 1):
            try:
                token = self._client.fetch_auth_token(client_id)
            except APIError as e:
                logger.error("Authorization failed: %s", e)
                return False

            if token:
                with self._store.lock:
                    self._store.settings.token = token
                    self._store.save()
                self._client.set_credentials(token, client_id)
                logger.info("Authorization succeeded after %d attempt(s)", attempt)
                return True

            if attempt == self._max_attempts:
                break
            logger.debug(
                "No token yet, retrying (attempt %d/%d)", attempt + 1, self._max_attempts
            )
            if self._cancel.wait(self._poll_interval):
                logger.info("Authorization cancelled")
                return False

        logger.warning("Reached attempt limit (%d) waiting for authorization", self._max_attempts)
        return False

    def logout(self) -> None:
        """Forget the stored credential."""
        with self._store.lock:
            self._store.settings.token = ""
            self._store.save()
        self._client.set_credentials("", self.get_client_id())
