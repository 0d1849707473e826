"""Relay HTTP Client"""

import time
from dataclasses import dataclass

import httpx
import pybreaker

from ..core.config import get_settings
from ..core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SessionInfo:
    """Relay session as reported by GET /sessions/{plugin_id}"""

    plugin_id: str
    plugin_connected: bool
    host_connected: bool


class RelayClient:
    """
    Client for the relay's HTTP surface with circuit breaker protection.
    Lets a host wait for its plugin before opening the host socket, avoiding
    the relay's "Plugin not ready" close.
    """

    def __init__(self, base_url: str | None = None, timeout: float = 5.0) -> None:
        """
        Initialize relay client with circuit breaker.

        Args:
            base_url: Base HTTP URL of the relay (settings.relay_http_url by default)
            timeout: Request timeout in seconds
        """
        self.base_url = (base_url or get_settings().relay_http_url).rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(timeout=timeout)

        class BreakerListener(pybreaker.CircuitBreakerListener):
            """Listener for circuit breaker state changes."""

            def state_change(self, cb, old_state, new_state):
                logger.warning(
                    "breaker_state_change",
                    breaker=cb.name,
                    from_state=str(old_state),
                    to_state=str(new_state),
                )

        self._breaker = pybreaker.CircuitBreaker(
            fail_max=5,
            reset_timeout=30,
            name="relay-http",
            listeners=[BreakerListener()],
        )

        logger.info("client_init", url=self.base_url)

    def health(self) -> bool:
        """
        Check if the relay is reachable (bypasses circuit breaker).

        Returns:
            True if relay is healthy
        """
        try:
            response = self._client.get(f"{self.base_url}/health", timeout=2.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("health_check_failed", error=str(e))
            return False

    def session(self, plugin_id: str) -> SessionInfo | None:
        """
        Look up a session with circuit breaker protection.

        Args:
            plugin_id: Plugin identifier

        Returns:
            Session info, or None if the relay has no session for this plugin
            or the breaker is open

        Raises:
            httpx.HTTPError: If the request fails
        """
        url = f"{self.base_url}/sessions/{plugin_id}"

        def _make_request() -> httpx.Response:
            response = self._client.get(url)
            # 404 is a valid answer, only server errors count as failures
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            response = self._breaker.call(_make_request)
        except pybreaker.CircuitBreakerError:
            logger.error("session_lookup_failed", error="Circuit breaker open")
            return None
        except httpx.HTTPError as e:
            logger.warning("session_lookup_http_error", plugin_id=plugin_id, error=str(e))
            raise

        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        return SessionInfo(
            plugin_id=data.get("plugin_id", plugin_id),
            plugin_connected=bool(data.get("plugin_connected", False)),
            host_connected=bool(data.get("host_connected", False)),
        )

    def wait_for_plugin(
        self, plugin_id: str, timeout: float = 10.0, interval: float = 0.25
    ) -> bool:
        """
        Poll until the plugin side of a session is connected.

        Args:
            plugin_id: Plugin identifier
            timeout: Maximum time to wait in seconds
            interval: Delay between polls in seconds

        Returns:
            True once the plugin is connected, False on timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                info = self.session(plugin_id)
            except httpx.HTTPError:
                info = None

            if info is not None and info.plugin_connected:
                logger.info("plugin_ready", plugin_id=plugin_id)
                return True

            if time.monotonic() >= deadline:
                logger.warning("plugin_wait_timeout", plugin_id=plugin_id, timeout=timeout)
                return False

            time.sleep(interval)

    def close(self) -> None:
        """Close HTTP client"""
        self._client.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
