"""Tests for the relay HTTP client and its circuit breaker."""

from unittest.mock import patch

import httpx
import pybreaker
import pytest
import respx

from plugview.clients.relay import RelayClient, SessionInfo
from plugview.core.config import get_settings

BASE = "http://relay.test"


@pytest.fixture
def client():
    with RelayClient(BASE) as relay_client:
        yield relay_client


def test_client_initialization():
    """Test RelayClient can be initialized"""
    client = RelayClient("http://localhost:3000/")
    assert client.base_url == "http://localhost:3000"
    assert client.timeout == 5.0
    client.close()


@pytest.mark.unit
class TestSessionLookup:
    """Test GET /sessions/{plugin_id}."""

    @respx.mock
    def test_session_found(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(
            return_value=httpx.Response(
                200, json={"plugin_id": "p1", "plugin_connected": True, "host_connected": False}
            )
        )
        assert client.session("p1") == SessionInfo("p1", True, False)

    @respx.mock
    def test_session_missing(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(return_value=httpx.Response(404, json={"detail": "nope"}))
        assert client.session("p1") is None

    @respx.mock
    def test_client_error_raises(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(return_value=httpx.Response(400))
        with pytest.raises(httpx.HTTPStatusError):
            client.session("p1")

    @respx.mock
    def test_health(self, client):
        respx.get(f"{BASE}/health").mock(return_value=httpx.Response(200, json={"status": "healthy"}))
        assert client.health() is True

    @respx.mock
    def test_health_unreachable(self, client):
        respx.get(f"{BASE}/health").mock(side_effect=httpx.ConnectError("refused"))
        assert client.health() is False


@pytest.mark.unit
class TestRelayClientCircuitBreaker:
    """Test circuit breaker integration in RelayClient."""

    def test_client_initializes_circuit_breaker(self, client):
        """Test that client initializes with circuit breaker."""
        assert isinstance(client._breaker, pybreaker.CircuitBreaker)
        assert client._breaker.name == "relay-http"
        assert client._breaker.fail_max == 5

    def test_circuit_breaker_state_change_logging(self, client):
        """Test that circuit breaker state changes are logged."""
        listener = client._breaker.listeners[0]
        assert isinstance(listener, pybreaker.CircuitBreakerListener)

        with patch("plugview.clients.relay.logger") as mock_logger:
            listener.state_change(client._breaker, "closed", "open")

            mock_logger.warning.assert_called_once()
            assert mock_logger.warning.call_args[0][0] == "breaker_state_change"

    @respx.mock
    def test_server_errors_open_breaker(self, client):
        """Repeated 5xx answers open the breaker; lookups then return None."""
        route = respx.get(f"{BASE}/sessions/p1").mock(return_value=httpx.Response(503))

        for _ in range(client._breaker.fail_max - 1):
            with pytest.raises(httpx.HTTPStatusError):
                client.session("p1")

        assert client.session("p1") is None
        assert client._breaker.current_state == pybreaker.STATE_OPEN

        calls = route.call_count
        assert client.session("p1") is None
        assert route.call_count == calls

    @respx.mock
    def test_not_found_does_not_count_as_failure(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(return_value=httpx.Response(404))
        for _ in range(10):
            assert client.session("p1") is None
        assert client._breaker.current_state == pybreaker.STATE_CLOSED


@pytest.mark.unit
class TestWaitForPlugin:
    """Test polling for plugin readiness."""

    @respx.mock
    def test_waits_until_connected(self, client):
        route = respx.get(f"{BASE}/sessions/p1").mock(
            side_effect=[
                httpx.Response(404),
                httpx.Response(200, json={"plugin_id": "p1", "plugin_connected": False, "host_connected": False}),
                httpx.Response(200, json={"plugin_id": "p1", "plugin_connected": True, "host_connected": False}),
            ]
        )
        assert client.wait_for_plugin("p1", timeout=5.0, interval=0.0) is True
        assert route.call_count == 3

    @respx.mock
    def test_timeout(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(return_value=httpx.Response(404))
        assert client.wait_for_plugin("p1", timeout=0.0, interval=0.0) is False

    @respx.mock
    def test_transport_errors_keep_polling(self, client):
        respx.get(f"{BASE}/sessions/p1").mock(
            side_effect=[
                httpx.ConnectError("refused"),
                httpx.Response(200, json={"plugin_id": "p1", "plugin_connected": True, "host_connected": True}),
            ]
        )
        assert client.wait_for_plugin("p1", timeout=5.0, interval=0.0) is True


@pytest.mark.unit
def test_base_url_defaults_to_settings(monkeypatch):
    monkeypatch.setenv("PLUGVIEW_RELAY_HTTP_URL", "http://relay.example:4000/")
    get_settings.cache_clear()
    try:
        with RelayClient() as relay_client:
            assert relay_client.base_url == "http://relay.example:4000"
    finally:
        get_settings.cache_clear()
