"""Dependency Injection Container."""

from injector import Injector, Module, provider, singleton

from .config import Settings, get_settings
from ..monitoring.metrics import RelayMetrics
from ..relay.sessions import SessionRegistry


class CoreModule(Module):
    """Core dependencies."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings

    @singleton
    @provider
    def provide_settings(self) -> Settings:
        """Provide settings (explicit or from environment)."""
        return self.settings or get_settings()

    @singleton
    @provider
    def provide_session_registry(self) -> SessionRegistry:
        """Provide relay session registry singleton."""
        return SessionRegistry()

    @singleton
    @provider
    def provide_relay_metrics(self) -> RelayMetrics:
        """Provide relay metrics with a private registry."""
        return RelayMetrics()


def create_container(settings: Settings | None = None) -> Injector:
    """Create configured injector."""
    return Injector([CoreModule(settings)])
