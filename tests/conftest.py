"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio

from plugview.core import get_settings
from plugview.core.config import Settings
from plugview.host import HostController, MutableTree
from plugview.plugin import HandlerRegistry, PluginRuntime, RenderContainer, h
from plugview.rpc import memory_pipe


# ============================================================================
# Pytest Hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with environment variables."""
    os.environ["PLUGVIEW_LOG_LEVEL"] = "DEBUG"
    os.environ["PLUGVIEW_RPC_TIMEOUT"] = "5"
    get_settings.cache_clear()


# ============================================================================
# Core Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Test settings."""
    return Settings(rpc_timeout=5.0, update_mode="incremental")


@pytest.fixture
def handler_registry():
    """Handler registry fixture."""
    return HandlerRegistry()


@pytest.fixture
def container():
    """Incremental render container."""
    return RenderContainer(mode="incremental")


@pytest.fixture
def full_container():
    """Full-mode render container."""
    return RenderContainer(mode="full")


@pytest.fixture
def replica():
    """Empty host-side replica."""
    return MutableTree()


# ============================================================================
# Plugin / Host Fixtures
# ============================================================================

class Counter:
    """Small stateful app: a button that increments a count."""

    def __init__(self):
        self.count = 0
        self.clicks = []

    def increment(self, *args):
        self.clicks.append(args)
        self.count += 1

    def __call__(self, props):
        title = props.get("title", "Counter")
        return h(
            "div",
            {"className": "counter"},
            h("h1", {}, title),
            h("span", {"id": "value"}, f"Count: {self.count}"),
            h("button", {"onClick": self.increment}, "+1"),
        )


@pytest.fixture
def counter_app():
    """Counter app instance."""
    return Counter()


async def _connect_pair(app, mode, settings, props=None):
    plugin_end, host_end = memory_pipe()
    runtime = PluginRuntime(app, update_mode=mode, settings=settings)
    runtime.attach(plugin_end)
    host = HostController(lambda: host_end, initial_props=props or {}, settings=settings)
    await host.connect()
    return runtime, host


@pytest_asyncio.fixture
async def incremental_pair(counter_app, settings):
    """Connected plugin runtime and host controller (incremental mode)."""
    runtime, host = await _connect_pair(counter_app, "incremental", settings, {"title": "Clicks"})
    yield runtime, host
    await host.disconnect()


@pytest_asyncio.fixture
async def full_pair(counter_app, settings):
    """Connected plugin runtime and host controller (full mode)."""
    runtime, host = await _connect_pair(counter_app, "full", settings, {"title": "Clicks"})
    yield runtime, host
    await host.disconnect()
