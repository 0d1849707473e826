"""Tests for the relay session registry."""

import pytest

from plugview.relay.sessions import SessionRegistry, normalize_frame


class Conn:
    """Stand-in connection object."""

    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"Conn({self.name})"


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.mark.unit
class TestNormalizeFrame:
    """Test frame normalization."""

    def test_appends_newline(self):
        assert normalize_frame("hello") == "hello\n"

    def test_keeps_existing_newline(self):
        assert normalize_frame("hello\n") == "hello\n"

    def test_decodes_bytes(self):
        assert normalize_frame(b'{"id":"x"}') == '{"id":"x"}\n'


@pytest.mark.unit
class TestAttach:
    """Test plugin and host attach policy."""

    @pytest.mark.asyncio
    async def test_host_rejected_without_plugin(self, sessions):
        attach = await sessions.attach_host("p1", Conn("host"))
        assert not attach.accepted
        assert "p1" not in sessions
        assert sessions.stats()["hosts_rejected"] == 1

    @pytest.mark.asyncio
    async def test_host_accepted_with_plugin(self, sessions):
        plugin, host = Conn("plugin"), Conn("host")
        assert await sessions.attach_plugin("p1", plugin) is None

        attach = await sessions.attach_host("p1", host)

        assert attach.accepted
        assert attach.displaced is None
        assert sessions.peer_of("p1", "plugin") is host
        assert sessions.peer_of("p1", "host") is plugin

    @pytest.mark.asyncio
    async def test_newer_host_displaces_current(self, sessions):
        """Replace-and-close: the newer host wins and the old one is returned."""
        old, new = Conn("old"), Conn("new")
        await sessions.attach_plugin("p1", Conn("plugin"))
        await sessions.attach_host("p1", old)

        attach = await sessions.attach_host("p1", new)

        assert attach.accepted
        assert attach.displaced is old
        assert sessions.get("p1").host is new
        assert sessions.stats()["hosts_replaced"] == 1

    @pytest.mark.asyncio
    async def test_plugin_reconnect_returns_previous(self, sessions):
        first, second = Conn("first"), Conn("second")
        await sessions.attach_plugin("p1", first)
        assert await sessions.attach_plugin("p1", second) is first
        assert sessions.get("p1").plugin is second


@pytest.mark.unit
class TestDetach:
    """Test independent side lifecycles."""

    @pytest.mark.asyncio
    async def test_host_leaving_keeps_plugin(self, sessions):
        plugin, host = Conn("plugin"), Conn("host")
        await sessions.attach_plugin("p1", plugin)
        await sessions.attach_host("p1", host)

        assert await sessions.detach_host("p1", host)

        session = sessions.get("p1")
        assert session.plugin is plugin
        assert session.host is None
        assert sessions.peer_of("p1", "plugin") is None

    @pytest.mark.asyncio
    async def test_plugin_leaving_keeps_host(self, sessions):
        plugin, host = Conn("plugin"), Conn("host")
        await sessions.attach_plugin("p1", plugin)
        await sessions.attach_host("p1", host)

        await sessions.detach_plugin("p1", plugin)

        assert sessions.get("p1").host is host
        assert sessions.peer_of("p1", "host") is None

    @pytest.mark.asyncio
    async def test_session_dropped_when_empty(self, sessions):
        plugin, host = Conn("plugin"), Conn("host")
        await sessions.attach_plugin("p1", plugin)
        await sessions.attach_host("p1", host)

        await sessions.detach_plugin("p1", plugin)
        await sessions.detach_host("p1", host)

        assert "p1" not in sessions
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_stale_detach_is_ignored(self, sessions):
        """A replaced connection cannot clear its successor's slot."""
        old, new = Conn("old"), Conn("new")
        await sessions.attach_plugin("p1", Conn("plugin"))
        await sessions.attach_host("p1", old)
        await sessions.attach_host("p1", new)

        assert not await sessions.detach_host("p1", old)
        assert sessions.get("p1").host is new

    @pytest.mark.asyncio
    async def test_detach_unknown_session(self, sessions):
        assert not await sessions.detach_plugin("ghost", Conn("x"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_and_stats(sessions):
    await sessions.attach_plugin("p1", Conn("a"))
    await sessions.attach_plugin("p2", Conn("b"))
    await sessions.attach_host("p2", Conn("c"))

    listed = {s.plugin_id: s.to_dict() for s in sessions.list_sessions()}
    assert listed["p1"]["host_connected"] is False
    assert listed["p2"]["host_connected"] is True
    assert listed["p2"]["plugin_connected_at"] is not None

    stats = sessions.stats()
    assert stats["active_sessions"] == 2
    assert stats["plugins_connected"] == 2
    assert stats["hosts_connected"] == 1
