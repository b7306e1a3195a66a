"""
Unit tests for SwayWindowSaver.

Tests cover tree snapshots, stable window handles, state capture and the
Sway commands queued by restore and minimize.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from back_to_monitor.errors import CaptureError, ErrorCode, RestoreError
from back_to_monitor.models import WindowState
from back_to_monitor.sway_window_saver import SwayWindowSaver, WindowRegistry, is_managed_window


@pytest.fixture
def saver():
    return SwayWindowSaver()


class TestManagedWindows:
    """Test which containers count as windows."""

    def test_wayland_window(self, make_con):
        assert is_managed_window(make_con(1, 0, 0, app_id="foot"))

    def test_xwayland_window(self, make_con):
        assert is_managed_window(make_con(1, 0, 0, app_id=None, window=0x400001))

    def test_split_container(self, make_con):
        parent = make_con(1, 0, 0, nodes=[make_con(2, 0, 0)])
        assert not is_managed_window(parent)

    def test_workspace(self, make_con):
        assert not is_managed_window(make_con(1, 0, 0, con_type="workspace"))


class TestRefresh:
    """Test tree snapshots."""

    @pytest.mark.asyncio
    async def test_handles_are_stable_across_refreshes(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [make_con(10, 0, 0)]
        await saver.refresh(mock_sway_connection)
        first = saver.list_windows()[0]

        mock_sway_connection.containers = [make_con(10, 50, 50)]
        await saver.refresh(mock_sway_connection)

        assert saver.list_windows()[0] is first
        assert first.snapshot.x == 50

    @pytest.mark.asyncio
    async def test_vanished_windows_are_not_listed(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [make_con(10, 0, 0), make_con(11, 0, 0)]
        await saver.refresh(mock_sway_connection)

        mock_sway_connection.containers = [make_con(10, 0, 0)]
        await saver.refresh(mock_sway_connection)

        assert [w.con_id for w in saver.list_windows()] == [10]

    @pytest.mark.asyncio
    async def test_vanished_windows_are_forgotten(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [make_con(10, 0, 0)]
        await saver.refresh(mock_sway_connection)
        first = saver.registry.get(10)

        vanished = []
        for con_id in (11, 12, 13, 14):
            mock_sway_connection.containers = [make_con(con_id, 0, 0)]
            vanished.extend(await saver.refresh(mock_sway_connection))

        assert len(saver.registry) == 1
        assert [w.con_id for w in vanished] == [10, 11, 12, 13]
        assert vanished[0] is first
        assert first.snapshot is None

    @pytest.mark.asyncio
    async def test_scratchpad_windows_are_minimized(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [make_con(10, 0, 0, workspace="__i3_scratch", floating=True)]
        await saver.refresh(mock_sway_connection)

        window = saver.list_windows()[0]
        assert window.snapshot.minimized is True
        assert window.snapshot.workspace is None
        assert saver.allows_move(window) is False
        assert saver.allows_minimize(window) is False


class TestCapture:
    """Test geometry queries and save."""

    @pytest.mark.asyncio
    async def test_save(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [
            make_con(10, 2020, 50, width=800, height=600, workspace="3", floating=True, name="notes")
        ]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        state = saver.save(window)

        assert state == WindowState(
            x=2020, y=50, width=800, height=600, floating=True,
            fullscreen=False, minimized=False, workspace="3",
        )
        assert saver.describe(window) == "notes"

    @pytest.mark.asyncio
    async def test_is_inside(self, saver, mock_sway_connection, make_con, left_monitor, right_monitor):
        mock_sway_connection.containers = [make_con(10, 2020, 50)]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        assert saver.is_inside(window, right_monitor)
        assert not saver.is_inside(window, left_monitor)

    def test_save_vanished_window(self, saver):
        window = saver.registry.get_or_create(99)

        with pytest.raises(CaptureError) as exc_info:
            saver.save(window)

        assert exc_info.value.code == ErrorCode.WINDOW_NOT_FOUND


class TestRestore:
    """Test commands queued by restore."""

    @pytest.mark.asyncio
    async def test_floating_window(self, saver, mock_sway_connection, make_con, right_monitor):
        mock_sway_connection.containers = [make_con(10, 0, 0, floating=True)]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        saver.restore(window, WindowState(x=2020, y=50, width=800, height=600, floating=True), right_monitor)

        assert [c.to_sway_command() for c in saver.pending_commands] == [
            "[con_id=10] resize set 800 px 600 px",
            "[con_id=10] move absolute position 2020 px 50 px",
        ]

    @pytest.mark.asyncio
    async def test_minimized_tiled_window(self, saver, mock_sway_connection, make_con, right_monitor):
        mock_sway_connection.containers = [make_con(10, 0, 0, workspace="__i3_scratch", floating=True)]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        state = WindowState(x=1920, y=0, width=1920, height=1080, workspace="2", fullscreen=True)
        saver.restore(window, state, right_monitor)

        assert [c.to_sway_command() for c in saver.pending_commands] == [
            "[con_id=10] scratchpad show",
            "[con_id=10] floating disable",
            '[con_id=10] move container to workspace "2"',
            "[con_id=10] fullscreen enable",
        ]

    @pytest.mark.asyncio
    async def test_minimized_floating_window_returns_to_its_workspace(
        self, saver, mock_sway_connection, make_con, right_monitor
    ):
        mock_sway_connection.containers = [make_con(10, 0, 0, workspace="__i3_scratch", floating=True)]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        state = WindowState(x=2020, y=50, width=800, height=600, floating=True, workspace="2")
        saver.restore(window, state, right_monitor)

        assert [c.to_sway_command() for c in saver.pending_commands] == [
            "[con_id=10] scratchpad show",
            '[con_id=10] move container to workspace "2"',
            "[con_id=10] resize set 800 px 600 px",
            "[con_id=10] move absolute position 2020 px 50 px",
        ]

    @pytest.mark.asyncio
    async def test_invalid_geometry(self, saver, mock_sway_connection, make_con, right_monitor):
        mock_sway_connection.containers = [make_con(10, 0, 0)]
        await saver.refresh(mock_sway_connection)
        window = saver.list_windows()[0]

        with pytest.raises(RestoreError) as exc_info:
            saver.restore(window, WindowState(x=0, y=0, width=0, height=600), right_monitor)

        assert exc_info.value.code == ErrorCode.INVALID_GEOMETRY
        assert saver.pending_commands == []

    def test_vanished_window(self, saver, right_monitor):
        window = saver.registry.get_or_create(99)

        with pytest.raises(RestoreError):
            saver.restore(window, WindowState(x=0, y=0, width=10, height=10), right_monitor)


class TestFlush:
    """Test executing queued commands."""

    @pytest.mark.asyncio
    async def test_flush_executes_in_order(self, saver, mock_sway_connection, make_con):
        mock_sway_connection.containers = [make_con(10, 0, 0), make_con(11, 0, 0)]
        await saver.refresh(mock_sway_connection)
        first, second = saver.list_windows()

        saver.minimize(first)
        saver.minimize(second)
        succeeded = await saver.flush(mock_sway_connection)

        assert succeeded == 2
        assert mock_sway_connection.executed == [
            "[con_id=10] move scratchpad",
            "[con_id=11] move scratchpad",
        ]
        assert saver.pending_commands == []

    @pytest.mark.asyncio
    async def test_flush_continues_after_failure(self, saver):
        conn = AsyncMock()
        conn.command = AsyncMock(side_effect=[
            ConnectionError("socket closed"),
            [SimpleNamespace(success=False, error="No matching node")],
            [SimpleNamespace(success=True, error=None)],
        ])
        for con_id in (1, 2, 3):
            saver.minimize(saver.registry.get_or_create(con_id))

        succeeded = await saver.flush(conn)

        assert succeeded == 1
        assert conn.command.await_count == 3


class TestWindowRegistry:
    """Test handle issuance."""

    def test_one_handle_per_container(self):
        registry = WindowRegistry()

        assert registry.get_or_create(5) is registry.get_or_create(5)
        assert len(registry) == 1

    def test_forget(self):
        registry = WindowRegistry()
        handle = registry.get_or_create(5)

        assert registry.forget(5) is handle
        assert registry.get(5) is None
        assert registry.forget(5) is None
