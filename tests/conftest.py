"""Pytest configuration and fixtures for back-to-monitor tests."""

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add the repository root to the Python path BEFORE test collection
package_root = Path(__file__).parent.parent
if str(package_root) not in sys.path:
    sys.path.insert(0, str(package_root))

from back_to_monitor.errors import CaptureError, RestoreError  # noqa: E402
from back_to_monitor.models import MonitorRect, WindowState  # noqa: E402
from back_to_monitor.window_saver import WindowSaver  # noqa: E402


class FakeWindow:
    """Window handle with mutable geometry; identity-only equality."""

    def __init__(self, title: str, x: int, y: int, width: int = 800, height: int = 600,
                 movable: bool = True, minimizable: bool = True) -> None:
        self.title = title
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        self.movable = movable
        self.minimizable = minimizable
        self.fail_save = False
        self.fail_restore = False
        self.fail_minimize = False
        self.minimized = False

    def __repr__(self) -> str:
        return f"FakeWindow({self.title!r})"


class FakeWindowSaver(WindowSaver):
    """In-memory window saver recording restore and minimize calls."""

    def __init__(self) -> None:
        self.windows: List[FakeWindow] = []
        self.restored: List[tuple] = []
        self.minimized: List[FakeWindow] = []
        self.save_calls = 0

    def add(self, *windows: FakeWindow) -> None:
        self.windows.extend(windows)

    def list_windows(self) -> List[FakeWindow]:
        return list(self.windows)

    def describe(self, window: FakeWindow) -> str:
        return window.title

    def is_inside(self, window: FakeWindow, rect: MonitorRect) -> bool:
        return rect.contains(window.x, window.y)

    def allows_move(self, window: FakeWindow) -> bool:
        return window.movable

    def save(self, window: FakeWindow) -> WindowState:
        self.save_calls += 1
        if window.fail_save:
            raise CaptureError(window.title, "window is gone")
        return WindowState(x=window.x, y=window.y, width=window.width, height=window.height)

    def restore(self, window: FakeWindow, state: WindowState, rect: MonitorRect) -> None:
        if window.fail_restore:
            raise RestoreError(window.title, "geometry rejected")
        self.restored.append((window, state, rect))
        window.x, window.y = state.x, state.y

    def allows_minimize(self, window: FakeWindow) -> bool:
        return window.minimizable and not window.minimized

    def minimize(self, window: FakeWindow) -> None:
        if window.fail_minimize:
            raise RuntimeError("minimize refused")
        window.minimized = True
        self.minimized.append(window)


class FakeClock:
    """Manually advanced timestamp source."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def fake_window() -> Callable[..., FakeWindow]:
    """Factory for FakeWindow objects."""
    return FakeWindow


@pytest.fixture
def fake_saver() -> FakeWindowSaver:
    return FakeWindowSaver()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def left_monitor() -> MonitorRect:
    return MonitorRect(x=0, y=0, width=1920, height=1080)


@pytest.fixture
def right_monitor() -> MonitorRect:
    return MonitorRect(x=1920, y=0, width=1920, height=1080)


def _rect(x: int, y: int, width: int, height: int) -> SimpleNamespace:
    return SimpleNamespace(x=x, y=y, width=width, height=height)


@pytest.fixture
def make_output() -> Callable[..., SimpleNamespace]:
    """Factory for i3ipc-like output replies."""

    def factory(name: str, active: bool = True, x: int = 0, y: int = 0,
                width: int = 1920, height: int = 1080) -> SimpleNamespace:
        return SimpleNamespace(name=name, active=active, rect=_rect(x, y, width, height))

    return factory


class FakeCon(SimpleNamespace):
    """i3ipc-like container with workspace() lookup."""

    def workspace(self) -> Optional[SimpleNamespace]:
        return self._workspace


@pytest.fixture
def make_con() -> Callable[..., FakeCon]:
    """Factory for i3ipc-like window containers."""

    def factory(con_id: int, x: int, y: int, width: int = 800, height: int = 600,
                name: str = "", app_id: Optional[str] = "app", workspace: Optional[str] = "1",
                floating: bool = False, fullscreen: bool = False, window: Optional[int] = None,
                con_type: Optional[str] = None, nodes: Optional[list] = None) -> FakeCon:
        return FakeCon(
            id=con_id,
            name=name,
            app_id=app_id,
            window=window,
            window_class=None,
            type=con_type or ("floating_con" if floating else "con"),
            floating="user_on" if floating else "auto_off",
            fullscreen_mode=1 if fullscreen else 0,
            nodes=nodes or [],
            rect=_rect(x, y, width, height),
            _workspace=SimpleNamespace(name=workspace) if workspace else None,
        )

    return factory


@pytest.fixture
def make_tree() -> Callable[..., MagicMock]:
    """Factory for i3ipc-like trees built from a list of containers."""

    def factory(containers: List[Any]) -> MagicMock:
        tree = MagicMock()
        tree.descendants.return_value = list(containers)
        return tree

    return factory


@pytest.fixture
def mock_sway_connection() -> AsyncMock:
    """Mock async i3ipc connection.

    get_outputs/get_tree return whatever is stored in conn.outputs/conn.containers.
    """
    conn = AsyncMock()
    conn.outputs = []
    conn.containers = []
    conn.executed = []

    async def get_outputs():
        return list(conn.outputs)

    async def get_tree():
        tree = MagicMock()
        tree.descendants.return_value = list(conn.containers)
        return tree

    async def command(cmd: str):
        conn.executed.append(cmd)
        return [SimpleNamespace(success=True, error=None)]

    conn.get_outputs = AsyncMock(side_effect=get_outputs)
    conn.get_tree = AsyncMock(side_effect=get_tree)
    conn.command = AsyncMock(side_effect=command)
    conn.on = MagicMock()
    conn.off = MagicMock()
    return conn


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    return tmp_path / "back-to-monitor" / "settings.json"


def write_settings(path: Path, data: Dict[str, Any]) -> None:
    import json

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def settings_writer() -> Callable[[Path, Dict[str, Any]], None]:
    return write_settings
