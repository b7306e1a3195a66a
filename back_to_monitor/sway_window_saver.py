"""Window saver for Sway (and i3) over i3ipc.

Geometry is read from the last tree snapshot taken with refresh(). The
snapshot is refreshed on window events only, so when an output disappears the
saver still knows where windows were before Sway moved them to another
output.

restore() and minimize() do not talk to Sway directly: they queue
WindowCommand objects which flush() executes once the state tracker handler
has returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .errors import CaptureError, ErrorCode, RestoreError
from .models import CommandType, MonitorRect, WindowCommand, WindowState
from .window_saver import WindowSaver

if TYPE_CHECKING:
    from i3ipc.aio import Connection, Con

logger = logging.getLogger(__name__)

SCRATCHPAD_WORKSPACE = "__i3_scratch"


def get_window_class(container: Any) -> str:
    """Get window class in a Sway/i3-compatible way.

    Checks app_id first (native Wayland), then window_class (XWayland / i3).
    """
    if getattr(container, "app_id", None):
        return container.app_id
    if getattr(container, "window_class", None):
        return container.window_class
    return "unknown"


@dataclass
class WindowSnapshot:
    """Geometry and attributes of a window at the last tree refresh."""

    con_id: int
    title: str
    window_class: str
    x: int
    y: int
    width: int
    height: int
    floating: bool
    fullscreen: bool
    workspace: Optional[str]
    minimized: bool

    @classmethod
    def from_container(cls, con: "Con") -> "WindowSnapshot":
        workspace = con.workspace()
        workspace_name = workspace.name if workspace else None
        is_floating = con.type == "floating_con" or (
            bool(getattr(con, "floating", None)) and con.floating in ("user_on", "auto_on")
        )
        return cls(
            con_id=con.id,
            title=con.name or "",
            window_class=get_window_class(con),
            x=con.rect.x,
            y=con.rect.y,
            width=con.rect.width,
            height=con.rect.height,
            floating=is_floating,
            fullscreen=getattr(con, "fullscreen_mode", 0) == 1,
            workspace=workspace_name if workspace_name != SCRATCHPAD_WORKSPACE else None,
            minimized=workspace_name == SCRATCHPAD_WORKSPACE,
        )


class SwayWindow:
    """Stable handle for one Sway window.

    One instance exists per container id for the lifetime of the window, so
    handles can be used as dictionary keys by identity across tree refreshes.
    """

    def __init__(self, con_id: int) -> None:
        self.con_id = con_id
        self.snapshot: Optional[WindowSnapshot] = None

    @property
    def title(self) -> str:
        if self.snapshot is None:
            return f"#{self.con_id}"
        return self.snapshot.title or self.snapshot.window_class

    def __repr__(self) -> str:
        return f"SwayWindow(con_id={self.con_id}, title={self.title!r})"


class WindowRegistry:
    """Issues one SwayWindow handle per container id."""

    def __init__(self) -> None:
        self._windows: Dict[int, SwayWindow] = {}

    def get(self, con_id: int) -> Optional[SwayWindow]:
        return self._windows.get(con_id)

    def get_or_create(self, con_id: int) -> SwayWindow:
        window = self._windows.get(con_id)
        if window is None:
            window = SwayWindow(con_id)
            self._windows[con_id] = window
        return window

    def forget(self, con_id: int) -> Optional[SwayWindow]:
        """Drop a closed window's handle and return it."""
        return self._windows.pop(con_id, None)

    def windows(self) -> List[SwayWindow]:
        return list(self._windows.values())

    def __len__(self) -> int:
        return len(self._windows)


def is_managed_window(con: Any) -> bool:
    """True for leaf containers that hold an actual application window."""
    if con.type not in ("con", "floating_con") or con.nodes:
        return False
    return bool(getattr(con, "app_id", None) or getattr(con, "window", None))


class SwayWindowSaver(WindowSaver):
    """WindowSaver backed by Sway tree snapshots and queued IPC commands."""

    def __init__(self, registry: Optional[WindowRegistry] = None) -> None:
        self.registry = registry or WindowRegistry()
        self._pending: List[WindowCommand] = []

    @property
    def pending_commands(self) -> List[WindowCommand]:
        return list(self._pending)

    async def refresh(self, conn: "Connection") -> List[SwayWindow]:
        """Take a new tree snapshot.

        Handles of containers missing from the tree are forgotten, so a
        missed close event cannot leave them in the registry.

        Returns:
            Handles that vanished since the previous snapshot
        """
        tree = await conn.get_tree()
        seen = set()
        for con in tree.descendants():
            if not is_managed_window(con):
                continue
            window = self.registry.get_or_create(con.id)
            window.snapshot = WindowSnapshot.from_container(con)
            seen.add(con.id)

        vanished = []
        for window in self.registry.windows():
            if window.con_id not in seen:
                self.registry.forget(window.con_id)
                window.snapshot = None
                vanished.append(window)

        logger.debug(f"Window snapshot refreshed: {len(seen)} window(s), {len(vanished)} vanished")
        return vanished

    def list_windows(self) -> List[SwayWindow]:
        return [w for w in self.registry.windows() if w.snapshot is not None]

    def describe(self, window: SwayWindow) -> str:
        return window.title

    def is_inside(self, window: SwayWindow, rect: MonitorRect) -> bool:
        snapshot = window.snapshot
        return snapshot is not None and rect.contains(snapshot.x, snapshot.y)

    def allows_move(self, window: SwayWindow) -> bool:
        snapshot = window.snapshot
        return snapshot is not None and not snapshot.minimized

    def save(self, window: SwayWindow) -> WindowState:
        snapshot = window.snapshot
        if snapshot is None:
            raise CaptureError(window.con_id, "window is not in the tree snapshot", ErrorCode.WINDOW_NOT_FOUND)

        return WindowState(
            x=snapshot.x,
            y=snapshot.y,
            width=snapshot.width,
            height=snapshot.height,
            floating=snapshot.floating,
            fullscreen=snapshot.fullscreen,
            minimized=snapshot.minimized,
            workspace=snapshot.workspace,
        )

    def restore(self, window: SwayWindow, state: WindowState, rect: MonitorRect) -> None:
        snapshot = window.snapshot
        if snapshot is None:
            raise RestoreError(window.con_id, "window is not in the tree snapshot", ErrorCode.WINDOW_NOT_FOUND)
        if state.width <= 0 or state.height <= 0:
            raise RestoreError(
                window.con_id,
                f"invalid size {state.width}x{state.height}",
                ErrorCode.INVALID_GEOMETRY,
            )

        commands: List[WindowCommand] = []

        def queue(command_type: CommandType, **params: Any) -> None:
            commands.append(WindowCommand(window_id=window.con_id, command_type=command_type, params=params))

        if snapshot.minimized:
            queue(CommandType.SCRATCHPAD_SHOW)

        if state.floating:
            if not snapshot.floating and not snapshot.minimized:
                queue(CommandType.FLOATING_ENABLE)
            if state.workspace:
                queue(CommandType.MOVE_WORKSPACE, workspace=state.workspace)
            queue(CommandType.RESIZE, width=state.width, height=state.height)
            queue(CommandType.MOVE_POSITION, x=state.x, y=state.y)
        else:
            if snapshot.minimized or snapshot.floating:
                queue(CommandType.FLOATING_DISABLE)
            if state.workspace:
                queue(CommandType.MOVE_WORKSPACE, workspace=state.workspace)

        if state.fullscreen:
            queue(CommandType.FULLSCREEN_ENABLE)

        self._pending.extend(commands)
        logger.debug(f"Queued {len(commands)} restore command(s) for window {window.con_id} on {rect}")

    def allows_minimize(self, window: SwayWindow) -> bool:
        snapshot = window.snapshot
        return snapshot is not None and not snapshot.minimized

    def minimize(self, window: SwayWindow) -> None:
        self._pending.append(
            WindowCommand(window_id=window.con_id, command_type=CommandType.MOVE_SCRATCHPAD)
        )

    async def flush(self, conn: "Connection") -> int:
        """Execute queued commands in order.

        Returns:
            Number of commands that succeeded
        """
        commands, self._pending = self._pending, []
        succeeded = 0

        for command in commands:
            command_str = command.to_sway_command()
            try:
                replies = await conn.command(command_str)
            except Exception as e:
                logger.error(f"Sway command failed for window {command.window_id}: {command_str}: {e}")
                continue

            errors = [r.error for r in replies if not r.success]
            if errors:
                logger.warning(f"Sway rejected '{command_str}': {'; '.join(str(e) for e in errors)}")
            else:
                succeeded += 1
                logger.debug(f"Executed '{command_str}'")

        return succeeded
