"""Data models for back-to-monitor.

Pydantic models for monitor geometry, saved window state, settings and the
Sway commands used to restore or minimize windows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Timestamp = Union[int, float]


class MonitorRect(BaseModel):
    """Monitor rectangle in absolute desktop coordinates."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(0, description="Left edge (pixels)")
    y: int = Field(0, description="Top edge (pixels)")
    width: int = Field(..., ge=0, description="Width (pixels)")
    height: int = Field(..., ge=0, description="Height (pixels)")

    @classmethod
    def from_i3_rect(cls, rect: Any) -> "MonitorRect":
        """Create from an i3ipc Rect object."""
        return cls(x=rect.x, y=rect.y, width=rect.width, height=rect.height)

    def contains(self, x: int, y: int) -> bool:
        """True if the point lies inside the rectangle (right/bottom edges excluded)."""
        return (
            self.x <= x < self.x + self.width
            and self.y <= y < self.y + self.height
        )

    def __str__(self) -> str:
        return f"{self.width}x{self.height}+{self.x}+{self.y}"


class WindowState(BaseModel):
    """Saved geometry and attributes of a window.

    x and y are absolute when captured and while restoring, and relative to
    the monitor origin while the state is pending.
    """

    x: int
    y: int
    width: int = 0
    height: int = 0
    floating: bool = False
    fullscreen: bool = False
    minimized: bool = False
    workspace: Optional[str] = None


@dataclass
class SavedStateEntry:
    """A window state captured at a given time, pending restoration."""

    window_state: WindowState
    time: Timestamp


@dataclass(frozen=True)
class OutputEvent:
    """Payload of the four monitor signals."""

    output_name: str
    monitor_rect: MonitorRect


class SettingsModel(BaseModel):
    """User settings persisted in settings.json."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    remember_state: bool = Field(True, description="Save window states when a monitor disconnects")
    minimize: bool = Field(True, description="Minimize windows of a monitor that goes away")


class CommandType(str, Enum):
    """Type of window command operation."""

    SCRATCHPAD_SHOW = "scratchpad_show"
    MOVE_SCRATCHPAD = "move_scratchpad"
    FLOATING_ENABLE = "floating_enable"
    FLOATING_DISABLE = "floating_disable"
    RESIZE = "resize"
    MOVE_POSITION = "move_position"
    MOVE_WORKSPACE = "move_workspace"
    FULLSCREEN_ENABLE = "fullscreen_enable"


class WindowCommand(BaseModel):
    """Single Sway IPC command for a window.

    Example:
        >>> cmd = WindowCommand(
        ...     window_id=12345,
        ...     command_type=CommandType.MOVE_POSITION,
        ...     params={"x": 2020, "y": 50}
        ... )
        >>> cmd.to_sway_command()
        '[con_id=12345] move absolute position 2020 px 50 px'
    """

    model_config = ConfigDict(frozen=True)

    window_id: int = Field(..., description="Sway container ID", gt=0)
    command_type: CommandType = Field(..., description="Type of command")
    params: dict[str, Any] = Field(default_factory=dict, description="Command parameters")

    def to_sway_command(self) -> str:
        """Generate Sway IPC command string.

        Raises:
            ValueError: If required parameters are missing for the command type
        """
        selector = f"[con_id={self.window_id}]"

        match self.command_type:
            case CommandType.SCRATCHPAD_SHOW:
                return f"{selector} scratchpad show"

            case CommandType.MOVE_SCRATCHPAD:
                return f"{selector} move scratchpad"

            case CommandType.FLOATING_ENABLE:
                return f"{selector} floating enable"

            case CommandType.FLOATING_DISABLE:
                return f"{selector} floating disable"

            case CommandType.RESIZE:
                if "width" not in self.params or "height" not in self.params:
                    raise ValueError("RESIZE requires 'width' and 'height' parameters")
                return f"{selector} resize set {self.params['width']} px {self.params['height']} px"

            case CommandType.MOVE_POSITION:
                if "x" not in self.params or "y" not in self.params:
                    raise ValueError("MOVE_POSITION requires 'x' and 'y' parameters")
                return f"{selector} move absolute position {self.params['x']} px {self.params['y']} px"

            case CommandType.MOVE_WORKSPACE:
                if "workspace" not in self.params:
                    raise ValueError("MOVE_WORKSPACE requires 'workspace' parameter")
                workspace = str(self.params["workspace"]).replace("\\", "\\\\").replace('"', '\\"')
                return f'{selector} move container to workspace "{workspace}"'

            case CommandType.FULLSCREEN_ENABLE:
                return f"{selector} fullscreen enable"
