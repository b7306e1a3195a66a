"""Window saver interface.

The window saver is the only part of the system that reads or changes window
geometry. The state tracker talks to it exclusively through this interface so
that the tracking logic stays independent of the window manager.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, TypeVar

from .errors import BackToMonitorError
from .models import MonitorRect, WindowState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WindowSaver(ABC):
    """Reads and applies window geometry for a window manager."""

    @abstractmethod
    def list_windows(self) -> List[Any]:
        """Return handles of all managed windows."""

    @abstractmethod
    def describe(self, window: Any) -> str:
        """Return a short human-readable description (title) for log lines."""

    @abstractmethod
    def is_inside(self, window: Any, rect: MonitorRect) -> bool:
        """True if the window's position lies inside rect."""

    @abstractmethod
    def allows_move(self, window: Any) -> bool:
        """True if the window can be moved (and so is worth saving)."""

    @abstractmethod
    def save(self, window: Any) -> WindowState:
        """Capture the window's state with absolute coordinates.

        Raises:
            CaptureError: If the window cannot be read
        """

    @abstractmethod
    def restore(self, window: Any, state: WindowState, rect: MonitorRect) -> None:
        """Apply a saved state (absolute coordinates) onto the monitor at rect.

        Raises:
            RestoreError: If the window is gone or the geometry is rejected
        """

    @abstractmethod
    def allows_minimize(self, window: Any) -> bool:
        """True if the window can be minimized."""

    @abstractmethod
    def minimize(self, window: Any) -> None:
        """Minimize the window."""


def call_safely(func: Callable[[], T], description: str = "operation") -> Optional[T]:
    """Run func, logging and swallowing any error.

    Returns:
        The result of func, or None if it raised
    """
    try:
        return func()
    except BackToMonitorError as e:
        logger.error(f"Failed to {description}: {e.to_dict()}")
        logger.debug("Traceback:", exc_info=True)
        return None
    except Exception as e:
        logger.error(f"Failed to {description}: {e}")
        logger.debug("Traceback:", exc_info=True)
        return None
