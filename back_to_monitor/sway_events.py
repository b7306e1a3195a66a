"""Bridge from i3ipc events to in-process signals.

Signals:
- window-changed(con_id, change): any window event other than close
- window-removed(window): a window closed or vanished from the tree; payload
  is its SwayWindow handle
- outputs-changed(): Sway reported an output event
"""

import logging
from typing import TYPE_CHECKING, Any, List, Optional

from i3ipc import Event

from .signals import SignalEmitter
from .sway_window_saver import SwayWindow, WindowRegistry

if TYPE_CHECKING:
    from i3ipc import aio

logger = logging.getLogger(__name__)

WINDOW_CHANGED = "window-changed"
WINDOW_REMOVED = "window-removed"
OUTPUTS_CHANGED = "outputs-changed"


class SwayEventBridge(SignalEmitter):
    """Subscribes to Sway window/output events and re-emits them as signals."""

    def __init__(self, registry: WindowRegistry) -> None:
        super().__init__()
        self.registry = registry
        self._conn: Optional["aio.Connection"] = None

    def attach(self, conn: "aio.Connection") -> None:
        if self._conn is not None:
            logger.warning("Sway event bridge already attached")
            return
        conn.on(Event.WINDOW, self._on_window)
        conn.on(Event.OUTPUT, self._on_output)
        self._conn = conn
        logger.debug("Subscribed to Sway window and output events")

    def detach(self) -> None:
        if self._conn is None:
            return
        self._conn.off(self._on_window)
        self._conn.off(self._on_output)
        self._conn = None
        logger.debug("Unsubscribed from Sway events")

    def report_vanished(self, windows: List[SwayWindow]) -> None:
        """Emit window-removed for windows that left the tree without a close event."""
        for window in windows:
            logger.debug(f"Window {window.con_id} vanished from the tree")
            self.emit(WINDOW_REMOVED, window)

    def _on_window(self, conn: Any, event: Any) -> None:
        container = event.container
        if event.change == "close":
            window = self.registry.forget(container.id)
            if window is not None:
                logger.debug(f"Window {container.id} closed")
                self.emit(WINDOW_REMOVED, window)
            return
        self.emit(WINDOW_CHANGED, container.id, event.change)

    def _on_output(self, conn: Any, event: Any) -> None:
        self.emit(OUTPUTS_CHANGED)
