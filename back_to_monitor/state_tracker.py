"""Window state tracking across monitor disconnects and reconnects.

When an output disconnects, the state of every window located on it is saved
relative to the monitor origin and the window is marked as stranded on that
output. If the monitor is then unloaded, stranded windows are minimized. When
a monitor is loaded again on the same output, saved states are converted back
to absolute coordinates for the new monitor rectangle and restored.

A window can have at most one pending state per output. Restoring a state
discards the window's states captured at the same time or later on other
outputs, since those captures describe positions the window held after the
one being restored.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from .models import MonitorRect, SavedStateEntry, Timestamp, WindowState
from .window_saver import WindowSaver, call_safely

logger = logging.getLogger(__name__)

PerWindowSavedStates = Dict[str, SavedStateEntry]


class StateTracker:
    """Maps windows to their saved per-output states and stranded outputs.

    All handlers run synchronously to completion on the event loop thread.
    Window handles are used as dictionary keys by identity.

    Example:
        >>> tracker = StateTracker(window_saver)
        >>> tracker.on_output_disconnected("HDMI-A-1", MonitorRect(width=1920, height=1080))
        >>> tracker.on_monitor_loaded("HDMI-A-1", MonitorRect(x=1920, width=1920, height=1080))
    """

    def __init__(
        self,
        window_saver: WindowSaver,
        remember_state: bool = True,
        minimize: bool = True,
        clock: Callable[[], Timestamp] = time.monotonic,
    ) -> None:
        """Initialize the tracker with empty maps.

        Args:
            window_saver: Window geometry reader/writer
            remember_state: Whether states are saved on disconnect
            minimize: Whether stranded windows are minimized on unload
            clock: Timestamp source used when a handler is not given one
        """
        self.window_saver = window_saver
        self.remember_state = remember_state
        self.minimize = minimize
        self._clock = clock
        self.windows_saved_states: Dict[Any, PerWindowSavedStates] = {}
        self.monitor_disconnected_windows: Dict[str, Set[Any]] = {}

    def on_output_disconnected(
        self,
        output: str,
        rect: MonitorRect,
        now: Optional[Timestamp] = None,
    ) -> None:
        """Save and strand every window located on a disconnected output."""
        time_ = self._clock() if now is None else now

        disconnected_windows: Set[Any] = set()
        self.monitor_disconnected_windows[output] = disconnected_windows

        for window in self.window_saver.list_windows():
            if not self.window_saver.is_inside(window, rect):
                continue

            if self.remember_state and self.window_saver.allows_move(window):
                self._save_window(window, output, rect, time_)

            disconnected_windows.add(window)

        logger.info(
            f"Output {output} disconnected ({rect}): "
            f"{len(disconnected_windows)} window(s) stranded"
        )

    def _save_window(self, window: Any, output: str, rect: MonitorRect, time_: Timestamp) -> None:
        title = self.window_saver.describe(window)
        captured = call_safely(
            lambda: self.window_saver.save(window),
            f"save '{title}' from {output}",
        )
        if captured is None:
            return

        # Relative to the monitor origin
        window_state = captured.model_copy(update={
            "x": captured.x - rect.x,
            "y": captured.y - rect.y,
        })

        saved_states = self.windows_saved_states.setdefault(window, {})
        if output in saved_states:
            logger.info(
                f"Don't save '{title}' from {output}: "
                f"a pending state from this monitor already exists"
            )
            return

        logger.info(f"Save '{title}' from {output}: {window_state.model_dump_json()}")
        saved_states[output] = SavedStateEntry(window_state=window_state, time=time_)

    def on_output_connected(self, output: str, rect: MonitorRect) -> None:
        """Forget the windows stranded on an output that came back."""
        if self.monitor_disconnected_windows.pop(output, None) is not None:
            logger.debug(f"Output {output} connected ({rect}): stranded windows released")

    def on_monitor_unloaded(self, output: str, rect: MonitorRect) -> None:
        """Minimize the windows stranded on an output whose monitor is gone."""
        disconnected_windows = self.monitor_disconnected_windows.pop(output, None)
        if disconnected_windows is None:
            return

        if not self.minimize:
            logger.debug(
                f"Monitor {output} unloaded: minimizing disabled, "
                f"leaving {len(disconnected_windows)} window(s) as is"
            )
            return

        for window in disconnected_windows:
            if not self.window_saver.allows_minimize(window):
                continue
            title = self.window_saver.describe(window)
            logger.info(f"Minimize '{title}' from unloaded monitor {output}")
            call_safely(
                lambda: self.window_saver.minimize(window),
                f"minimize '{title}'",
            )

    def on_monitor_loaded(self, output: str, rect: MonitorRect) -> None:
        """Restore windows that have a pending state for a reloaded output."""
        for window, saved_states in list(self.windows_saved_states.items()):
            entry = saved_states.pop(output, None)
            if entry is None:
                continue

            # Forget all younger states
            for other_output, other_entry in list(saved_states.items()):
                if other_entry.time >= entry.time:
                    del saved_states[other_output]

            if not saved_states:
                del self.windows_saved_states[window]

            self._restore_window(window, output, entry.window_state, rect)

    def _restore_window(self, window: Any, output: str, state: WindowState, rect: MonitorRect) -> None:
        window_state = state.model_copy(update={
            "x": state.x + rect.x,
            "y": state.y + rect.y,
        })

        title = self.window_saver.describe(window)
        logger.info(f"Restore '{title}' to {output}: {window_state.model_dump_json()}")
        call_safely(
            lambda: self.window_saver.restore(window, window_state, rect),
            f"restore '{title}' to {output}",
        )

    def on_window_removed(self, window: Any) -> None:
        """Drop every reference to a destroyed window."""
        self.windows_saved_states.pop(window, None)
        for disconnected_windows in self.monitor_disconnected_windows.values():
            disconnected_windows.discard(window)

    def on_remember_state_change(self, enabled: bool) -> None:
        self.remember_state = enabled
        if not enabled:
            logger.info("The 'remember_state' setting has been set to false: delete all saved states")
            self.windows_saved_states.clear()
        else:
            logger.info("The 'remember_state' setting has been set to true")

    def on_minimize_change(self, enabled: bool) -> None:
        self.minimize = enabled
        logger.info(f"The 'minimize' setting has been set to {enabled}")

    def snapshot(self) -> Dict[str, Any]:
        """Summarize pending states and stranded windows for diagnostics."""
        return {
            "remember_state": self.remember_state,
            "minimize": self.minimize,
            "saved_states": [
                {"window": self.window_saver.describe(window), "outputs": sorted(saved_states)}
                for window, saved_states in self.windows_saved_states.items()
            ],
            "stranded": {
                output: len(windows)
                for output, windows in self.monitor_disconnected_windows.items()
            },
        }
