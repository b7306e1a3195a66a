"""Wires settings, Sway events and the state tracker together.

enable() creates the tracker maps, binds settings and connects signals;
disable() releases every subscription and abandons the maps.

Tracker handlers are synchronous. Sway IPC work happens around them on the
event loop: window snapshots are refreshed on window events, outputs are
diffed on output events, and commands queued by restore/minimize are flushed
once the handlers have returned. Async jobs run one at a time in the order
they were scheduled.
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Set

from .models import OutputEvent
from .screen_watcher import (
    DEFAULT_UNLOAD_DELAY,
    MONITOR_LOADED,
    MONITOR_UNLOADED,
    OUTPUT_CONNECTED,
    OUTPUT_DISCONNECTED,
    ScreenWatcher,
)
from .settings import ExtensionSettings
from .signals import SignalManager
from .state_tracker import StateTracker
from .sway_events import OUTPUTS_CHANGED, WINDOW_CHANGED, WINDOW_REMOVED, SwayEventBridge
from .sway_window_saver import SwayWindow, SwayWindowSaver

if TYPE_CHECKING:
    from i3ipc import aio

logger = logging.getLogger(__name__)


class BackToMonitorExtension:
    """Controller owning the tracker and its event subscriptions."""

    def __init__(
        self,
        conn: "aio.Connection",
        settings_path: Optional[Path] = None,
        unload_delay: float = DEFAULT_UNLOAD_DELAY,
        watch_settings: bool = True,
    ) -> None:
        self.conn = conn
        self.settings_path = settings_path
        self.unload_delay = unload_delay
        self.watch_settings = watch_settings

        self.window_saver: Optional[SwayWindowSaver] = None
        self.tracker: Optional[StateTracker] = None
        self.settings: Optional[ExtensionSettings] = None
        self.screen_watcher: Optional[ScreenWatcher] = None
        self.event_bridge: Optional[SwayEventBridge] = None
        self.signal_manager: Optional[SignalManager] = None

        self._job_lock = asyncio.Lock()
        self._jobs: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.signal_manager is not None

    async def enable(self) -> None:
        self.settings = ExtensionSettings(self.settings_path)

        self.window_saver = SwayWindowSaver()
        await self.window_saver.refresh(self.conn)

        self.tracker = StateTracker(
            self.window_saver,
            remember_state=self.settings.remember_state,
            minimize=self.settings.minimize,
        )
        self.settings.bind("remember_state", self.tracker.on_remember_state_change)
        self.settings.bind("minimize", self.tracker.on_minimize_change)
        if self.watch_settings:
            self.settings.start_watching(asyncio.get_running_loop())

        self.screen_watcher = ScreenWatcher(unload_delay=self.unload_delay)
        await self.screen_watcher.register(self.conn)

        self.event_bridge = SwayEventBridge(self.window_saver.registry)
        self.event_bridge.attach(self.conn)

        self.signal_manager = SignalManager()
        self.signal_manager.connect(self.screen_watcher, OUTPUT_DISCONNECTED, self._on_output_disconnected)
        self.signal_manager.connect(self.screen_watcher, OUTPUT_CONNECTED, self._on_output_connected)
        self.signal_manager.connect(self.screen_watcher, MONITOR_UNLOADED, self._on_monitor_unloaded)
        self.signal_manager.connect(self.screen_watcher, MONITOR_LOADED, self._on_monitor_loaded)
        self.signal_manager.connect(self.event_bridge, WINDOW_REMOVED, self._on_window_removed)
        self.signal_manager.connect(self.event_bridge, WINDOW_CHANGED, self._on_window_changed)
        self.signal_manager.connect(self.event_bridge, OUTPUTS_CHANGED, self._on_outputs_changed)

        logger.info(
            f"Enabled (with settings 'remember_state': {self.settings.remember_state}, "
            f"'minimize': {self.settings.minimize})"
        )

    async def disable(self) -> None:
        if self.signal_manager:
            self.signal_manager.disconnect_all_signals()
            self.signal_manager = None

        if self.event_bridge:
            self.event_bridge.detach()
            self.event_bridge = None

        if self.screen_watcher:
            self.screen_watcher.unregister()
            self.screen_watcher = None

        if self.settings:
            self.settings.finalize()
            self.settings = None

        for task in list(self._jobs):
            task.cancel()
        if self._jobs:
            await asyncio.gather(*self._jobs, return_exceptions=True)
        self._jobs.clear()

        self.tracker = None
        self.window_saver = None

        logger.info("Disabled")

    async def wait_idle(self) -> None:
        """Wait until every scheduled job has finished."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    def _schedule(self, job: Callable[[], Awaitable[None]], description: str) -> None:
        async def run() -> None:
            async with self._job_lock:
                if not self.enabled:
                    return
                try:
                    await job()
                except Exception as e:
                    logger.error(f"Failed to {description}: {e}", exc_info=True)

        task = asyncio.get_running_loop().create_task(run())
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)

    async def _refresh_windows(self) -> None:
        vanished = await self.window_saver.refresh(self.conn)
        self.event_bridge.report_vanished(vanished)

    async def _refresh_outputs(self) -> None:
        await self.screen_watcher.refresh(self.conn)
        await self._flush()

    async def _flush(self) -> None:
        if not self.window_saver.pending_commands:
            return
        await self.window_saver.flush(self.conn)
        await self._refresh_windows()

    # Sway event bridge handlers

    def _on_window_changed(self, _source: Any, con_id: int, change: str) -> None:
        self._schedule(self._refresh_windows, f"refresh windows after {change} of {con_id}")

    def _on_window_removed(self, _source: Any, window: SwayWindow) -> None:
        # Free saved states memory
        self.tracker.on_window_removed(window)

    def _on_outputs_changed(self, _source: Any) -> None:
        self._schedule(self._refresh_outputs, "handle output change")

    # Screen watcher handlers

    def _on_output_disconnected(self, _source: Any, event: OutputEvent) -> None:
        self.tracker.on_output_disconnected(event.output_name, event.monitor_rect)

    def _on_output_connected(self, _source: Any, event: OutputEvent) -> None:
        self.tracker.on_output_connected(event.output_name, event.monitor_rect)

    def _on_monitor_unloaded(self, _source: Any, event: OutputEvent) -> None:
        self.tracker.on_monitor_unloaded(event.output_name, event.monitor_rect)
        # Fired from a timer, outside of _refresh_outputs
        self._schedule(self._flush, f"minimize windows of {event.output_name}")

    def _on_monitor_loaded(self, _source: Any, event: OutputEvent) -> None:
        self.tracker.on_monitor_loaded(event.output_name, event.monitor_rect)
