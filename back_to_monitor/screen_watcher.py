"""Monitor event source for Sway.

Caches output state and diffs it on every Sway output event to emit four
signals, each with an OutputEvent payload:

- output-disconnected: an active output went inactive or disappeared
  (payload carries the last known rectangle)
- output-connected: an output became active
- monitor-unloaded: a disconnected output did not come back within
  unload_delay seconds
- monitor-loaded: an output became active, right after output-connected

The delay between output-disconnected and monitor-unloaded gives a monitor
that only blinked (input switch, power saving) the chance to come back
without its windows being minimized.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List

from .models import MonitorRect, OutputEvent
from .signals import SignalEmitter

if TYPE_CHECKING:
    from i3ipc import aio

logger = logging.getLogger(__name__)

OUTPUT_DISCONNECTED = "output-disconnected"
OUTPUT_CONNECTED = "output-connected"
MONITOR_UNLOADED = "monitor-unloaded"
MONITOR_LOADED = "monitor-loaded"

DEFAULT_UNLOAD_DELAY = 3.0


@dataclass
class OutputSnapshot:
    """Snapshot of a single output's state."""

    name: str
    active: bool
    rect: MonitorRect

    @classmethod
    def from_i3_output(cls, output: Any) -> "OutputSnapshot":
        """Create OutputSnapshot from i3ipc output object."""
        rect = getattr(output, "rect", None)
        return cls(
            name=output.name,
            active=bool(getattr(output, "active", False)),
            rect=MonitorRect.from_i3_rect(rect) if rect else MonitorRect(width=0, height=0),
        )


class ScreenWatcher(SignalEmitter):
    """Turns Sway output events into monitor signals."""

    def __init__(self, unload_delay: float = DEFAULT_UNLOAD_DELAY) -> None:
        super().__init__()
        self.unload_delay = unload_delay
        self._cached_outputs: Dict[str, OutputSnapshot] = {}
        self._pending_unloads: Dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()
        self._registered = False

    @property
    def outputs(self) -> Dict[str, OutputSnapshot]:
        return dict(self._cached_outputs)

    def is_unload_pending(self, output_name: str) -> bool:
        return output_name in self._pending_unloads

    async def register(self, conn: "aio.Connection") -> None:
        """Cache the current outputs without emitting anything."""
        async with self._lock:
            outputs = await conn.get_outputs()
            self._cached_outputs = self._snapshot(outputs)
            self._registered = True
            logger.info(
                f"ScreenWatcher registered with {len(self._cached_outputs)} outputs: "
                f"{list(self._cached_outputs.keys())}"
            )

    def unregister(self) -> None:
        """Cancel pending unloads and forget cached outputs."""
        for handle in self._pending_unloads.values():
            handle.cancel()
        self._pending_unloads.clear()
        self._cached_outputs.clear()
        self._registered = False
        logger.debug("ScreenWatcher unregistered")

    async def refresh(self, conn: "aio.Connection") -> None:
        """Query outputs, diff against the cache and emit signals."""
        if not self._registered:
            await self.register(conn)
            return

        async with self._lock:
            outputs = await conn.get_outputs()
            self._apply(self._snapshot(outputs))

    def _snapshot(self, outputs: List[Any]) -> Dict[str, OutputSnapshot]:
        return {
            o.name: OutputSnapshot.from_i3_output(o)
            for o in outputs
            if o.name and not o.name.startswith("__")  # Skip internal outputs
        }

    def _apply(self, current: Dict[str, OutputSnapshot]) -> None:
        previous = self._cached_outputs
        self._cached_outputs = current

        for name, old_state in previous.items():
            new_state = current.get(name)
            if old_state.active and (new_state is None or not new_state.active):
                self._on_disconnected(name, old_state.rect)

        for name, new_state in current.items():
            old_state = previous.get(name)
            if new_state.active and (old_state is None or not old_state.active):
                self._on_connected(name, new_state.rect)
            elif new_state.active and old_state.rect != new_state.rect:
                logger.debug(f"Output {name} moved: {old_state.rect} -> {new_state.rect}")

    def _on_disconnected(self, name: str, rect: MonitorRect) -> None:
        logger.info(f"Output {name} disconnected (last rect {rect})")
        self.emit(OUTPUT_DISCONNECTED, OutputEvent(output_name=name, monitor_rect=rect))

        existing = self._pending_unloads.pop(name, None)
        if existing:
            existing.cancel()

        if self.unload_delay <= 0:
            self._fire_unload(name, rect)
            return

        loop = asyncio.get_running_loop()
        self._pending_unloads[name] = loop.call_later(self.unload_delay, self._fire_unload, name, rect)
        logger.debug(f"Scheduled unload of {name} in {self.unload_delay:.1f}s")

    def _on_connected(self, name: str, rect: MonitorRect) -> None:
        pending = self._pending_unloads.pop(name, None)
        if pending:
            pending.cancel()
            logger.info(f"Output {name} reconnected before unload ({rect})")
        else:
            logger.info(f"Output {name} connected ({rect})")

        event = OutputEvent(output_name=name, monitor_rect=rect)
        self.emit(OUTPUT_CONNECTED, event)
        self.emit(MONITOR_LOADED, event)

    def _fire_unload(self, name: str, rect: MonitorRect) -> None:
        self._pending_unloads.pop(name, None)
        logger.info(f"Monitor {name} unloaded")
        self.emit(MONITOR_UNLOADED, OutputEvent(output_name=name, monitor_rect=rect))
