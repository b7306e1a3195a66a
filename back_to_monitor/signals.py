"""In-process signals with disposable subscriptions.

Sources derive from SignalEmitter and emit named signals; consumers connect
callbacks and get a Subscription back. SignalManager groups subscriptions so
they can all be released together when the extension is disabled.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

SignalHandler = Callable[..., None]


class Subscription:
    """Disposal handle for one connected callback."""

    def __init__(self, source: "SignalEmitter", signal_name: str, handler: SignalHandler) -> None:
        self.source = source
        self.signal_name = signal_name
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        """Disconnect the callback. Safe to call more than once."""
        if not self._active:
            return
        self.source._remove_handler(self.signal_name, self.handler)
        self._active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()


class SignalEmitter:
    """Dispatches named signals to connected callbacks.

    Callbacks receive the emitter as first argument, followed by the signal
    payload.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[SignalHandler]] = defaultdict(list)

    def connect(self, signal_name: str, handler: SignalHandler) -> Subscription:
        """Register a callback for a signal."""
        self._handlers[signal_name].append(handler)
        return Subscription(self, signal_name, handler)

    def emit(self, signal_name: str, *args: Any) -> None:
        """Emit a signal to all connected callbacks.

        A failing callback is logged and does not prevent the others from
        running.
        """
        for handler in list(self._handlers.get(signal_name, [])):
            try:
                handler(self, *args)
            except Exception as e:
                logger.exception(f"Handler for '{signal_name}' failed: {e}")

    def handler_count(self, signal_name: str) -> int:
        return len(self._handlers.get(signal_name, []))

    def _remove_handler(self, signal_name: str, handler: SignalHandler) -> None:
        handlers = self._handlers.get(signal_name)
        if handlers and handler in handlers:
            handlers.remove(handler)


class SignalManager:
    """Aggregate of subscriptions released in one call.

    Example:
        >>> manager = SignalManager()
        >>> manager.connect(screen_watcher, "monitor-loaded", tracker_handler)
        >>> manager.disconnect_all_signals()
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def connect(self, source: SignalEmitter, signal_name: str, handler: SignalHandler) -> Subscription:
        subscription = source.connect(signal_name, handler)
        self._subscriptions.append(subscription)
        return subscription

    def disconnect_all_signals(self) -> None:
        """Dispose every subscription made through this manager."""
        for subscription in self._subscriptions:
            subscription.dispose()
        count = len(self._subscriptions)
        self._subscriptions.clear()
        logger.debug(f"Disconnected {count} signal handler(s)")

    def __len__(self) -> int:
        return len(self._subscriptions)
