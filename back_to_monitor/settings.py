"""Settings for back-to-monitor.

Settings live in ~/.config/back-to-monitor/settings.json:

    {"remember_state": true, "minimize": true}

Consumers bind callbacks to individual keys and are notified with the new
value whenever it changes, either through set() or because the file was
edited on disk (watched with watchdog).
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .errors import ErrorCode, SettingsError
from .models import SettingsModel

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path.home() / ".config" / "back-to-monitor" / "settings.json"

SettingCallback = Callable[[Any], None]


def atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON through a temp file + rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def read_settings_file(path: Path) -> SettingsModel:
    """Read and validate a settings file.

    Raises:
        SettingsError: If the file cannot be read or is invalid
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise SettingsError(str(path), str(e)) from e
    except json.JSONDecodeError as e:
        raise SettingsError(str(path), f"invalid JSON: {e}", ErrorCode.SETTINGS_INVALID) from e

    if not isinstance(data, dict):
        raise SettingsError(str(path), "top-level value must be an object", ErrorCode.SETTINGS_INVALID)

    try:
        return SettingsModel(**data)
    except ValidationError as e:
        raise SettingsError(str(path), str(e), ErrorCode.SETTINGS_INVALID) from e


class DebouncedReloadHandler(FileSystemEventHandler):
    """File system event handler with debounced reload callback.

    Watchdog delivers events on its own thread; the callback is handed to the
    asyncio loop and only runs once modifications have settled.
    """

    def __init__(self, callback: Callable[[], None], loop: asyncio.AbstractEventLoop,
                 debounce_ms: int = 100, target_filename: Optional[str] = None):
        super().__init__()
        self.callback = callback
        self.debounce_seconds = debounce_ms / 1000
        self.target_filename = target_filename
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None

    def _should_trigger(self, event) -> bool:
        if event.is_directory:
            return False
        if self.target_filename:
            event_path = getattr(event, "dest_path", None) or event.src_path
            return Path(event_path).name == self.target_filename
        return True

    def _schedule(self) -> None:
        # Runs on the loop thread
        if self._timer:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce_seconds, self.callback)

    def on_modified(self, event) -> None:
        if self._should_trigger(event):
            self._loop.call_soon_threadsafe(self._schedule)

    def on_moved(self, event) -> None:
        # Atomic saves use temp file + rename
        if self._should_trigger(event):
            self._loop.call_soon_threadsafe(self._schedule)

    def on_created(self, event) -> None:
        if self._should_trigger(event):
            self._loop.call_soon_threadsafe(self._schedule)

    def cancel(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None


class ExtensionSettings:
    """Settings store with per-key change callbacks.

    Example:
        >>> settings = ExtensionSettings(path)
        >>> settings.bind("remember_state", tracker.on_remember_state_change)
        >>> settings.start_watching(asyncio.get_running_loop())
        >>> settings.finalize()
    """

    def __init__(self, path: Optional[Path] = None, debounce_ms: int = 200) -> None:
        self.path = path or SETTINGS_PATH
        self.debounce_ms = debounce_ms
        self._values = self._load_initial()
        self._callbacks: Dict[str, List[SettingCallback]] = {}
        self._observer: Optional[Observer] = None
        self._handler: Optional[DebouncedReloadHandler] = None

    def _load_initial(self) -> SettingsModel:
        if not self.path.exists():
            logger.info(f"Settings file not found, creating default at {self.path}")
            values = SettingsModel()
            try:
                atomic_write_json(self.path, values.model_dump())
            except OSError as e:
                logger.error(f"Failed to write default settings to {self.path}: {e}")
            return values

        try:
            values = read_settings_file(self.path)
        except SettingsError as e:
            logger.error(f"{e.message}; using defaults")
            return SettingsModel()

        logger.debug(f"Loaded settings from {self.path}: {values.model_dump()}")
        return values

    @property
    def remember_state(self) -> bool:
        return self._values.remember_state

    @property
    def minimize(self) -> bool:
        return self._values.minimize

    def get(self, key: str) -> Any:
        if key not in SettingsModel.model_fields:
            raise SettingsError(str(self.path), f"unknown setting '{key}'", ErrorCode.UNKNOWN_SETTING)
        return getattr(self._values, key)

    def bind(self, key: str, callback: SettingCallback) -> None:
        """Call callback(new_value) whenever key changes."""
        if key not in SettingsModel.model_fields:
            raise SettingsError(str(self.path), f"unknown setting '{key}'", ErrorCode.UNKNOWN_SETTING)
        self._callbacks.setdefault(key, []).append(callback)

    def set(self, key: str, value: Any) -> None:
        """Change a setting, persist it and notify bound callbacks.

        Raises:
            SettingsError: If the key is unknown, the value invalid or the file cannot be written
        """
        if key not in SettingsModel.model_fields:
            raise SettingsError(str(self.path), f"unknown setting '{key}'", ErrorCode.UNKNOWN_SETTING)

        try:
            new_values = SettingsModel(**{**self._values.model_dump(), key: value})
        except ValidationError as e:
            raise SettingsError(str(self.path), str(e), ErrorCode.SETTINGS_INVALID) from e

        try:
            atomic_write_json(self.path, new_values.model_dump())
        except OSError as e:
            raise SettingsError(str(self.path), str(e), ErrorCode.SETTINGS_WRITE_FAILED) from e

        self._apply(new_values)

    def reload(self) -> bool:
        """Re-read the settings file, keeping current values if it is invalid.

        Returns:
            True if the file was loaded
        """
        try:
            new_values = read_settings_file(self.path)
        except SettingsError as e:
            logger.error(f"Failed to reload settings: {e.message}")
            logger.warning(f"Retaining previous settings: {self._values.model_dump()}")
            return False

        self._apply(new_values)
        return True

    def _apply(self, new_values: SettingsModel) -> None:
        old_values = self._values
        self._values = new_values

        for key in SettingsModel.model_fields:
            old_value = getattr(old_values, key)
            new_value = getattr(new_values, key)
            if old_value == new_value:
                continue
            logger.debug(f"Setting '{key}' changed: {old_value} -> {new_value}")
            for callback in self._callbacks.get(key, []):
                callback(new_value)

    def start_watching(self, loop: asyncio.AbstractEventLoop) -> None:
        """Reload automatically when the settings file changes on disk.

        Watches the parent directory since editors that save atomically
        replace the file instead of modifying it.
        """
        if self._observer is not None:
            logger.warning("Settings watcher already started")
            return

        watch_dir = self.path.parent
        watch_dir.mkdir(parents=True, exist_ok=True)

        self._handler = DebouncedReloadHandler(
            self.reload, loop, self.debounce_ms, target_filename=self.path.name
        )
        self._observer = Observer()
        self._observer.schedule(self._handler, str(watch_dir), recursive=False)
        self._observer.start()
        logger.info(f"Started watching {self.path} for modifications")

    def finalize(self) -> None:
        """Stop watching and drop all callbacks."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info(f"Stopped watching {self.path}")
        if self._handler is not None:
            self._handler.cancel()
            self._handler = None
        self._callbacks.clear()
