"""
Error types for back-to-monitor.

Capture and restore errors originate in the window saver and are never fatal:
the state tracker catches them per window and keeps processing.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """
    Error codes for back-to-monitor.

    - 1000-1099: Window state errors
    - 1100-1199: Settings errors
    """

    # Window state errors (1000-1099)
    CAPTURE_FAILED = 1000
    RESTORE_FAILED = 1001
    WINDOW_NOT_FOUND = 1002
    INVALID_GEOMETRY = 1003

    # Settings errors (1100-1199)
    SETTINGS_LOAD_FAILED = 1100
    SETTINGS_INVALID = 1101
    SETTINGS_WRITE_FAILED = 1102
    UNKNOWN_SETTING = 1103


class BackToMonitorError(Exception):
    """Base exception for back-to-monitor errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context for debugging
        """
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for structured logging."""
        result = {
            "code": self.code.value,
            "message": self.message
        }

        if self.context:
            result["context"] = self.context

        return result


class CaptureError(BackToMonitorError):
    """Reading a window's state failed (window vanished or is unreadable)."""

    def __init__(self, window_id: Any, reason: str, code: ErrorCode = ErrorCode.CAPTURE_FAILED):
        super().__init__(
            code=code,
            message=f"Failed to capture state of window {window_id}: {reason}",
            context={"window_id": window_id, "reason": reason}
        )


class RestoreError(BackToMonitorError):
    """Applying a saved state to a window failed or was rejected."""

    def __init__(self, window_id: Any, reason: str, code: ErrorCode = ErrorCode.RESTORE_FAILED):
        super().__init__(
            code=code,
            message=f"Failed to restore window {window_id}: {reason}",
            context={"window_id": window_id, "reason": reason}
        )


class SettingsError(BackToMonitorError):
    """Settings file could not be loaded, validated or written."""

    def __init__(self, file_path: str, reason: str, code: ErrorCode = ErrorCode.SETTINGS_LOAD_FAILED):
        """
        Initialize settings error.

        Args:
            file_path: Path to the settings file
            reason: Reason for failure
            code: Specific settings error code
        """
        super().__init__(
            code=code,
            message=f"Settings error in {file_path}: {reason}",
            context={"file_path": file_path, "reason": reason}
        )
