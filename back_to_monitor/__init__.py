"""back-to-monitor: minimize windows of unplugged monitors and restore them on reconnect."""

__version__ = "1.0.0"
