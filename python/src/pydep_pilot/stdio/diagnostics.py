"""
Diagnostic Log

Line-by-line mirror of every external command and its raw output, kept for
user-visible troubleshooting. Write-only from the engine's point of view.
"""

from collections import deque
from datetime import datetime, timezone

from ..config import pilot_logger


class DiagnosticLog:
    """Bounded log of command invocations and their output."""

    def __init__(self, maxlen: int = 1000):
        self.lines: deque = deque(maxlen=maxlen)

    def append_line(self, line: str, level: str = "INFO"):
        """Add a line and forward it to the application logger."""
        timestamp = datetime.now(timezone.utc).isoformat()
        self.lines.append({"timestamp": timestamp, "level": level, "message": line})

        if level == "ERROR":
            pilot_logger.error(line)
        elif level == "WARNING":
            pilot_logger.warning(line)
        else:
            pilot_logger.debug(line)

    def clear(self):
        self.lines.clear()

    def get_lines(self, limit: int = 100) -> list[dict]:
        """Get recent entries."""
        return list(self.lines)[-limit:]

    def text(self) -> str:
        return "\n".join(entry["message"] for entry in self.lines)
