"""Per-run diagnostics context.

A scrape run against the portal usually fails silently (empty pages, blocked
requests), so every run leaves a trail in a dedicated directory: a timestamped
plain-text log, page screenshots and, when nothing was extracted, a DOM dump.
The directory is cleared at the start of each run and the log is written in a
single flush at the end, whatever the outcome.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .logging_config import get_logger

DEFAULT_DIAGNOSTICS_DIR = Path("debug_logs")
LOG_FILENAME = "latest.log"
DOM_DUMP_FILENAME = "final_dom_dump.html"
ERROR_SCREENSHOT_LABEL = "final_error_state"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Diagnostics:
    """Collects diagnostic lines and artifacts for one pipeline run."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        *,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], str] = _utc_timestamp,
    ) -> None:
        self.directory = Path(directory) if directory else DEFAULT_DIAGNOSTICS_DIR
        self.logger = logger or get_logger("diagnostics")
        self._clock = clock
        self._lines: List[str] = []
        self.artifacts: List[Path] = []

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def log_path(self) -> Path:
        return self.directory / LOG_FILENAME

    def reset(self) -> None:
        """Remove artifacts of the previous run and start a fresh buffer."""
        if self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lines.clear()
        self.artifacts.clear()

    def log(self, message: str, level: int = logging.INFO) -> None:
        self._lines.append(f"[{self._clock()}] {message}")
        self.logger.log(level, message)

    def warning(self, message: str) -> None:
        self.log(message, logging.WARNING)

    def error(self, message: str) -> None:
        self.log(message, logging.ERROR)

    def artifact_path(self, filename: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        self.artifacts.append(path)
        return path

    def screenshot_path(self, label: str, *, timeout: bool = False) -> Path:
        suffix = "_timeout" if timeout else ""
        return self.artifact_path(f"{label}{suffix}.png")

    def write_dom_dump(self, html: str) -> Optional[Path]:
        path = self.artifact_path(DOM_DUMP_FILENAME)
        try:
            path.write_text(html, encoding="utf-8")
        except OSError as exc:
            self.error(f"Could not write DOM dump: {exc}")
            return None
        self.log(f"DOM dump saved to {path}")
        return path

    def flush(self) -> Optional[Path]:
        """Write the buffered log file; failures are logged, never raised."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self.log_path.write_text("\n".join(self._lines) + "\n", encoding="utf-8")
        except OSError as exc:
            self.logger.error(f"Could not write diagnostics log {self.log_path}: {exc}")
            return None
        return self.log_path
