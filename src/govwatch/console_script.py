"""Access to the operator console extraction script.

When the portal blocks the headless browser outright, an operator can open
the archive in a normal browser, paste this script into the developer console
and import the downloaded ``govwatch_data.json`` through the upload path.
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Union

SCRIPT_NAME = "console_extractor.js"
DOWNLOAD_FILENAME = "govwatch_data.json"


def load_console_script() -> str:
    return resources.files("govwatch").joinpath("static").joinpath(SCRIPT_NAME).read_text(encoding="utf-8")


def write_console_script(path: Union[str, Path]) -> Path:
    """Write the console script to ``path`` (a directory or a file name)."""
    target = Path(path)
    if target.is_dir():
        target = target / SCRIPT_NAME
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(load_console_script(), encoding="utf-8")
    return target
