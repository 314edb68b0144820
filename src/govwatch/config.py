"""Configuration loader for the GovWatch scraper."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import ConfigError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ARCHIVE_BASE_URL = "https://myprocurement.treasury.gov.my/archive"

DEFAULT_TARGETS: List[Dict[str, str]] = [
    {"label": "direct_nego", "url": f"{ARCHIVE_BASE_URL}/direct-negotiations"},
    {"label": "tenders", "url": f"{ARCHIVE_BASE_URL}/results-tender"},
]


@dataclass
class ScrollSettings:
    """Bounds for the incremental auto-scroll."""

    step_px: int = 200
    interval_ms: int = 100
    max_height_px: int = 10000
    max_steps: int = 100


@dataclass
class BrowserSettings:
    """Options for the headless browser session."""

    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout_ms: int = 60000
    settle_delay_ms: int = 5000
    post_scroll_delay_ms: int = 2000
    blocked_resource_types: List[str] = field(default_factory=lambda: ["image", "font", "media"])
    extra_args: List[str] = field(default_factory=list)
    scroll: ScrollSettings = field(default_factory=ScrollSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BrowserSettings":
        data = dict(data or {})
        viewport = data.pop("viewport", {}) or {}
        scroll = ScrollSettings(**(data.pop("scroll", {}) or {}))
        settings = cls(**data, scroll=scroll)
        settings.viewport_width = int(viewport.get("width", settings.viewport_width))
        settings.viewport_height = int(viewport.get("height", settings.viewport_height))
        return settings


@dataclass
class TargetSite:
    """A page the pipeline navigates to, in declared order."""

    label: str
    url: str


@dataclass
class InterceptorSettings:
    """Filters applied to network responses before JSON parsing."""

    ignored_url_substrings: List[str] = field(
        default_factory=lambda: ["google", "doubleclick", "facebook"]
    )
    body_markers: List[str] = field(default_factory=lambda: ["amount", "nilai", "harga", "price"])
    contract_url_templates: Dict[str, str] = field(
        default_factory=lambda: {
            "direct": f"{ARCHIVE_BASE_URL}/direct-negotiations/{{id}}",
            "default": f"{ARCHIVE_BASE_URL}/results-tender/{{id}}",
        }
    )


class GovWatchConfig:
    """Central configuration container for the scraper and sink."""

    DEFAULT_CONFIG_PATH = Path("config/govwatch.yaml")

    def __init__(self, config_path: Optional[Path | str] = None) -> None:
        path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        if not path.is_absolute():
            path = Path.cwd() / path
        self.config_path = path
        self._data = self._load_config()

        try:
            self.browser = BrowserSettings.from_dict(self._data.get("browser"))
            self.interceptor = InterceptorSettings(**(self._data.get("interceptor") or {}))
            self.targets = [
                TargetSite(label=str(item["label"]), url=str(item["url"]))
                for item in (self._data.get("targets") or DEFAULT_TARGETS)
            ]
        except (TypeError, KeyError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration in {self.config_path}: {exc}") from exc

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {"settings": {}, "browser": {}, "interceptor": {}, "targets": []}
        try:
            with open(self.config_path, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {self.config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping at the top of {self.config_path}")
        return data

    def get_setting(self, key: str, default: Any = None) -> Any:
        return (self._data.get("settings") or {}).get(key, default)

    @property
    def database_path(self) -> Path:
        return Path(self.get_setting("database_path", "database/govwatch.db"))

    @property
    def diagnostics_dir(self) -> Path:
        return Path(self.get_setting("diagnostics_dir", "debug_logs"))

    @property
    def canonicalize_ministries(self) -> bool:
        return bool(self.get_setting("canonicalize_ministries", False))
