"""Ministry name canonicalization.

The portal, the CSV exports and hand-keyed spreadsheets spell the same
ministry many ways ("KEMENTERIAN KESIHATAN MALAYSIA", "Kementerian
Kesihatan", "KKM"). The matcher resolves them through exact aliases, keyword
rules and finally rapidfuzz similarity against the ``data/ministries.json``
dataset shipped inside the package. Names it cannot place are returned in title case.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from rapidfuzz import fuzz, process

from .logging_config import get_logger
from .models import UNKNOWN_MINISTRY

DEFAULT_MINISTRY_CONFIG_PATH = Path(__file__).resolve().parent / "data" / "ministries.json"
DEFAULT_MATCH_THRESHOLD = 90

logger = get_logger("ministry_matching")


@dataclass
class MinistryEntry:
    """One canonical ministry with its alternative spellings."""

    name: str
    english_name: Optional[str] = None
    aliases: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)

    def matches_keywords(self, normalized: str) -> bool:
        if any(term in normalized for term in self.exclude):
            return False
        return any(keyword in normalized for keyword in self.keywords)


def _normalize(name: str) -> str:
    normalized = " ".join(name.upper().split())
    if normalized.endswith(" MALAYSIA"):
        normalized = normalized[: -len(" MALAYSIA")].strip()
    return normalized


def _title_case(name: str) -> str:
    return " ".join(word.capitalize() for word in name.lower().split())


class MinistryMatcher:
    """Resolves ministry spellings to a canonical name."""

    def __init__(
        self,
        *,
        config_path: Optional[Path] = None,
        match_threshold: int = DEFAULT_MATCH_THRESHOLD,
    ) -> None:
        self.config_path = Path(config_path) if config_path else DEFAULT_MINISTRY_CONFIG_PATH
        self.match_threshold = match_threshold

        self._entries: List[MinistryEntry] = []
        self._lookup: Dict[str, str] = {}
        self._load_ministries()

    def _load_ministries(self) -> None:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Ministry config not found at {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as fh:
            data: Dict[str, Any] = json.load(fh)

        for item in data.get("ministries", []):
            entry = MinistryEntry(
                name=item["name"],
                english_name=item.get("english_name"),
                aliases=[alias.upper() for alias in item.get("aliases", [])],
                keywords=[keyword.upper() for keyword in item.get("keywords", [])],
                exclude=[term.upper() for term in item.get("exclude", [])],
            )
            self._entries.append(entry)
            self._lookup[_normalize(entry.name)] = entry.name
            if entry.english_name:
                self._lookup[_normalize(entry.english_name)] = entry.name
            for alias in entry.aliases:
                self._lookup[_normalize(alias)] = entry.name

    def canonicalize(self, name: Optional[str]) -> str:
        """Return the canonical ministry name for ``name``."""
        if not name or not name.strip():
            return UNKNOWN_MINISTRY
        if name == UNKNOWN_MINISTRY:
            return name

        normalized = _normalize(name)
        if normalized in self._lookup:
            return self._lookup[normalized]

        for entry in self._entries:
            if entry.matches_keywords(normalized):
                return entry.name

        match = process.extractOne(
            normalized,
            list(self._lookup.keys()),
            scorer=fuzz.token_sort_ratio,
            score_cutoff=self.match_threshold,
        )
        if match:
            candidate, score, _ = match
            logger.debug(f"Fuzzy ministry match {name!r} -> {candidate!r} ({score:.0f})")
            return self._lookup[candidate]

        return _title_case(normalized)
