"""Procurement method and category classification.

Maps the free-text method and category values found on the portal, in
exports and in re-keyed spreadsheets onto the small closed sets stored in
canonical records. Classification is conservative: without evidence of a
direct award a record counts as an open tender.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from .models import DEFAULT_CATEGORY, METHOD_DIRECT_NEGOTIATION, METHOD_OPEN_TENDER


class MethodClassifier:
    """Classifies a record as an open tender or a direct negotiation."""

    METHOD_OPEN = METHOD_OPEN_TENDER
    METHOD_DIRECT = METHOD_DIRECT_NEGOTIATION

    ALL_METHODS = [METHOD_OPEN, METHOD_DIRECT]

    DIRECT_TOKENS: List[str] = [
        "rundingan",
        "direct",
        "terus",
        "negotiat",
    ]

    def __init__(self, custom_tokens: Optional[Iterable[str]] = None) -> None:
        self.direct_tokens = list(self.DIRECT_TOKENS)
        if custom_tokens:
            self.direct_tokens.extend(token.lower() for token in custom_tokens)

    def classify(
        self,
        *,
        method: Optional[str] = None,
        source_name: Optional[str] = None,
        url: Optional[str] = None,
    ) -> str:
        """Return the canonical method for the supplied textual hints.

        The explicit method text is consulted first; the source name and URL are
        only secondary hints (the direct-negotiation archive has ``direct`` in its
        path). Titles are free text and never consulted: "berterusan" contains
        ``terus``.
        """
        for hint in (method, source_name, url):
            if hint and self._is_direct(str(hint)):
                return self.METHOD_DIRECT
        return self.METHOD_OPEN

    def _is_direct(self, text: str) -> bool:
        lowered = text.lower()
        return any(token in lowered for token in self.direct_tokens)


class CategoryClassifier:
    """Normalises procurement categories (works, supplies, services)."""

    CATEGORY_WORKS = "Kerja"
    CATEGORY_SUPPLIES = "Bekalan"
    CATEGORY_SERVICES = "Perkhidmatan"
    CATEGORY_GENERAL = DEFAULT_CATEGORY

    ALL_CATEGORIES = [
        CATEGORY_WORKS,
        CATEGORY_SUPPLIES,
        CATEGORY_SERVICES,
        CATEGORY_GENERAL,
    ]

    CATEGORY_SYNONYMS: Dict[str, set[str]] = {
        CATEGORY_WORKS: {
            "kerja",
            "kerja-kerja",
            "works",
            "work",
            "construction",
            "pembinaan",
        },
        CATEGORY_SUPPLIES: {
            "bekalan",
            "supplies",
            "supply",
            "goods",
            "barangan",
        },
        CATEGORY_SERVICES: {
            "perkhidmatan",
            "services",
            "service",
            "khidmat",
        },
        CATEGORY_GENERAL: {
            "general",
            "am",
            "umum",
        },
    }

    def __init__(self, custom_rules: Optional[Dict[str, Any]] = None) -> None:
        self.custom_rules = custom_rules or {}
        self._alias_lookup = self._build_alias_lookup()

    def _build_alias_lookup(self) -> Dict[str, str]:
        lookup: Dict[str, str] = {}
        for canonical, synonyms in self.CATEGORY_SYNONYMS.items():
            for alias in {canonical, *synonyms}:
                lookup[alias.lower()] = canonical
        for alias, canonical in self.custom_rules.get("aliases", {}).items():
            lookup[str(alias).lower()] = canonical
        return lookup

    def normalize_category_name(self, category: Optional[str]) -> Optional[str]:
        """Normalise a category string (Malay or English) to canonical form."""
        if not category:
            return None
        normalized = " ".join(str(category).split()).lower()
        if normalized in self._alias_lookup:
            return self._alias_lookup[normalized]
        # "Kerja Awam", "Bekalan & Perkhidmatan" style labels: first known word wins
        for word in normalized.replace("&", " ").replace("/", " ").split():
            if word in self._alias_lookup:
                return self._alias_lookup[word]
        return None

    def categorize(self, category: Optional[str]) -> str:
        """Return the canonical category, keeping unrecognised text as-is."""
        if category is None or not str(category).strip():
            return self.CATEGORY_GENERAL
        normalized = self.normalize_category_name(category)
        if normalized:
            return normalized
        return " ".join(str(category).split())
