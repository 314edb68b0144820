"""Text-block heuristics used by the DOM card extractor.

Each function takes the flattened text of one candidate element and returns
an optional typed value. They know nothing about the browser or the DOM.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional, Sequence

MIN_CARD_LENGTH = 30
MAX_CARD_LENGTH = 2000
MAX_FIELD_LENGTH = 150

CARD_KEYWORDS: Sequence[str] = ("Kementerian", "Ministry", "Jabatan", "Syarikat", "Vendor", "Petender")

# Keywords that are part of the name itself ("Jabatan Kerja Raya")
MINISTRY_NAME_PREFIXES = ("kementerian", "ministry", "jabatan", "agensi")
MINISTRY_LABELS = ("agency",)
VENDOR_NAME_PREFIXES = ("syarikat",)
VENDOR_LABELS = ("vendor", "petender", "tenderer", "pembekal", "oleh")

_AMOUNT_RE = re.compile(r"\bRM\s?([0-9][0-9,]*(?:\.[0-9]+)?)")
_DATE_RE = re.compile(r"\b(\d{2})[-/.](\d{2})[-/.](\d{4})\b")


def is_candidate_text(text: str) -> bool:
    """Return True when a text block looks like a single procurement card."""
    if not text:
        return False
    length = len(text)
    if length < MIN_CARD_LENGTH or length > MAX_CARD_LENGTH:
        return False
    if "RM" not in text:
        return False
    return any(keyword in text for keyword in CARD_KEYWORDS)


def extract_amount(text: str) -> Optional[float]:
    """First ``RM``-prefixed number in the block; zero and junk are rejected."""
    match = _AMOUNT_RE.search(text or "")
    if not match:
        return None
    try:
        amount = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    if amount <= 0:
        return None
    return amount


def _labelled_value(
    text: str,
    name_prefixes: Sequence[str],
    labels: Sequence[str],
) -> Optional[str]:
    keywords = tuple(name_prefixes) + tuple(labels)
    pattern = re.compile(r"\b(" + "|".join(re.escape(k) for k in keywords) + r")\b", re.IGNORECASE)

    for line in (text or "").splitlines():
        match = pattern.search(line)
        if not match:
            continue
        keyword = match.group(1).lower()
        remainder = line[match.end():]
        if re.match(r"\s*:", remainder):
            value = remainder.split(":", 1)[1]
        elif keyword in labels:
            value = remainder.split(":", 1)[1] if ":" in remainder else remainder
        else:
            value = line[match.start():]
        value = re.sub(r"\s+", " ", value.replace(":", " ")).strip()
        if not value or value.lower() == keyword or len(value) >= MAX_FIELD_LENGTH:
            continue
        return value
    return None


def extract_ministry(text: str) -> Optional[str]:
    """Ministry/agency named in the first keyword-bearing line."""
    return _labelled_value(text, MINISTRY_NAME_PREFIXES, MINISTRY_LABELS)


def extract_vendor(text: str) -> Optional[str]:
    """Vendor named in the first keyword-bearing line."""
    return _labelled_value(text, VENDOR_NAME_PREFIXES, VENDOR_LABELS)


def extract_date(text: str) -> Optional[str]:
    """First ``DD-MM-YYYY`` style token, returned as an ISO date."""
    for match in _DATE_RE.finditer(text or ""):
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            continue
    return None
