"""Parsing utilities shared by the extractors and the normalizer.

Everything here is a pure coercion: currency strings to numbers, the many
date shapes seen on the portal and in spreadsheet re-exports to ISO dates, and
fallback chains over loosely-keyed records.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Dict, Mapping, Optional, Sequence, Union

from dateutil import parser as date_parser

from .models import FieldValue

# Spreadsheet serial day numbers count from 1899-12-30
EXCEL_EPOCH = date(1899, 12, 30)
MISSING_MARKERS = {"", "-", "n/a", "na", "null", "none", "tiada maklumat"}

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]+")
_WHITESPACE_RE = re.compile(r"\s+")
_ISO_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[ T].*)?$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})(?:\s.*)?$")
_SERIAL_RE = re.compile(r"^\d{5}(?:\.\d+)?$")

# Ordered fallback chains: first present key wins.
FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "ministry": (
        "ministry",
        "kementerian",
        "agency",
        "agensi",
        "Ministry",
        "Kementerian",
        "Kementerian/Jabatan/Agensi",
        "__EMPTY_3",
    ),
    "vendor": (
        "vendor",
        "nama_syarikat",
        "vendor_name",
        "petender",
        "syarikat",
        "Tenderer",
        "Syarikat Berjaya",
        "__EMPTY_4",
    ),
    "amount": (
        "amount",
        "nilai_perolehan",
        "harga_setuju_terima",
        "nilai",
        "price",
        "Price",
        "Nilai Tawaran",
        "__EMPTY_8",
    ),
    "date": (
        "date",
        "tarikh_surat",
        "tarikh",
        "Date",
        "Tarikh Setuju Terima",
        "__EMPTY_6",
        "__EMPTY_7",
    ),
    "method": (
        "method",
        "kaedah",
        "kaedah_perolehan",
        "Kaedah Perolehan",
    ),
    "source_name": ("Source Name", "source_name", "sumber"),
    "category": (
        "category",
        "kategori",
        "kategori_perolehan",
        "Category",
        "Kategori Perolehan",
        "__EMPTY_2",
    ),
    "title": (
        "title",
        "tajuk",
        "project_title",
        "Title",
        "Tajuk",
        "__EMPTY",
    ),
    "reason": (
        "reason",
        "justifikasi",
        "justification",
        "sebab",
        "Reason",
        "Justifikasi",
    ),
    "id": ("_id", "id"),
    "contract_url": ("contract_url", "contractUrl"),
}

# Any key containing one of these is read as an amount when the chain misses
AMOUNT_KEY_FRAGMENTS = ("nilai", "harga", "amount", "price")


def is_missing(value: FieldValue) -> bool:
    """Return True for None, blank strings and known "no information" markers."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip().lower() in MISSING_MARKERS
    return False


def pick_field(
    record: Mapping[str, FieldValue],
    keys: Sequence[str],
    default: FieldValue = None,
) -> FieldValue:
    """Return the value of the first key in ``keys`` that is present in ``record``."""
    for key in keys:
        if key not in record:
            continue
        value = record[key]
        if is_missing(value):
            continue
        if isinstance(value, str):
            return value.strip()
        return value
    return default


def is_amount_key(key: str) -> bool:
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in AMOUNT_KEY_FRAGMENTS)


def pick_amount(record: Mapping[str, FieldValue], default: FieldValue = 0) -> FieldValue:
    """Amount value from the known keys, then from any amount-like key.

    API payloads name the amount freely (``harga_kontrak``, ``nilai_tawaran_rm``)
    so the fixed chain is followed by a scan in key order.
    """
    value = pick_field(record, FIELD_ALIASES["amount"])
    if value is not None:
        return value
    for key in record:
        if is_amount_key(key):
            value = pick_field(record, (key,))
            if value is not None:
                return value
    return default


def clean_text(value: FieldValue) -> Optional[str]:
    """Collapse whitespace and strip stray colons; ``None`` for empty text."""
    if value is None:
        return None
    text = _WHITESPACE_RE.sub(" ", str(value)).strip().strip(":").strip()
    return text or None


def parse_currency(value: FieldValue) -> float:
    """Parse a currency-ish value into a float.

    ``"RM 4,000.00"`` becomes ``4000.0``, accounting parentheses mark a
    negative value, and anything unparseable becomes ``0.0``.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return 0.0 if math.isnan(number) or math.isinf(number) else number

    text = str(value).strip()
    if not text:
        return 0.0
    negative = text.startswith("(") and text.endswith(")")

    cleaned = _NON_NUMERIC_RE.sub("", text)
    # Only a leading minus is meaningful
    if cleaned.startswith("-"):
        negative = True
    cleaned = cleaned.replace("-", "")
    if not cleaned or cleaned == ".":
        return 0.0

    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return -number if negative else number


def excel_serial_to_date(serial: float) -> date:
    return EXCEL_EPOCH + timedelta(days=int(serial))


def parse_date(value: Union[FieldValue, date, datetime]) -> Optional[date]:
    """Parse the date shapes seen across sources; ``None`` when unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or value <= 0:
            return None
        try:
            return excel_serial_to_date(value)
        except OverflowError:
            return None

    text = str(value).strip()
    if is_missing(text):
        return None

    try:
        iso_match = _ISO_PREFIX_RE.match(text)
        if iso_match:
            year, month, day = (int(part) for part in iso_match.groups())
            return date(year, month, day)

        day_first = _DAY_FIRST_RE.match(text)
        if day_first:
            day, month, year = (int(part) for part in day_first.groups())
            return date(year, month, day)

        if _SERIAL_RE.match(text):
            return excel_serial_to_date(float(text))

        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def normalize_date(
    value: Union[FieldValue, date, datetime],
    *,
    today: Optional[date] = None,
) -> str:
    """Return an ISO ``YYYY-MM-DD`` date, defaulting to the processing date."""
    parsed = parse_date(value)
    if parsed is None:
        parsed = today or date.today()
    return parsed.isoformat()
