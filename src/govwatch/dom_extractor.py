"""DOM heuristic extractor.

Fallback strategy used when no JSON responses were captured: parse the
rendered HTML for card-like containers and listing tables. Everything here
works on an HTML string, so the same code runs on a live page snapshot, a
saved DOM dump or a test fixture.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, NavigableString, Tag

from .heuristics import (
    extract_amount,
    extract_date,
    extract_ministry,
    extract_vendor,
    is_candidate_text,
)
from .logging_config import get_logger
from .models import STRATEGY_DOM_CARD, STRATEGY_DOM_TABLE, RawExtractedRecord
from .parser_utils import clean_text, parse_currency

logger = get_logger("dom_extractor")

CARD_TAGS = ("div", "article", "section")
BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "br", "dd", "div", "dl", "dt",
    "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li",
    "main", "nav", "ol", "p", "pre", "section", "table", "tbody", "td", "tfoot",
    "th", "thead", "tr", "ul",
}
SKIPPED_TAGS = {"script", "style", "noscript", "template"}

# Positional layout of the archive listing table when headers are unusable
DEFAULT_TABLE_COLUMNS: Sequence[str] = ("date", "ministry", "vendor", "amount", "method")
MIN_TABLE_CELLS = 4

HEADER_KEYWORDS: Sequence[Tuple[str, Sequence[str]]] = (
    ("date", ("tarikh", "date")),
    ("ministry", ("kementerian", "ministry", "agensi", "agency", "jabatan")),
    ("vendor", ("syarikat", "vendor", "petender", "tenderer", "pembekal")),
    ("amount", ("nilai", "amount", "harga", "price", "rm")),
    ("method", ("kaedah", "method")),
    ("title", ("tajuk", "title", "projek")),
    ("category", ("kategori", "category")),
)

_BLANK_LINES_RE = re.compile(r"\n\s*\n+")
_INLINE_SPACE_RE = re.compile(r"[ \t\r\f\v]+")


def flatten_text(element: Tag) -> str:
    """Approximate ``innerText``: block elements break lines, inline ones do not."""
    parts: List[str] = []

    def walk(node) -> None:
        for child in node.children:
            if isinstance(child, NavigableString):
                if type(child) is NavigableString:
                    parts.append(str(child))
                continue
            if not isinstance(child, Tag) or child.name in SKIPPED_TAGS:
                continue
            block = child.name in BLOCK_TAGS
            if block:
                parts.append("\n")
            walk(child)
            if block:
                parts.append("\n")

    walk(element)
    text = _INLINE_SPACE_RE.sub(" ", "".join(parts))
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n", "\n".join(line for line in lines if line)).strip()


def _first_link(element: Tag, page_url: str) -> Optional[str]:
    anchor = element.find("a", href=True)
    if anchor is None:
        return None
    href = anchor["href"].strip()
    if not href or href.startswith(("javascript:", "#")):
        return None
    return urljoin(page_url, href)


def extract_cards(html: str, page_url: str) -> List[RawExtractedRecord]:
    """Scan card-like containers for ministry/vendor/amount text blocks."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")

    records: List[RawExtractedRecord] = []
    for element in soup.find_all(CARD_TAGS):
        # Listing tables are handled row by row
        if element.find("table") is not None:
            continue
        text = flatten_text(element)
        if not is_candidate_text(text):
            continue

        amount = extract_amount(text)
        if amount is None:
            continue

        records.append(
            RawExtractedRecord.from_mapping(
                {
                    "ministry": extract_ministry(text),
                    "vendor": extract_vendor(text),
                    "amount": amount,
                    "date": extract_date(text),
                },
                source_url=page_url,
                strategy=STRATEGY_DOM_CARD,
                contract_url=_first_link(element, page_url),
            )
        )
    return records


def _map_header(cells: Sequence[str]) -> Optional[Dict[int, str]]:
    mapping: Dict[int, str] = {}
    for index, cell in enumerate(cells):
        lowered = cell.lower()
        for field_name, keywords in HEADER_KEYWORDS:
            if field_name in mapping.values():
                continue
            if any(keyword in lowered for keyword in keywords):
                mapping[index] = field_name
                break
    # A usable header names at least the amount and one party
    if "amount" in mapping.values() and ({"ministry", "vendor"} & set(mapping.values())):
        return mapping
    return None


def _table_header(table: Tag) -> Optional[Dict[int, str]]:
    header_row = None
    thead = table.find("thead", recursive=False)
    if thead is not None:
        header_row = thead.find("tr")
    if header_row is None:
        first_row = table.find("tr")
        if first_row is not None and first_row.find("th") is not None:
            header_row = first_row
    if header_row is None:
        return None
    cells = [flatten_text(cell) for cell in header_row.find_all(["th", "td"])]
    return _map_header(cells)


def extract_table_rows(html: str, page_url: str) -> List[RawExtractedRecord]:
    """Parse listing tables row by row."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")

    records: List[RawExtractedRecord] = []
    for table in soup.find_all("table"):
        header = _table_header(table)
        if header is None:
            header = dict(enumerate(DEFAULT_TABLE_COLUMNS))

        body = table.find("tbody", recursive=False) or table
        for row in body.find_all("tr"):
            # Rows of nested tables are read when the loop reaches that table
            if row.find_parent("table") is not table:
                continue
            cells = row.find_all("td", recursive=False)
            if len(cells) < MIN_TABLE_CELLS:
                continue
            data: Dict[str, Optional[str]] = {}
            for index, field_name in header.items():
                if index < len(cells):
                    data[field_name] = clean_text(flatten_text(cells[index]))
            records.append(
                RawExtractedRecord.from_mapping(
                    data,
                    source_url=page_url,
                    strategy=STRATEGY_DOM_TABLE,
                    contract_url=_first_link(row, page_url),
                )
            )
    return records


def extract_dom_records(html: str, page_url: str) -> List[RawExtractedRecord]:
    """Cards and table rows from one page, deduplicated on (amount, vendor)."""
    seen: Set[Tuple[float, str]] = set()
    results: List[RawExtractedRecord] = []
    for record in extract_cards(html, page_url) + extract_table_rows(html, page_url):
        key = (
            parse_currency(record.fields.get("amount")),
            str(record.fields.get("vendor") or "").strip().lower(),
        )
        if key in seen:
            continue
        seen.add(key)
        results.append(record)

    if results:
        logger.info(f"DOM heuristics found {len(results)} records on {page_url}")
    return results
