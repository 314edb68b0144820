"""Record normalizer: raw extracted records to canonical procurement records.

Every extraction strategy (API sniffing, DOM cards, table rows, uploads and
spreadsheet re-exports) funnels through :class:`RecordNormalizer`, which
resolves each field through an ordered fallback chain, coerces the value,
applies sentinels and finally the validity gate.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from .categorization import CategoryClassifier, MethodClassifier
from .logging_config import get_logger
from .ministry_matching import MinistryMatcher
from .models import (
    UNKNOWN_MINISTRY,
    UNKNOWN_VENDOR,
    NormalizationStats,
    ProcurementRecord,
    RawExtractedRecord,
)
from .parser_utils import (
    FIELD_ALIASES,
    clean_text,
    normalize_date,
    parse_currency,
    parse_date,
    pick_amount,
    pick_field,
)

logger = get_logger("normalizer")

# Title row and column header row of the spreadsheet re-export
SPREADSHEET_HEADER_MARKERS = {
    "__EMPTY": "TAJUK SEBUT HARGA",
    "__EMPTY_3": "KEMENTERIAN",
}


def is_header_row(raw: RawExtractedRecord) -> bool:
    for key, marker in SPREADSHEET_HEADER_MARKERS.items():
        value = raw.fields.get(key)
        if isinstance(value, str) and value.strip().upper() == marker:
            return True
    return False


def passes_validity_gate(record: ProcurementRecord) -> bool:
    """A record is kept when it has a positive amount or a known ministry."""
    return record.amount > 0 or record.ministry != UNKNOWN_MINISTRY


class RecordNormalizer:
    """Maps :class:`RawExtractedRecord` objects onto :class:`ProcurementRecord`."""

    def __init__(
        self,
        *,
        method_classifier: Optional[MethodClassifier] = None,
        category_classifier: Optional[CategoryClassifier] = None,
        ministry_matcher: Optional[MinistryMatcher] = None,
        today: Optional[date] = None,
    ) -> None:
        self.method_classifier = method_classifier or MethodClassifier()
        self.category_classifier = category_classifier or CategoryClassifier()
        self.ministry_matcher = ministry_matcher
        self.today = today
        self.stats = NormalizationStats()

    def reset_stats(self) -> None:
        self.stats = NormalizationStats()

    def normalize(self, raw: RawExtractedRecord) -> Optional[ProcurementRecord]:
        """Normalize one raw record.

        Args:
            raw: Record produced by any extraction strategy or an upload.

        Returns:
            The canonical record, or ``None`` when it is a spreadsheet header
            row or fails the validity gate. Either way ``stats`` is updated.
        """
        if is_header_row(raw):
            self.stats.header_rows += 1
            self.stats.rejected += 1
            return None

        record = self._build(raw, self.stats)
        if not passes_validity_gate(record):
            self.stats.rejected += 1
            return None

        self.stats.accepted += 1
        return record

    def accepts(self, raw: RawExtractedRecord) -> bool:
        """True when ``raw`` would survive normalization; stats are untouched."""
        if is_header_row(raw):
            return False
        return passes_validity_gate(self._build(raw))

    def normalize_many(self, raws: Iterable[RawExtractedRecord]) -> List[ProcurementRecord]:
        records: List[ProcurementRecord] = []
        for raw in raws:
            record = self.normalize(raw)
            if record is not None:
                records.append(record)
        if self.stats.rejected:
            logger.info(
                f"Normalization rejected {self.stats.rejected} records "
                f"({self.stats.header_rows} header rows)"
            )
        return records

    def _build(self, raw: RawExtractedRecord, stats: Optional[NormalizationStats] = None) -> ProcurementRecord:
        fields = raw.fields

        ministry = clean_text(pick_field(fields, FIELD_ALIASES["ministry"])) or UNKNOWN_MINISTRY
        if self.ministry_matcher is not None and ministry != UNKNOWN_MINISTRY:
            ministry = self.ministry_matcher.canonicalize(ministry)
        vendor = clean_text(pick_field(fields, FIELD_ALIASES["vendor"])) or UNKNOWN_VENDOR

        amount = parse_currency(pick_amount(fields))
        if amount < 0:
            if stats is not None:
                stats.negative_amounts += 1
            amount = 0.0

        raw_date = pick_field(fields, FIELD_ALIASES["date"])
        if stats is not None and parse_date(raw_date) is None:
            stats.defaulted_dates += 1
        record_date = normalize_date(raw_date, today=self.today)

        title = clean_text(pick_field(fields, FIELD_ALIASES["title"]))
        method_text = pick_field(fields, FIELD_ALIASES["method"])
        source_name = pick_field(fields, FIELD_ALIASES["source_name"])
        method = self.method_classifier.classify(
            method=str(method_text) if method_text is not None else None,
            source_name=str(source_name) if source_name is not None else None,
            url=raw.source_url,
        )

        category_text = pick_field(fields, FIELD_ALIASES["category"])
        category = self.category_classifier.categorize(
            str(category_text) if category_text is not None else None
        )

        reason: Optional[str] = None
        if method == MethodClassifier.METHOD_DIRECT:
            reason = clean_text(pick_field(fields, FIELD_ALIASES["reason"]))

        contract_url = raw.contract_url or clean_text(pick_field(fields, FIELD_ALIASES["contract_url"]))

        return ProcurementRecord(
            ministry=ministry,
            vendor=vendor,
            amount=amount,
            method=method,
            category=category,
            date=record_date,
            source_url=raw.source_url,
            crawled_at=raw.crawled_at,
            reason=reason,
            title=title,
            contract_url=contract_url,
        )
