"""Data models shared across the GovWatch extraction pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

FieldValue = Union[str, int, float, None]

UNKNOWN_MINISTRY = "Unknown Ministry"
UNKNOWN_VENDOR = "Unknown Vendor"
METHOD_OPEN_TENDER = "Open Tender"
METHOD_DIRECT_NEGOTIATION = "Direct Negotiation"
DEFAULT_CATEGORY = "General"
MANUAL_UPLOAD_SOURCE = "Manual Upload"

STRATEGY_API = "api"
STRATEGY_DOM_CARD = "dom_card"
STRATEGY_DOM_TABLE = "dom_table"
STRATEGY_UPLOAD = "upload"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class GovWatchError(Exception):
    """Base error for the GovWatch pipeline."""


class ConfigError(GovWatchError):
    """Raised when configuration cannot be loaded."""


class BrowserLaunchError(GovWatchError):
    """Raised when the headless browser cannot be started."""


class UploadError(GovWatchError):
    """Raised when an uploaded record file cannot be read."""


@dataclass
class RawExtractedRecord:
    """Loosely-typed record produced by one of the extraction strategies.

    ``fields`` holds whatever keys the source exposed (Malay, English or
    spreadsheet artifacts such as ``__EMPTY_3``). Values are limited to
    scalars; nested structures never reach the normalizer.
    """

    fields: Dict[str, FieldValue]
    source_url: str
    strategy: str
    contract_url: Optional[str] = None
    crawled_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_mapping(
        cls,
        data: Dict[str, Any],
        *,
        source_url: str,
        strategy: str,
        contract_url: Optional[str] = None,
        crawled_at: Optional[datetime] = None,
    ) -> "RawExtractedRecord":
        """Build a record from an arbitrary mapping, keeping scalar values only."""
        fields: Dict[str, FieldValue] = {}
        for key, value in data.items():
            if isinstance(value, bool):
                continue
            if value is None or isinstance(value, (str, int, float)):
                fields[str(key)] = value
        return cls(
            fields=fields,
            source_url=source_url,
            strategy=strategy,
            contract_url=contract_url,
            crawled_at=crawled_at or utc_now(),
        )


@dataclass(frozen=True)
class ProcurementRecord:
    """Canonical procurement record, the only shape that reaches the sink."""

    ministry: str
    vendor: str
    amount: float
    method: str
    category: str
    date: str
    source_url: str
    crawled_at: datetime
    reason: Optional[str] = None
    title: Optional[str] = None
    contract_url: Optional[str] = None

    @property
    def identity_key(self) -> Tuple[str, float, str]:
        return (self.vendor, self.amount, self.ministry)

    @property
    def is_direct_negotiation(self) -> bool:
        return self.method == METHOD_DIRECT_NEGOTIATION

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["crawled_at"] = self.crawled_at.isoformat()
        return data


@dataclass
class NormalizationStats:
    """Counters collected while normalizing a batch."""

    accepted: int = 0
    rejected: int = 0
    header_rows: int = 0
    negative_amounts: int = 0
    defaulted_dates: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class NavigationOutcome:
    """Result of visiting one target URL."""

    label: str
    url: str
    ok: bool
    html: Optional[str] = None
    screenshot: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PersistResult:
    """Outcome of persisting a batch of canonical records."""

    inserted_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.inserted_count + self.skipped_count + self.failed_count


@dataclass
class TriggerResult:
    """Structured answer returned to whoever triggered a scrape."""

    success: bool
    count: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "count": self.count, "message": self.message}
