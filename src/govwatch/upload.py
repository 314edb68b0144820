"""Manual upload path.

Records recovered outside the pipeline (the console script download, admin
JSON exports, spreadsheet rows converted to JSON) go through the same
normalizer and sink as scraped records, so they obey the same identity and
validity rules.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .database import ProcurementDatabase
from .logging_config import get_logger
from .models import (
    MANUAL_UPLOAD_SOURCE,
    STRATEGY_UPLOAD,
    NormalizationStats,
    PersistResult,
    RawExtractedRecord,
    UploadError,
)
from .normalizer import RecordNormalizer

logger = get_logger("upload")

SOURCE_URL_KEYS = ("sourceUrl", "source_url")


@dataclass
class UploadSummary:
    """Outcome of one upload."""

    total_rows: int = 0
    normalization: NormalizationStats = field(default_factory=NormalizationStats)
    persistence: PersistResult = field(default_factory=PersistResult)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "accepted": self.normalization.accepted,
            "rejected": self.normalization.rejected,
            "inserted": self.persistence.inserted_count,
            "skipped": self.persistence.skipped_count,
            "failed": self.persistence.failed_count,
        }


def load_upload_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read a JSON upload: a list of objects, or an object with a ``records`` list."""
    upload_path = Path(path)
    if not upload_path.exists():
        raise UploadError(f"Upload file not found: {upload_path}")
    try:
        data = json.loads(upload_path.read_text(encoding="utf-8-sig"))
    except (ValueError, OSError) as exc:
        raise UploadError(f"Could not read {upload_path}: {exc}") from exc

    if isinstance(data, dict) and isinstance(data.get("records"), list):
        data = data["records"]
    if not isinstance(data, list):
        raise UploadError(f"Expected a JSON array of records in {upload_path}")
    return [row for row in data if isinstance(row, dict)]


def rows_to_raw_records(
    rows: Iterable[Mapping[str, Any]],
    *,
    default_source: str = MANUAL_UPLOAD_SOURCE,
) -> List[RawExtractedRecord]:
    raws: List[RawExtractedRecord] = []
    for row in rows:
        source_url = default_source
        for key in SOURCE_URL_KEYS:
            value = row.get(key)
            if isinstance(value, str) and value.strip():
                source_url = value.strip()
                break
        raws.append(RawExtractedRecord.from_mapping(dict(row), source_url=source_url, strategy=STRATEGY_UPLOAD))
    return raws


def import_records(
    rows: Iterable[Mapping[str, Any]],
    db: ProcurementDatabase,
    *,
    normalizer: Optional[RecordNormalizer] = None,
    default_source: str = MANUAL_UPLOAD_SOURCE,
) -> UploadSummary:
    """Normalize uploaded rows and persist the survivors.

    Args:
        rows: Uploaded objects (console script output, API dumps, spreadsheet
            exports converted to JSON).
        db: Sink the accepted records are written to.
        normalizer: Normalizer to use; a default one is built when omitted.
        default_source: ``source_url`` for rows that carry none.

    Returns:
        UploadSummary with row, accepted, rejected and persistence counts.
    """
    normalizer = normalizer or RecordNormalizer()
    normalizer.reset_stats()

    raws = rows_to_raw_records(rows, default_source=default_source)
    records = normalizer.normalize_many(raws)

    run_id = db.start_ingestion_run(source="upload", metadata={"rows": len(raws)})
    persistence = db.persist_records(records, ingestion_run_id=run_id)
    db.complete_ingestion_run(
        run_id,
        status="completed" if not persistence.failed_count else "completed_with_errors",
        metadata={"rows": len(raws), "rejected": normalizer.stats.rejected},
    )

    summary = UploadSummary(
        total_rows=len(raws),
        normalization=normalizer.stats,
        persistence=persistence,
    )
    logger.info(
        f"Upload processed {summary.total_rows} rows: "
        f"{persistence.inserted_count} inserted, {persistence.skipped_count} skipped, "
        f"{normalizer.stats.rejected} rejected"
    )
    return summary


def import_file(
    path: Union[str, Path],
    db: ProcurementDatabase,
    *,
    normalizer: Optional[RecordNormalizer] = None,
) -> UploadSummary:
    return import_records(load_upload_file(path), db, normalizer=normalizer)
