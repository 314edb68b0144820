"""GovWatch procurement database interface.

Provides schema management, the deduplicating sink for canonical records,
ingestion-run bookkeeping and query helpers.
"""

from __future__ import annotations

import argparse
import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from .logging_config import get_logger
from .models import PersistResult, ProcurementRecord

ISO_TIMESTAMP_SUFFIX = "Z"

logger = get_logger("database")


def _utc_now() -> str:
    """Return a UTC timestamp string with second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + ISO_TIMESTAMP_SUFFIX


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + ISO_TIMESTAMP_SUFFIX


@dataclass
class RecordOperationResult:
    """Represents the outcome of an insert-if-new operation."""

    status: str
    record_id: int
    duplicate_of: Optional[int] = None
    message: Optional[str] = None
    ingestion_run_id: Optional[int] = None


class ProcurementDatabase:
    """High-level helper for the GovWatch SQLite database."""

    DEFAULT_DB_PATH = Path("database/govwatch.db")

    def __init__(self, db_path: Optional[Union[str, Path]] = None, auto_initialize: bool = True) -> None:
        path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        if not path.is_absolute():
            path = Path.cwd() / path
        self.db_path = path
        if auto_initialize:
            self.initialize()

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Initialise database directory and ensure schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            self._apply_pragmas(conn)
            self._create_schema(conn)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), isolation_level=None, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _apply_pragmas(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA temp_store=MEMORY")

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ministry TEXT NOT NULL,
                vendor TEXT NOT NULL,
                amount REAL NOT NULL CHECK (amount >= 0),
                method TEXT NOT NULL,
                category TEXT NOT NULL,
                title TEXT,
                date TEXT NOT NULL,
                reason TEXT,
                source_url TEXT NOT NULL,
                contract_url TEXT,
                crawled_at TEXT NOT NULL,
                ingestion_run_id INTEGER REFERENCES ingestion_runs(id),
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS ingestion_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                status TEXT NOT NULL DEFAULT 'running',
                total_records INTEGER NOT NULL DEFAULT 0,
                new_records INTEGER NOT NULL DEFAULT 0,
                duplicate_records INTEGER NOT NULL DEFAULT 0,
                failed_records INTEGER NOT NULL DEFAULT 0,
                metadata TEXT
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_records_identity ON records(vendor, amount, ministry);
            CREATE INDEX IF NOT EXISTS idx_records_date ON records(date);
            CREATE INDEX IF NOT EXISTS idx_records_ministry ON records(ministry);
            CREATE INDEX IF NOT EXISTS idx_records_method ON records(method);
            CREATE INDEX IF NOT EXISTS idx_runs_started_at ON ingestion_runs(started_at);
            CREATE INDEX IF NOT EXISTS idx_runs_status ON ingestion_runs(status);
            """
        )

    # ------------------------------------------------------------------
    # Ingestion run helpers
    # ------------------------------------------------------------------
    def start_ingestion_run(self, source: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> int:
        payload = {
            "source": source,
            "started_at": _utc_now(),
            "metadata": self._to_json(metadata),
        }
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO ingestion_runs (source, started_at, metadata)
                VALUES (:source, :started_at, :metadata)
                """,
                payload,
            )
            run_id = int(cur.lastrowid)
        return run_id

    def complete_ingestion_run(
        self,
        run_id: int,
        *,
        status: str = "completed",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE ingestion_runs
                   SET status = ?,
                       completed_at = ?,
                       metadata = COALESCE(?, metadata)
                 WHERE id = ?
                """,
                (
                    status,
                    _utc_now(),
                    self._to_json(metadata),
                    run_id,
                ),
            )

    def _increment_ingestion_run(
        self,
        conn: sqlite3.Connection,
        run_id: int,
        *,
        new: int = 0,
        duplicate: int = 0,
        failed: int = 0,
    ) -> None:
        conn.execute(
            """
            UPDATE ingestion_runs
               SET total_records = total_records + ?,
                   new_records = new_records + ?,
                   duplicate_records = duplicate_records + ?,
                   failed_records = failed_records + ?
             WHERE id = ?
            """,
            (new + duplicate + failed, new, duplicate, failed, run_id),
        )

    # ------------------------------------------------------------------
    # Record ingestion
    # ------------------------------------------------------------------
    def upsert_if_new(
        self,
        record: ProcurementRecord,
        *,
        ingestion_run_id: Optional[int] = None,
    ) -> RecordOperationResult:
        """Insert ``record`` unless a row with the same identity key exists.

        Args:
            record: Canonical record to store.
            ingestion_run_id: Run whose counters are updated (optional).

        Returns:
            RecordOperationResult with ``status="inserted"`` and the new row id,
            or ``status="skipped"`` and the id of the existing row, which is
            never modified.

        Raises:
            sqlite3.Error: If the row cannot be written.
        """
        payload = {
            "ministry": record.ministry,
            "vendor": record.vendor,
            "amount": record.amount,
            "method": record.method,
            "category": record.category,
            "title": record.title,
            "date": record.date,
            "reason": record.reason,
            "source_url": record.source_url,
            "contract_url": record.contract_url,
            "crawled_at": _format_timestamp(record.crawled_at),
            "ingestion_run_id": ingestion_run_id,
        }

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = conn.execute(
                    "SELECT id FROM records WHERE vendor = ? AND amount = ? AND ministry = ?",
                    (record.vendor, record.amount, record.ministry),
                ).fetchone()

                duplicate_of = None
                if existing:
                    record_id = int(existing["id"])
                    duplicate_of = record_id
                    status = "skipped"
                else:
                    cur = conn.execute(
                        """
                        INSERT INTO records (
                            ministry, vendor, amount, method, category, title,
                            date, reason, source_url, contract_url, crawled_at,
                            ingestion_run_id
                        ) VALUES (
                            :ministry, :vendor, :amount, :method, :category, :title,
                            :date, :reason, :source_url, :contract_url, :crawled_at,
                            :ingestion_run_id
                        )
                        """,
                        payload,
                    )
                    record_id = int(cur.lastrowid)
                    status = "inserted"

                if ingestion_run_id is not None:
                    self._increment_ingestion_run(
                        conn,
                        ingestion_run_id,
                        new=1 if status == "inserted" else 0,
                        duplicate=1 if status == "skipped" else 0,
                    )
                conn.execute("COMMIT")
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise

        return RecordOperationResult(
            status=status,
            record_id=record_id,
            duplicate_of=duplicate_of,
            ingestion_run_id=ingestion_run_id,
            message=self._result_message(status, duplicate_of),
        )

    def persist_records(
        self,
        records: Iterable[ProcurementRecord],
        *,
        ingestion_run_id: Optional[int] = None,
    ) -> PersistResult:
        """Persist canonical records one by one.

        Each record is its own transaction, so one failure is counted and
        logged while the rest of the batch carries on.

        Args:
            records: Canonical records, typically the normalizer output.
            ingestion_run_id: Run whose counters are updated (optional).

        Returns:
            PersistResult with inserted, skipped and failed counts plus the
            error messages of failed records.
        """
        result = PersistResult()
        for record in records:
            try:
                outcome = self.upsert_if_new(record, ingestion_run_id=ingestion_run_id)
            except sqlite3.Error as exc:
                error_msg = f"Failed to persist record {record.identity_key}: {exc}"
                logger.error(error_msg)
                result.failed_count += 1
                result.errors.append(error_msg)
                if ingestion_run_id is not None:
                    self._record_failure(ingestion_run_id)
                continue

            if outcome.status == "inserted":
                result.inserted_count += 1
            else:
                result.skipped_count += 1

        logger.info(
            f"Persisted: {result.inserted_count} inserted, "
            f"{result.skipped_count} skipped, {result.failed_count} failed"
        )
        return result

    def _record_failure(self, run_id: int) -> None:
        try:
            with self._connect() as conn:
                self._increment_ingestion_run(conn, run_id, failed=1)
        except sqlite3.Error as exc:
            logger.warning(f"Could not update ingestion run {run_id}: {exc}")

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def count_records(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM records").fetchone()
        return int(row["total"])

    def get_record(self, record_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
        return dict(row) if row else None

    def find_by_identity(self, vendor: str, amount: float, ministry: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM records WHERE vendor = ? AND amount = ? AND ministry = ?",
                (vendor, amount, ministry),
            ).fetchone()
        return dict(row) if row else None

    def list_records(
        self,
        *,
        ministry: Optional[str] = None,
        method: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        query = ["SELECT * FROM records"]
        params: List[Any] = []
        filters: List[str] = []
        if ministry:
            filters.append("ministry = ?")
            params.append(ministry)
        if method:
            filters.append("method = ?")
            params.append(method)
        if filters:
            query.append("WHERE " + " AND ".join(filters))
        query.append("ORDER BY date DESC, id DESC LIMIT ? OFFSET ?")
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(" ".join(query), params).fetchall()
        return [dict(row) for row in rows]

    def get_ingestion_metrics(self) -> Dict[str, Any]:
        """Aggregate counters across every scrape and upload run."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total_runs,
                       COALESCE(SUM(status = 'failed'), 0) AS failed_runs,
                       COALESCE(SUM(total_records), 0) AS records_processed,
                       COALESCE(SUM(new_records), 0) AS new_records,
                       COALESCE(SUM(duplicate_records), 0) AS duplicate_records,
                       COALESCE(SUM(failed_records), 0) AS failed_records
                  FROM ingestion_runs
                """
            ).fetchone()
        return {key: int(row[key]) for key in row.keys()}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _to_json(value: Optional[Any]) -> Optional[str]:
        if value is None:
            return None
        return json.dumps(value, sort_keys=True, default=str)

    @staticmethod
    def _result_message(status: str, duplicate_of: Optional[int]) -> Optional[str]:
        if status == "inserted":
            return "record inserted"
        if status == "skipped" and duplicate_of is not None:
            return f"duplicate of record {duplicate_of}"
        return None


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="GovWatch database maintenance")
    parser.add_argument("--db-path", type=Path, default=None, help="Database file (default: database/govwatch.db)")
    parser.add_argument("--init", action="store_true", help="Create the schema if it is missing")
    parser.add_argument("--stats", action="store_true", help="Print stored record and ingestion counters as JSON")
    args = parser.parse_args(argv)

    if not (args.init or args.stats):
        parser.print_help()
        return

    db = ProcurementDatabase(db_path=args.db_path)
    if args.init:
        print(f"Initialised GovWatch database at {db.db_path}")
    if args.stats:
        stats = {"records": db.count_records(), **db.get_ingestion_metrics()}
        print(json.dumps(stats, indent=2))


if __name__ == "__main__":
    main()
