import json
import sqlite3
from datetime import datetime, timezone

import pytest

from govwatch.database import ProcurementDatabase, main
from govwatch.models import METHOD_DIRECT_NEGOTIATION, METHOD_OPEN_TENDER, ProcurementRecord

CRAWLED_AT = datetime(2024, 6, 30, 8, 0, tzinfo=timezone.utc)


def make_record(**overrides):
    data = {
        "ministry": "Kementerian Kesihatan",
        "vendor": "Acme Sdn Bhd",
        "amount": 1000000.0,
        "method": METHOD_OPEN_TENDER,
        "category": "Bekalan",
        "date": "2024-03-01",
        "source_url": "https://myprocurement.treasury.gov.my/archive/results-tender",
        "crawled_at": CRAWLED_AT,
    }
    data.update(overrides)
    return ProcurementRecord(**data)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "govwatch.db"


@pytest.fixture
def db(db_path):
    return ProcurementDatabase(db_path=db_path)


def test_initialize_creates_schema(db_path):
    ProcurementDatabase(db_path=db_path)

    conn = sqlite3.connect(str(db_path))
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
    finally:
        conn.close()

    assert "records" in tables
    assert "ingestion_runs" in tables
    assert "idx_records_identity" in indexes


def test_initialize_is_idempotent(db_path):
    db = ProcurementDatabase(db_path=db_path)
    db.upsert_if_new(make_record())
    db.initialize()
    assert db.count_records() == 1


def test_insert_then_skip_duplicate(db):
    first = db.upsert_if_new(make_record())
    assert first.status == "inserted"

    second = db.upsert_if_new(make_record())
    assert second.status == "skipped"
    assert second.duplicate_of == first.record_id
    assert db.count_records() == 1


def test_identity_ignores_other_fields(db):
    first = db.upsert_if_new(make_record(title="Asal", reason=None))
    second = db.upsert_if_new(
        make_record(
            title="Tajuk lain",
            date="2025-01-01",
            method=METHOD_DIRECT_NEGOTIATION,
            reason="Pembekal tunggal",
            category="Kerja",
        )
    )

    assert second.status == "skipped"
    stored = db.get_record(first.record_id)
    assert stored["title"] == "Asal"
    assert stored["date"] == "2024-03-01"
    assert stored["method"] == METHOD_OPEN_TENDER


def test_different_identity_is_inserted(db):
    db.upsert_if_new(make_record())
    other_amount = db.upsert_if_new(make_record(amount=1000000.5))
    other_ministry = db.upsert_if_new(make_record(ministry="Kementerian Kewangan"))
    other_vendor = db.upsert_if_new(make_record(vendor="Acme Berhad"))

    assert {other_amount.status, other_ministry.status, other_vendor.status} == {"inserted"}
    assert db.count_records() == 4


def test_stored_record_fields(db):
    result = db.upsert_if_new(make_record(contract_url="https://example.test/c/1", title="Bekalan Ubat"))
    stored = db.get_record(result.record_id)

    assert stored["crawled_at"] == "2024-06-30T08:00:00Z"
    assert stored["contract_url"] == "https://example.test/c/1"
    assert stored["title"] == "Bekalan Ubat"
    assert db.find_by_identity("Acme Sdn Bhd", 1000000.0, "Kementerian Kesihatan")["id"] == result.record_id
    assert db.find_by_identity("Acme Sdn Bhd", 1.0, "Kementerian Kesihatan") is None


def test_persist_records_continues_past_failures(db):
    records = [
        make_record(vendor="Satu Sdn Bhd"),
        make_record(vendor="Rosak Sdn Bhd", amount=-5.0),
        make_record(vendor="Dua Sdn Bhd"),
        make_record(vendor="Satu Sdn Bhd"),
    ]
    run_id = db.start_ingestion_run(source="test")

    result = db.persist_records(records, ingestion_run_id=run_id)

    assert result.inserted_count == 2
    assert result.skipped_count == 1
    assert result.failed_count == 1
    assert result.processed == 4
    assert "Rosak Sdn Bhd" in result.errors[0]
    assert db.count_records() == 2


def test_ingestion_run_metrics(db):
    run_id = db.start_ingestion_run(source="scrape", metadata={"targets": ["a"]})
    db.persist_records(
        [make_record(), make_record(), make_record(vendor="Lain", amount=-1.0)],
        ingestion_run_id=run_id,
    )
    db.complete_ingestion_run(run_id, status="completed", metadata={"message": "ok"})

    failed_run = db.start_ingestion_run(source="scrape")
    db.complete_ingestion_run(failed_run, status="failed")

    metrics = db.get_ingestion_metrics()
    assert metrics["total_runs"] == 2
    assert metrics["failed_runs"] == 1
    assert metrics["records_processed"] == 3
    assert metrics["new_records"] == 1
    assert metrics["duplicate_records"] == 1
    assert metrics["failed_records"] == 1

    conn = sqlite3.connect(str(db.db_path))
    try:
        row = conn.execute("SELECT status, completed_at, metadata FROM ingestion_runs WHERE id = ?", (run_id,)).fetchone()
    finally:
        conn.close()
    assert row[0] == "completed"
    assert row[1] is not None
    assert json.loads(row[2]) == {"message": "ok"}


def test_list_records_filters(db):
    db.upsert_if_new(make_record(date="2024-01-01"))
    db.upsert_if_new(make_record(vendor="Terus Sdn Bhd", method=METHOD_DIRECT_NEGOTIATION, date="2024-02-01"))
    db.upsert_if_new(make_record(vendor="Kira Sdn Bhd", ministry="Kementerian Kewangan", date="2024-03-01"))

    all_records = db.list_records()
    assert [row["date"] for row in all_records] == ["2024-03-01", "2024-02-01", "2024-01-01"]

    direct = db.list_records(method=METHOD_DIRECT_NEGOTIATION)
    assert [row["vendor"] for row in direct] == ["Terus Sdn Bhd"]

    health = db.list_records(ministry="Kementerian Kesihatan", limit=1)
    assert len(health) == 1
    assert health[0]["vendor"] == "Terus Sdn Bhd"


def test_database_cli_init(tmp_path, capsys):
    path = tmp_path / "cli" / "govwatch.db"
    main(["--init", "--db-path", str(path)])

    assert path.exists()
    assert "Initialised GovWatch database" in capsys.readouterr().out


def test_database_cli_stats(db, capsys):
    db.persist_records([make_record()], ingestion_run_id=db.start_ingestion_run(source="test"))
    main(["--stats", "--db-path", str(db.db_path)])

    stats = json.loads(capsys.readouterr().out)
    assert stats["records"] == 1
    assert stats["total_runs"] == 1
    assert stats["new_records"] == 1
