"""Tests for the network response interceptor."""

import json
from pathlib import Path

import pytest

from govwatch.config import InterceptorSettings
from govwatch.interceptor import ResponseInterceptor, find_record_objects, has_amount_key
from govwatch.normalizer import RecordNormalizer

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DIRECT_API = "https://myprocurement.treasury.gov.my/api/archive/direct-negotiations?page=1"
TENDER_API = "https://myprocurement.treasury.gov.my/api/archive/results-tender?page=1"


class FakeResponse:
    """Minimal stand-in for a Playwright response."""

    def __init__(self, url, body, content_type="application/json", fail=False):
        self.url = url
        self.headers = {"content-type": content_type}
        self._body = body
        self._fail = fail
        self.text_calls = 0

    async def text(self):
        self.text_calls += 1
        if self._fail:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return self._body


@pytest.fixture
def api_body():
    return (DATA_DIR / "api_response.json").read_text(encoding="utf-8")


@pytest.fixture
def interceptor():
    return ResponseInterceptor(InterceptorSettings())


def test_has_amount_key():
    assert has_amount_key({"nilai_perolehan": "RM 1"})
    assert has_amount_key({"hargaKontrak": 5})
    assert has_amount_key({"Price": 5})
    assert not has_amount_key({"name": "kementerian"})


def test_find_record_objects_unwraps_nested_payloads(api_body):
    items = list(find_record_objects(json.loads(api_body)))
    assert [item["_id"] for item in items] == ["65f0c1", "65f0c2"]


def test_find_record_objects_accepts_top_level_array():
    payload = [{"amount": 1, "vendor": "A"}, {"amount": 2, "vendor": "B"}, "noise"]
    assert len(list(find_record_objects(payload))) == 2


def test_ingest_body_builds_raw_records(interceptor, api_body):
    added = interceptor.ingest_body(DIRECT_API, api_body)

    assert added == 2
    assert interceptor.matched_responses == 1
    first, second = interceptor.records
    assert first.strategy == "api"
    assert first.source_url == DIRECT_API
    assert first.fields["nilai_perolehan"] == "RM 1,250,000.00"
    assert "meta" not in first.fields
    assert "aktif" not in second.fields
    assert first.contract_url == "https://myprocurement.treasury.gov.my/archive/direct-negotiations/65f0c1"


def test_every_captured_amount_key_is_read_by_the_normalizer(interceptor):
    body = json.dumps([{"kementerian": "Kementerian Kewangan", "harga_kontrak": "RM 5,000.00"}])

    assert interceptor.ingest_body(TENDER_API, body) == 1
    record = RecordNormalizer().normalize(interceptor.records[0])
    assert record.amount == 5000.0


def test_contract_url_template_follows_response_url(interceptor):
    assert interceptor.contract_url_for("t-9", TENDER_API) == (
        "https://myprocurement.treasury.gov.my/archive/results-tender/t-9"
    )
    assert interceptor.contract_url_for(None, TENDER_API) is None
    assert interceptor.contract_url_for("  ", TENDER_API) is None


def test_bodies_without_markers_are_ignored(interceptor):
    assert interceptor.ingest_body(TENDER_API, json.dumps([{"vendor": "A"}])) == 0
    assert interceptor.ingest_body(TENDER_API, "") == 0
    assert interceptor.records == []


def test_invalid_json_is_counted_not_raised(interceptor):
    assert interceptor.ingest_body(TENDER_API, "<html>nilai</html>") == 0
    assert interceptor.parse_failures == 1


@pytest.mark.asyncio
async def test_handle_response_reads_json_responses(interceptor, api_body):
    response = FakeResponse(TENDER_API, api_body, content_type="application/json; charset=utf-8")
    await interceptor.handle_response(response)

    assert response.text_calls == 1
    assert len(interceptor.records) == 2


@pytest.mark.asyncio
async def test_handle_response_accepts_text_plain(interceptor):
    body = json.dumps([{"amount": "RM 5,000.00", "vendor": "Plain Text Sdn Bhd"}])
    await interceptor.handle_response(FakeResponse(TENDER_API, body, content_type="text/plain"))

    assert len(interceptor.records) == 1


@pytest.mark.asyncio
async def test_handle_response_skips_other_content_types(interceptor, api_body):
    response = FakeResponse(TENDER_API, api_body, content_type="text/html")
    await interceptor.handle_response(response)

    assert response.text_calls == 0
    assert interceptor.records == []


@pytest.mark.asyncio
async def test_handle_response_skips_ignored_hosts(interceptor, api_body):
    response = FakeResponse("https://www.google-analytics.com/collect", api_body)
    await interceptor.handle_response(response)

    assert response.text_calls == 0
    assert interceptor.records == []


@pytest.mark.asyncio
async def test_handle_response_survives_unreadable_body(interceptor):
    await interceptor.handle_response(FakeResponse(TENDER_API, "", fail=True))
    assert interceptor.records == []


def test_clear_resets_state(interceptor, api_body):
    interceptor.ingest_body(TENDER_API, api_body)
    interceptor.clear()

    assert interceptor.records == []
    assert interceptor.matched_responses == 0
