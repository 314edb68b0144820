"""Network response interceptor.

The archive pages are single-page apps that fetch their listings as JSON.
The interceptor watches every response the page receives, picks the ones that
look like procurement data and turns the matching objects into raw records.
It never blocks or alters the responses it inspects.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, List, Mapping, Optional

from playwright.async_api import Error as PlaywrightError

from .config import InterceptorSettings
from .logging_config import get_logger
from .models import STRATEGY_API, RawExtractedRecord
from .parser_utils import FIELD_ALIASES, is_amount_key, pick_field

logger = get_logger("interceptor")

JSON_CONTENT_TYPES = ("json", "plain")
MAX_SEARCH_DEPTH = 8


def has_amount_key(item: Mapping[str, Any]) -> bool:
    """True when an object carries a price/amount-like key.

    Uses the same key test as :func:`govwatch.parser_utils.pick_amount`, so
    every accepted object has its amount read by the normalizer.
    """
    known = set(FIELD_ALIASES["amount"])
    return any(key in known or is_amount_key(key) for key in item.keys())


def find_record_objects(payload: Any, depth: int = 0) -> Iterator[Mapping[str, Any]]:
    """Yield objects inside arrays that look like procurement records.

    Objects without an amount-like key are searched further, so wrappers such
    as ``{"data": {"items": [...]}}`` are unwrapped at any depth.
    """
    if depth > MAX_SEARCH_DEPTH:
        return
    if isinstance(payload, list):
        for item in payload:
            if isinstance(item, dict) and has_amount_key(item):
                yield item
            elif isinstance(item, (dict, list)):
                yield from find_record_objects(item, depth + 1)
    elif isinstance(payload, dict):
        for value in payload.values():
            if isinstance(value, (dict, list)):
                yield from find_record_objects(value, depth + 1)


class ResponseInterceptor:
    """Accumulates raw records from JSON responses seen during a session."""

    def __init__(self, settings: Optional[InterceptorSettings] = None) -> None:
        self.settings = settings or InterceptorSettings()
        self.records: List[RawExtractedRecord] = []
        self.matched_responses = 0
        self.parse_failures = 0

    def clear(self) -> None:
        self.records.clear()
        self.matched_responses = 0
        self.parse_failures = 0

    def is_candidate(self, url: str, content_type: str) -> bool:
        lowered_url = url.lower()
        if any(fragment in lowered_url for fragment in self.settings.ignored_url_substrings):
            return False
        content_type = content_type.lower()
        return any(kind in content_type for kind in JSON_CONTENT_TYPES)

    def has_marker(self, body: str) -> bool:
        lowered = body.lower()
        return any(marker.lower() in lowered for marker in self.settings.body_markers)

    def contract_url_for(self, record_id: Any, response_url: str) -> Optional[str]:
        if record_id is None or str(record_id).strip() == "":
            return None
        templates = self.settings.contract_url_templates
        template = templates.get("direct") if "direct" in response_url.lower() else None
        template = template or templates.get("default")
        if not template:
            return None
        return template.format(id=str(record_id).strip())

    async def handle_response(self, response: Any) -> None:
        """Response callback registered on the browser session."""
        url = str(response.url)
        headers = response.headers or {}
        content_type = headers.get("content-type", "")
        if not self.is_candidate(url, content_type):
            return

        try:
            body = await response.text()
        except (PlaywrightError, UnicodeDecodeError) as exc:
            # Redirects and aborted requests have no body
            logger.debug(f"No body for {url}: {exc}")
            return

        self.ingest_body(url, body)

    def ingest_body(self, url: str, body: str) -> int:
        """Extract records from one response body; returns how many were added."""
        if not body or not self.has_marker(body):
            return 0

        try:
            payload = json.loads(body)
        except ValueError:
            self.parse_failures += 1
            logger.debug(f"Ignoring non-JSON response from {url}")
            return 0

        added = 0
        for item in find_record_objects(payload):
            record_id = pick_field(item, FIELD_ALIASES["id"])
            self.records.append(
                RawExtractedRecord.from_mapping(
                    item,
                    source_url=url,
                    strategy=STRATEGY_API,
                    contract_url=self.contract_url_for(record_id, url),
                )
            )
            added += 1

        if added:
            self.matched_responses += 1
            logger.info(f"Captured {added} records from {url}")
        return added
