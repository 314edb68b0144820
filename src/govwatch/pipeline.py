"""GovWatch scrape pipeline.

Drives one scrape run end to end: launch the browser, visit each archive page
in order while the response interceptor listens, fall back to DOM heuristics
when no usable JSON records were captured, normalize, persist, and always write diagnostics.
Only one run may be in flight per process.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .browser import SessionFactory, default_session_factory
from .config import GovWatchConfig
from .database import ProcurementDatabase
from .diagnostics import ERROR_SCREENSHOT_LABEL, Diagnostics
from .dom_extractor import extract_dom_records
from .interceptor import ResponseInterceptor
from .logging_config import get_logger
from .ministry_matching import MinistryMatcher
from .models import (
    STRATEGY_API,
    BrowserLaunchError,
    NavigationOutcome,
    PersistResult,
    RawExtractedRecord,
    TriggerResult,
)
from .normalizer import RecordNormalizer

ALREADY_RUNNING_MESSAGE = "A scrape is already running; try again when it finishes."


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"


class PipelineState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    REPORTING = "reporting"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Summary of a pipeline run."""

    run_id: int
    started_at: str
    completed_at: str = ""
    success: bool = False
    message: str = ""
    strategy: Optional[str] = None
    targets: List[Dict[str, Any]] = field(default_factory=list)
    failed_targets: List[str] = field(default_factory=list)
    api_records: int = 0
    dom_records: int = 0
    normalized_records: int = 0
    rejected_records: int = 0
    records_inserted: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    diagnostics_log: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def raw_records(self) -> int:
        return self.api_records + self.dom_records

    def exit_code(self) -> int:
        """Return appropriate exit code based on run status."""
        if not self.success:
            return 1
        if self.failed_targets or self.records_failed:
            return 2
        return 0

    def to_trigger_result(self) -> TriggerResult:
        return TriggerResult(success=self.success, count=self.normalized_records, message=self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "success": self.success,
            "message": self.message,
            "strategy": self.strategy,
            "targets": self.targets,
            "failed_targets": self.failed_targets,
            "api_records": self.api_records,
            "dom_records": self.dom_records,
            "normalized_records": self.normalized_records,
            "rejected_records": self.rejected_records,
            "records_inserted": self.records_inserted,
            "records_skipped": self.records_skipped,
            "records_failed": self.records_failed,
            "diagnostics_log": self.diagnostics_log,
            "errors": self.errors,
            "exit_code": self.exit_code(),
        }


class ScrapePipeline:
    """Main orchestrator for GovWatch scrape runs."""

    _run_lock = threading.Lock()

    def __init__(
        self,
        config: Optional[GovWatchConfig] = None,
        db: Optional[ProcurementDatabase] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        normalizer: Optional[RecordNormalizer] = None,
        diagnostics_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or GovWatchConfig()
        self.db = db or ProcurementDatabase(self.config.database_path)
        self.session_factory = session_factory or default_session_factory
        self.diagnostics_dir = Path(diagnostics_dir) if diagnostics_dir else self.config.diagnostics_dir
        self.logger = logger or get_logger("pipeline")

        if normalizer is None:
            matcher = MinistryMatcher() if self.config.canonicalize_ministries else None
            normalizer = RecordNormalizer(ministry_matcher=matcher)
        self.normalizer = normalizer

        self.state = PipelineState.IDLE
        self.state_history: List[Tuple[PipelineState, Optional[str]]] = []
        self.diagnostics: Optional[Diagnostics] = None

    # ------------------------------------------------------------------
    # Trigger interface
    # ------------------------------------------------------------------
    def trigger_scrape(self, *, dry_run: bool = False) -> TriggerResult:
        """Run a scrape synchronously and return the structured result."""
        return self.run_sync(dry_run=dry_run).to_trigger_result()

    async def trigger(self, *, dry_run: bool = False) -> TriggerResult:
        summary = await self.run(dry_run=dry_run)
        return summary.to_trigger_result()

    def run_sync(self, *, dry_run: bool = False) -> RunSummary:
        return asyncio.run(self.run(dry_run=dry_run))

    async def run(self, *, dry_run: bool = False) -> RunSummary:
        """Execute one scrape run unless another one is in flight.

        Args:
            dry_run: Extract and normalize without touching the database.

        Returns:
            RunSummary for the run. Failures are reported through
            ``success`` and ``message``; this method does not raise. A
            rejected concurrent call returns a summary with
            ``ALREADY_RUNNING_MESSAGE``.
        """
        if not self._run_lock.acquire(blocking=False):
            self.logger.warning("Scrape trigger rejected: a run is already in progress")
            return RunSummary(run_id=0, started_at=_utc_now(), completed_at=_utc_now(), message=ALREADY_RUNNING_MESSAGE)
        try:
            return await self._run(dry_run=dry_run)
        finally:
            self._run_lock.release()

    # ------------------------------------------------------------------
    # Run internals
    # ------------------------------------------------------------------
    def _transition(self, state: PipelineState, detail: Optional[str] = None) -> None:
        self.state = state
        self.state_history.append((state, detail))
        if self.diagnostics is not None:
            suffix = f" ({detail})" if detail else ""
            self.diagnostics.log(f"State: {state.value}{suffix}", logging.DEBUG)

    async def _run(self, *, dry_run: bool) -> RunSummary:
        self.state_history = []
        self.diagnostics = Diagnostics(self.diagnostics_dir)
        self.normalizer.reset_stats()

        run_id = 0
        summary = RunSummary(run_id=run_id, started_at=_utc_now())

        try:
            self.diagnostics.reset()
            if not dry_run:
                run_id = self.db.start_ingestion_run(
                    source="scrape",
                    metadata={"targets": [target.url for target in self.config.targets]},
                )
                summary.run_id = run_id
            self.diagnostics.log(f"Starting scrape run {run_id} (dry run: {dry_run})")

            raws = await self._extract(summary)
            if not raws:
                summary.message = (
                    "Extraction failed: 0 records found. The site may be blocking automated access; "
                    f"diagnostics saved to {self.diagnostics_dir}"
                )
                self.diagnostics.error(summary.message)
            else:
                self._normalize_and_persist(raws, summary, run_id=run_id, dry_run=dry_run)
                summary.success = True
        except BrowserLaunchError as exc:
            summary.message = f"Browser launch failed: {exc}"
            summary.errors.append(summary.message)
            self.diagnostics.error(summary.message)
        except Exception as exc:
            self.logger.exception(f"Scrape run failed: {exc}")
            summary.message = f"Scrape failed: {exc}"
            summary.errors.append(summary.message)
            self.diagnostics.error(summary.message)
        finally:
            self._report(summary, run_id=run_id, dry_run=dry_run)

        return summary

    async def _extract(self, summary: RunSummary) -> List[RawExtractedRecord]:
        self._transition(PipelineState.LAUNCHING)
        interceptor = ResponseInterceptor(self.config.interceptor)
        session = self.session_factory(self.config.browser, self.diagnostics)
        session.on_response(interceptor.handle_response)

        async with session:
            outcomes: List[NavigationOutcome] = []
            for target in self.config.targets:
                self._transition(PipelineState.NAVIGATING, target.url)
                outcome = await session.navigate(target.url, target.label)
                outcomes.append(outcome)
                summary.targets.append(
                    {"label": outcome.label, "url": outcome.url, "ok": outcome.ok, "error": outcome.error}
                )
                if not outcome.ok:
                    summary.failed_targets.append(target.label)
            await session.drain_responses()

            self._transition(PipelineState.EXTRACTING)
            raws = list(interceptor.records)
            summary.api_records = len(raws)
            if self._has_usable_records(raws):
                summary.strategy = STRATEGY_API
                self.diagnostics.log(f"Intercepted {len(raws)} records from network responses")
                return raws
            if raws:
                self.diagnostics.warning(
                    f"Intercepted {len(raws)} records but none passed validation; trying DOM heuristics"
                )
            else:
                self.diagnostics.log("No records intercepted; trying DOM heuristics")

            dom_raws: List[RawExtractedRecord] = []
            for outcome in outcomes:
                if outcome.html:
                    dom_raws.extend(extract_dom_records(outcome.html, outcome.url))
            summary.dom_records = len(dom_raws)
            if self._has_usable_records(dom_raws):
                summary.strategy = "dom"
                self.diagnostics.log(f"DOM heuristics recovered {len(dom_raws)} records")
                return dom_raws
            if dom_raws:
                self.diagnostics.warning(f"DOM heuristics found {len(dom_raws)} records but none passed validation")

            await self._capture_failure_state(session)
            return []

    def _has_usable_records(self, raws: List[RawExtractedRecord]) -> bool:
        return any(self.normalizer.accepts(raw) for raw in raws)

    async def _capture_failure_state(self, session) -> None:
        html = await session.content()
        self.diagnostics.write_dom_dump(html)
        await session.screenshot(self.diagnostics.screenshot_path(ERROR_SCREENSHOT_LABEL), full_page=True)

    def _normalize_and_persist(
        self,
        raws: List[RawExtractedRecord],
        summary: RunSummary,
        *,
        run_id: int,
        dry_run: bool,
    ) -> None:
        self._transition(PipelineState.NORMALIZING)
        records = self.normalizer.normalize_many(raws)
        summary.normalized_records = len(records)
        summary.rejected_records = self.normalizer.stats.rejected
        self.diagnostics.log(
            f"Normalized {len(records)} of {len(raws)} records ({summary.rejected_records} rejected)"
        )

        if dry_run:
            persisted = PersistResult()
            self.diagnostics.log("Dry run: skipping persistence")
        else:
            self._transition(PipelineState.PERSISTING)
            persisted = self.db.persist_records(records, ingestion_run_id=run_id)
            summary.errors.extend(persisted.errors)

        summary.records_inserted = persisted.inserted_count
        summary.records_skipped = persisted.skipped_count
        summary.records_failed = persisted.failed_count
        summary.message = (
            f"Scrape completed: {len(records)} records extracted "
            f"({persisted.inserted_count} new, {persisted.skipped_count} already stored)"
        )
        self.diagnostics.log(summary.message)

    def _report(self, summary: RunSummary, *, run_id: int, dry_run: bool) -> None:
        self._transition(PipelineState.REPORTING)
        summary.completed_at = _utc_now()
        log_path = self.diagnostics.flush()
        summary.diagnostics_log = str(log_path) if log_path else None

        if not dry_run and run_id:
            try:
                self.db.complete_ingestion_run(
                    run_id,
                    status="completed" if summary.success else "failed",
                    metadata={
                        "message": summary.message,
                        "strategy": summary.strategy,
                        "failed_targets": summary.failed_targets,
                    },
                )
            except sqlite3.Error as exc:
                self.logger.error(f"Could not close ingestion run {run_id}: {exc}")

        self._transition(PipelineState.IDLE if summary.success else PipelineState.FAILED)
        self.logger.info(f"Run finished: {summary.message}")
