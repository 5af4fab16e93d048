"""
Royalty Reconciler — Extraction Pipeline
pipeline.py

Bridges one "extraction requested" event to the session's canonical records:
  sources → extract → validate/enhance → merge into session

All per-run state lives on an ExtractionSession owned by the caller. The
pipeline keeps no flags, counters or maps of its own, and it has no timers.
Re-triggering and retries belong to whatever schedules run().
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from config import Settings, get_settings
from errors import SourceValidationError
from merge_engine import merge_all
from models import (
    CandidateRecord, CanonicalRecord, ExtractionRequest, ExtractionResult,
    ExtractionStats,
)
from record_extractor import RecordExtractor
from record_validator import enhance_all

logger = logging.getLogger(__name__)


@dataclass
class ExtractionSession:
    """Caller-owned state for a series of extraction passes over one account/page."""
    session_id: str = field(default_factory=lambda: uuid4().hex)
    canonical: dict[str, CanonicalRecord] = field(default_factory=dict)
    in_progress: bool = False
    passes: int = 0
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    last_run_at: Optional[datetime] = None

    @property
    def records(self) -> list[CanonicalRecord]:
        return list(self.canonical.values())


def total_revenue(records: Iterable[CandidateRecord]) -> float:
    return sum(r.total_earnings for r in records)


def _accumulate(total: ExtractionStats, run: ExtractionStats) -> None:
    for name in ExtractionStats.model_fields:
        setattr(total, name, getattr(total, name) + getattr(run, name))


class ExtractionPipeline:
    """
    Runs every source in a request through the extractor, validator and
    merge engine, folding results into the session's canonical map.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[RecordExtractor] = None,
    ):
        self.settings = settings or get_settings()
        self.extractor = extractor or RecordExtractor(self.settings)

    def run(
        self,
        request: ExtractionRequest,
        session: ExtractionSession,
        now: Optional[datetime] = None,
    ) -> ExtractionResult:
        if request is None:
            raise SourceValidationError("run() requires an ExtractionRequest, got None")
        if session is None:
            raise SourceValidationError("run() requires an ExtractionSession, got None")

        if session.in_progress:
            return ExtractionResult(success=False, message='Extraction already in progress')

        session.in_progress = True
        start = time.monotonic()
        try:
            return self._run(request, session, now or datetime.now(timezone.utc))
        finally:
            session.in_progress = False
            elapsed = int((time.monotonic() - start) * 1000)
            logger.debug(f"Session {session.session_id} pass took {elapsed}ms")

    def _run(
        self,
        request: ExtractionRequest,
        session: ExtractionSession,
        now: datetime,
    ) -> ExtractionResult:
        stats = ExtractionStats(sources_seen=len(request.sources))

        candidates: list[CandidateRecord] = []
        for source in request.sources:
            found = self.extractor.extract(source)
            logger.debug(f"{type(source).__name__} {getattr(source, 'source_tag', '?')}: {len(found)} candidates")
            candidates.extend(found)
        stats.candidates_found = len(candidates)

        accepted, rejected = enhance_all(candidates, self.settings)
        stats.candidates_accepted = len(accepted)
        stats.candidates_rejected = rejected

        before = set(session.canonical)
        session.canonical = merge_all(accepted, session.canonical, now)
        stats.new_records = len(set(session.canonical) - before)
        stats.merged_records = len(accepted) - stats.new_records

        session.passes += 1
        session.last_run_at = now
        _accumulate(session.stats, stats)

        records = session.records
        logger.info(
            f"Extraction pass {session.passes} ({request.reason}): "
            f"{stats.candidates_found} candidates, {stats.candidates_accepted} accepted, "
            f"{stats.new_records} new, {len(records)} canonical"
        )

        if not records:
            return ExtractionResult(
                success=False,
                message='No books found. Make sure the report page has data visible.',
                timestamp=now,
                stats=stats,
            )

        return ExtractionResult(
            success=True,
            message=f'Successfully extracted {len(records)} books',
            records=records,
            total_revenue=total_revenue(records),
            timestamp=now,
            stats=stats,
        )


# ============================================================
# Convenience: one pass with a throwaway session
# ============================================================

def run_extraction(
    request: ExtractionRequest,
    session: Optional[ExtractionSession] = None,
    settings: Optional[Settings] = None,
) -> ExtractionResult:
    return ExtractionPipeline(settings).run(request, session or ExtractionSession())
