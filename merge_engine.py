"""
Royalty Reconciler — Merge Engine
merge_engine.py

Folds candidate observations into canonical records keyed by identifier
(preferred) or normalized title. Numeric metrics take the maximum seen, since
every extraction method can under-report but none over-reports; string
fields keep the first non-empty value, preferring what is already canonical.

The accumulator is not safe for interleaved writers. Callers feeding one map
from several passes must let each merge_all() finish before starting the next.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from models import CandidateRecord, CanonicalRecord, normalize_title

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ('total_earnings', 'units_sold', 'read_count', 'read_derived_earnings')
STRING_FIELDS = ('title', 'identifier', 'region', 'marketplace', 'source_tag', 'record_id')


def dedup_key(record: CandidateRecord) -> str:
    """Identifier when present, else the lower-cased trimmed title."""
    if record.identifier and record.identifier.strip():
        return record.identifier.strip()
    return normalize_title(record.title)


def to_canonical(
    candidate: CandidateRecord,
    key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CanonicalRecord:
    data = candidate.model_dump(exclude={'dedup_key', 'last_updated'})
    return CanonicalRecord(
        **data,
        dedup_key=key or dedup_key(candidate),
        last_updated=now or datetime.now(timezone.utc),
    )


def merge_records(
    existing: CanonicalRecord,
    candidate: CandidateRecord,
    now: Optional[datetime] = None,
) -> CanonicalRecord:
    """Field-wise merge: max of numerics, first non-empty string (existing wins)."""
    updates: dict = {}
    for f in NUMERIC_FIELDS:
        updates[f] = max(getattr(existing, f), getattr(candidate, f))
    for f in STRING_FIELDS:
        updates[f] = getattr(existing, f) or getattr(candidate, f)
    # Earliest sighting is kept; observed_at never moves forward
    updates['observed_at'] = min(existing.observed_at, candidate.observed_at)
    updates['last_updated'] = now or datetime.now(timezone.utc)
    return existing.model_copy(update=updates)


def merge_all(
    candidates: Iterable[CandidateRecord],
    existing: Optional[Mapping[str, CanonicalRecord]] = None,
    now: Optional[datetime] = None,
) -> dict[str, CanonicalRecord]:
    """
    Merge candidates into a copy of `existing` and return it.

    Numeric results do not depend on candidate order. The input mapping is
    left untouched.
    """
    now = now or datetime.now(timezone.utc)
    acc: dict[str, CanonicalRecord] = dict(existing or {})
    new_count = 0
    merged_count = 0

    for c in candidates:
        if c is None or not c.title:
            continue
        key = dedup_key(c)
        if key in acc:
            acc[key] = merge_records(acc[key], c, now)
            merged_count += 1
        else:
            acc[key] = to_canonical(c, key, now)
            new_count += 1

    logger.debug(f"Merge: {new_count} new, {merged_count} merged, {len(acc)} canonical")
    return acc
