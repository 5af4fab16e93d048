"""
Royalty Reconciler — Validator / Enhancer
record_validator.py

Rejects candidates without minimum signal and fills derived fields.
"""
from __future__ import annotations
import hashlib
import logging
from typing import Iterable, Optional

from config import Settings, get_settings
from field_classifier import marketplace_for_region
from models import CandidateRecord, normalize_title

logger = logging.getLogger(__name__)


def fallback_record_id(title: str) -> str:
    """Stable id for records without an identifier: same title text, same id, every run."""
    digest = hashlib.sha256(normalize_title(title).encode('utf-8')).hexdigest()
    return f't_{digest[:16]}'


def enhance(
    candidate: Optional[CandidateRecord],
    settings: Optional[Settings] = None,
) -> Optional[CandidateRecord]:
    """
    Returns an enhanced copy of the candidate, or None when it is rejected.

    A candidate is kept only with a non-empty title and at least one of
    total_earnings / units_sold / read_count above zero.
    """
    if candidate is None:
        return None
    settings = settings or get_settings()

    if not candidate.title or not candidate.title.strip():
        return None
    if not candidate.has_signal:
        return None

    updates: dict = {}
    if candidate.read_count > 0 and candidate.read_derived_earnings == 0:
        updates['read_derived_earnings'] = candidate.read_count * settings.read_rate
    region = candidate.region or settings.default_region
    if not candidate.region:
        updates['region'] = region
    if not candidate.marketplace:
        if region == settings.default_region:
            updates['marketplace'] = settings.default_marketplace
        else:
            updates['marketplace'] = marketplace_for_region(region)
    if candidate.identifier:
        updates['record_id'] = candidate.identifier
    elif not candidate.record_id:
        updates['record_id'] = fallback_record_id(candidate.title)

    return candidate.model_copy(update=updates)


def enhance_all(
    candidates: Iterable[CandidateRecord],
    settings: Optional[Settings] = None,
) -> tuple[list[CandidateRecord], int]:
    """Enhance a batch. Returns (accepted, rejected_count)."""
    settings = settings or get_settings()
    accepted = []
    rejected = 0
    for c in candidates:
        out = enhance(c, settings)
        if out is None:
            rejected += 1
        else:
            accepted.append(out)
    if rejected:
        logger.debug(f"Rejected {rejected} candidates without title or metrics")
    return accepted, rejected
