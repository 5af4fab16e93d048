"""
Royalty Reconciler — Cross-Dataset Reconciler
reconciler.py

Joins canonical publishing records to advertising campaigns and computes
per-title net profit.

Matching is symmetric truncated-prefix containment: the first N characters
(default 20) of either name, lower-cased, must appear inside the other name.
Campaign names are usually the book title with a suffix ("... - Auto",
"... Broad") or a shortened title. A campaign can match several titles;
every match is counted and reported under `ambiguous_campaigns`.
"""
from __future__ import annotations
import logging
from typing import Iterable, Optional

from config import Settings, get_settings
from models import (
    AdCampaignRecord, CanonicalRecord, CombinedProfitabilityRecord,
    ProfitabilitySummary, ReconciliationReport,
)

logger = logging.getLogger(__name__)


def titles_match(title: Optional[str], campaign_name: Optional[str], prefix_length: int = 20) -> bool:
    if not title or not campaign_name:
        return False
    t = title.strip().lower()
    c = campaign_name.strip().lower()
    if not t or not c:
        return False
    return t[:prefix_length] in c or c[:prefix_length] in t


def _combine_one(
    record: CanonicalRecord,
    matches: list[AdCampaignRecord],
) -> CombinedProfitabilityRecord:
    ad_spend = sum(a.spend for a in matches)
    ad_sales = sum(a.sales for a in matches)
    acos = sum(a.acos for a in matches) / len(matches) if matches else 0.0
    return CombinedProfitabilityRecord(
        title=record.title,
        identifier=record.identifier,
        region=record.region,
        earnings=record.total_earnings,
        units_sold=record.units_sold,
        read_count=record.read_count,
        ad_spend=ad_spend,
        ad_sales=ad_sales,
        acos=acos,
        net_profit=record.total_earnings - ad_spend,
        matched_campaigns=[a.campaign_name for a in matches],
    )


def combine(
    publishing: Iterable[CanonicalRecord],
    advertising: Iterable[AdCampaignRecord],
    settings: Optional[Settings] = None,
) -> list[CombinedProfitabilityRecord]:
    """Exactly one combined record per publishing record, in input order."""
    settings = settings or get_settings()
    ads = list(advertising or [])
    combined = []
    for record in publishing or []:
        matches = [
            a for a in ads
            if titles_match(record.title, a.campaign_name, settings.match_prefix_length)
        ]
        combined.append(_combine_one(record, matches))
    return combined


def summarize(
    combined: list[CombinedProfitabilityRecord],
    advertising: list[AdCampaignRecord],
) -> ProfitabilitySummary:
    total_revenue = sum(c.earnings for c in combined)
    total_spend = sum(c.ad_spend for c in combined)
    return ProfitabilitySummary(
        total_revenue=total_revenue,
        total_spend=total_spend,
        total_ad_spend_all=sum(a.spend for a in advertising),
        net_revenue=total_revenue - total_spend,
        total_orders=sum(c.units_sold for c in combined),
        total_reads=sum(c.read_count for c in combined),
        total_titles=len(combined),
        total_campaigns=len(advertising),
    )


def reconcile(
    publishing: Iterable[CanonicalRecord],
    advertising: Iterable[AdCampaignRecord],
    settings: Optional[Settings] = None,
) -> ReconciliationReport:
    """combine() plus the aggregate summary and the campaigns that matched zero or several titles."""
    settings = settings or get_settings()
    pubs = list(publishing or [])
    ads = list(advertising or [])
    combined = combine(pubs, ads, settings)

    hits: dict[str, list[str]] = {}
    for row in combined:
        for name in row.matched_campaigns:
            hits.setdefault(name, []).append(row.title)

    unmatched = [a.campaign_name for a in ads if a.campaign_name not in hits]
    ambiguous = {name: titles for name, titles in hits.items() if len(titles) > 1}
    if ambiguous:
        logger.warning(f"{len(ambiguous)} campaigns matched more than one title: {sorted(ambiguous)}")

    summary = summarize(combined, ads)
    logger.info(
        f"Reconciled {len(pubs)} titles against {len(ads)} campaigns: "
        f"revenue={summary.total_revenue:.2f} spend={summary.total_spend:.2f} "
        f"unmatched={len(unmatched)}"
    )
    return ReconciliationReport(
        combined=combined,
        summary=summary,
        unmatched_campaigns=unmatched,
        ambiguous_campaigns=ambiguous,
    )
