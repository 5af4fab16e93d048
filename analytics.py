"""
Royalty Reconciler — Publishing Analytics
analytics.py

Totals, top titles, region breakdown and monthly trends over canonical records.
"""
from __future__ import annotations
from typing import Iterable, Optional

from config import Settings, get_settings
from models import (
    CanonicalRecord, MonthlyTrend, PublishingSummary, RegionBreakdown,
)


def top_titles(records: list[CanonicalRecord], limit: int = 5) -> list[CanonicalRecord]:
    return sorted(records, key=lambda r: r.total_earnings, reverse=True)[:limit]


def region_breakdown(records: Iterable[CanonicalRecord]) -> list[RegionBreakdown]:
    regions: dict[str, RegionBreakdown] = {}
    for r in records:
        code = r.region or 'Unknown'
        entry = regions.setdefault(code, RegionBreakdown(region=code))
        entry.revenue += r.total_earnings
        entry.sales += r.units_sold
    return sorted(regions.values(), key=lambda e: e.revenue, reverse=True)


def monthly_trends(records: Iterable[CanonicalRecord], months: int = 12) -> list[MonthlyTrend]:
    """Per-month totals keyed YYYY-MM on last_updated; only the latest `months` are kept."""
    trends: dict[str, MonthlyTrend] = {}
    for r in records:
        month = r.last_updated.strftime('%Y-%m')
        entry = trends.setdefault(month, MonthlyTrend(month=month))
        entry.revenue += r.total_earnings
        entry.sales += r.units_sold
        entry.reads += r.read_count
    ordered = [trends[k] for k in sorted(trends)]
    return ordered[-months:] if months > 0 else []


def summarize_publishing(
    records: Iterable[CanonicalRecord],
    settings: Optional[Settings] = None,
) -> PublishingSummary:
    settings = settings or get_settings()
    recs = list(records or [])
    return PublishingSummary(
        total_titles=len(recs),
        total_revenue=sum(r.total_earnings for r in recs),
        total_sales=sum(r.units_sold for r in recs),
        total_reads=sum(r.read_count for r in recs),
        top_titles=top_titles(recs, settings.top_titles_limit),
        region_breakdown=region_breakdown(recs),
        monthly_trends=monthly_trends(recs, settings.trend_months),
    )
