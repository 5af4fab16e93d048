"""
Royalty Reconciler — Campaign Normalizer
campaigns.py

Turns raw advertising rows (API payload dicts or a scraped campaign table)
into AdCampaignRecords.
"""
from __future__ import annotations
import logging
import re
from typing import Any, Iterable, Optional

from field_classifier import detect_region
from models import AdCampaignRecord, TabularSource, parse_number

logger = logging.getLogger(__name__)

NAME_KEYS = ('campaignName', 'campaign_name', 'name', 'campaign')
SPEND_KEYS = ('spend', 'cost', 'adSpend')
SALES_KEYS = ('sales', 'attributedSales', 'attributedSales14d', 'adSales')
ACOS_KEYS = ('acos', 'ACOS', 'acosPercent')
ID_KEYS = ('campaignId', 'campaign_id', 'id')

# Maps campaign table headers to AdCampaignRecord fields
CAMPAIGN_HEADER_MAP: dict[str, str] = {
    'campaign': 'campaign_name',
    'campaign name': 'campaign_name',
    'campaigns': 'campaign_name',
    'name': 'campaign_name',
    'spend': 'spend',
    'cost': 'spend',
    'sales': 'sales',
    'attributed sales': 'sales',
    'acos': 'acos',
    'campaign id': 'campaign_id',
    'marketplace': 'marketplace',
}


def parse_acos(value: Any) -> Optional[float]:
    """ACOS as a ratio. '30%' becomes 0.3; bare numbers are already ratios."""
    if value is None or isinstance(value, bool):
        return None
    is_percent = isinstance(value, str) and '%' in value
    num = parse_number(value)
    if num is None or num < 0:
        return None
    return num / 100 if is_percent else num


def _first(raw: dict, keys: Iterable[str]) -> Any:
    for k in keys:
        if k in raw and raw[k] not in (None, ''):
            return raw[k]
    return None


def normalize_campaign(raw: Any) -> Optional[AdCampaignRecord]:
    if not isinstance(raw, dict):
        return None
    name = _first(raw, NAME_KEYS)
    if not isinstance(name, str) or not name.strip():
        return None

    spend = parse_number(_first(raw, SPEND_KEYS)) or 0.0
    sales = parse_number(_first(raw, SALES_KEYS)) or 0.0
    acos = parse_acos(_first(raw, ACOS_KEYS))
    if acos is None:
        acos = spend / sales if sales > 0 else 0.0

    campaign_id = _first(raw, ID_KEYS)
    marketplace = _first(raw, ('marketplace', 'countryCode'))
    return AdCampaignRecord(
        campaign_name=name.strip(),
        spend=max(spend, 0.0),
        sales=max(sales, 0.0),
        acos=acos,
        campaign_id=str(campaign_id) if campaign_id is not None else None,
        marketplace=str(marketplace) if marketplace is not None else None,
    )


def normalize_campaigns(rows: Optional[Iterable[Any]]) -> list[AdCampaignRecord]:
    campaigns = []
    skipped = 0
    for raw in rows or []:
        c = normalize_campaign(raw)
        if c is None:
            skipped += 1
        else:
            campaigns.append(c)
    if skipped:
        logger.debug(f"Skipped {skipped} campaign rows without a name")
    return campaigns


def _map_campaign_header(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    key = re.sub(r'\s+', ' ', text.strip().lower().rstrip(':'))
    if key in CAMPAIGN_HEADER_MAP:
        return CAMPAIGN_HEADER_MAP[key]
    for known in sorted(CAMPAIGN_HEADER_MAP, key=len, reverse=True):
        if re.search(r'\b' + re.escape(known) + r'\b', key):
            return CAMPAIGN_HEADER_MAP[known]
    return None


def campaigns_from_table(source: TabularSource) -> list[AdCampaignRecord]:
    """Campaign table with a header row. Columns without a known header are ignored."""
    rows = source.rows if isinstance(source.rows, (list, tuple)) else []
    if len(rows) < 2 or not isinstance(rows[0], (list, tuple)):
        return []
    fields = [_map_campaign_header(h) for h in rows[0]]
    if 'campaign_name' not in fields:
        logger.warning(f"Campaign table {source.source_tag} has no campaign name column")
        return []

    raw_rows = []
    for row in rows[1:]:
        if not isinstance(row, (list, tuple)):
            continue
        raw = {f: cell for f, cell in zip(fields, row) if f}
        if 'marketplace' in raw:
            raw['marketplace'] = detect_region(raw['marketplace']) or raw['marketplace']
        raw_rows.append(raw)
    return normalize_campaigns(raw_rows)
