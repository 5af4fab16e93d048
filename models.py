"""
Royalty Reconciler — Core Models
models.py
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
import math
import re

# ============================================================
# Enums
# ============================================================

class FieldKind(str, Enum):
    TITLE = "title"
    IDENTIFIER = "identifier"
    MONEY = "money"
    COUNT = "count"
    REGION = "region"
    UNKNOWN = "unknown"

class MetricKind(str, Enum):
    UNITS = "units"
    READS = "reads"

class PositionHint(str, Enum):
    CELL = "cell"
    HEADING = "heading"
    OBJECT_FIELD = "object_field"

# ============================================================
# Classification Models
# ============================================================

@dataclass(frozen=True)
class HeaderHint:
    """Field kind implied by a column header."""
    kind: FieldKind
    metric: Optional[MetricKind] = None


@dataclass
class Classification:
    kind: FieldKind = FieldKind.UNKNOWN
    value: Any = None
    metric: Optional[MetricKind] = None

    @property
    def is_known(self) -> bool:
        return self.kind != FieldKind.UNKNOWN


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ============================================================
# Record Models
# ============================================================

class _RecordBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CandidateRecord(_RecordBase):
    """One observation of a title from a single extraction method."""
    title: str
    identifier: Optional[str] = None
    total_earnings: float = Field(default=0.0, ge=0)
    units_sold: float = Field(default=0, ge=0)
    read_count: float = Field(default=0, ge=0)
    read_derived_earnings: float = Field(default=0.0, ge=0)
    region: str = "US"
    marketplace: Optional[str] = None
    source_tag: str = "unknown"
    observed_at: datetime = Field(default_factory=_utcnow)
    record_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return re.sub(r'\s+', ' ', v).strip()

    @property
    def has_signal(self) -> bool:
        return self.total_earnings > 0 or self.units_sold > 0 or self.read_count > 0


class CanonicalRecord(CandidateRecord):
    """Merged view of every candidate sharing one dedup key."""
    dedup_key: str
    last_updated: datetime = Field(default_factory=_utcnow)


class AdCampaignRecord(_RecordBase):
    campaign_name: str
    spend: float = Field(default=0.0, ge=0)
    sales: float = Field(default=0.0, ge=0)
    acos: float = Field(default=0.0, ge=0)
    campaign_id: Optional[str] = None
    marketplace: Optional[str] = None


class CombinedProfitabilityRecord(_RecordBase):
    title: str
    identifier: Optional[str] = None
    region: str = "US"
    earnings: float = 0.0
    units_sold: float = 0
    read_count: float = 0
    ad_spend: float = 0.0
    ad_sales: float = 0.0
    acos: float = 0.0
    net_profit: float = 0.0
    matched_campaigns: list[str] = Field(default_factory=list)


class ProfitabilitySummary(_RecordBase):
    total_revenue: float = 0.0
    total_spend: float = 0.0
    total_ad_spend_all: float = 0.0
    net_revenue: float = 0.0
    total_orders: float = 0
    total_reads: float = 0
    total_titles: int = 0
    total_campaigns: int = 0


class ReconciliationReport(_RecordBase):
    combined: list[CombinedProfitabilityRecord] = Field(default_factory=list)
    summary: ProfitabilitySummary = Field(default_factory=ProfitabilitySummary)
    unmatched_campaigns: list[str] = Field(default_factory=list)
    # campaign name -> every title it was counted against
    ambiguous_campaigns: dict[str, list[str]] = Field(default_factory=dict)

# ============================================================
# Analytics Models
# ============================================================

class RegionBreakdown(_RecordBase):
    region: str
    revenue: float = 0.0
    sales: float = 0


class MonthlyTrend(_RecordBase):
    month: str
    revenue: float = 0.0
    sales: float = 0
    reads: float = 0


class PublishingSummary(_RecordBase):
    total_titles: int = 0
    total_revenue: float = 0.0
    total_sales: float = 0
    total_reads: float = 0
    top_titles: list[CanonicalRecord] = Field(default_factory=list)
    region_breakdown: list[RegionBreakdown] = Field(default_factory=list)
    monthly_trends: list[MonthlyTrend] = Field(default_factory=list)

# ============================================================
# Source Models (extractor input)
# ============================================================

@dataclass
class TabularSource:
    """Ordered rows of ordered cell texts. First row is the header when has_header."""
    rows: list[list[str]]
    has_header: bool = True
    source_tag: str = "table"


@dataclass
class WidgetSource:
    """A container's full text content plus the text of its heading-like descendants."""
    text: str
    headings: list[str] = field(default_factory=list)
    source_tag: str = "widget"


@dataclass
class NestedObjectSource:
    """Arbitrary JSON-like value (dicts, lists, scalars). May contain cycles."""
    data: Any
    source_tag: str = "object"


Source = Union[TabularSource, WidgetSource, NestedObjectSource]

# ============================================================
# Pipeline Models
# ============================================================

@dataclass
class ExtractionRequest:
    """An explicit request to run one extraction pass over some sources."""
    sources: list[Source] = field(default_factory=list)
    reason: str = "manual"
    requested_at: datetime = field(default_factory=_utcnow)


class ExtractionStats(_RecordBase):
    sources_seen: int = 0
    candidates_found: int = 0
    candidates_accepted: int = 0
    candidates_rejected: int = 0
    new_records: int = 0
    merged_records: int = 0


class ExtractionResult(_RecordBase):
    success: bool
    message: str
    records: list[CanonicalRecord] = Field(default_factory=list)
    total_revenue: float = 0.0
    timestamp: datetime = Field(default_factory=_utcnow)
    source: str = "royalty_reports"
    extraction_method: str = "multi_method"
    stats: ExtractionStats = Field(default_factory=ExtractionStats)

# ============================================================
# Utility: Number Parsers
# ============================================================

_NUMBER_RE = re.compile(r'-?\d[\d,]*(?:\.\d+)?|-?\.\d+')
# Exponent right after the number ("1e999"): refuse rather than truncate
_EXPONENT_TAIL_RE = re.compile(r'[eE][+-]?\d')


def parse_number(text: Any) -> Optional[float]:
    """Parse '1,234.50', '$12', '30%', 42 into float. Returns None when nothing numeric is found."""
    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        try:
            value = float(text)
        except OverflowError:
            return None
        return value if math.isfinite(value) else None
    if not isinstance(text, str):
        return None
    m = _NUMBER_RE.search(text)
    if not m:
        return None
    if _EXPONENT_TAIL_RE.match(text, m.end()):
        return None
    try:
        value = float(m.group(0).replace(',', ''))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def normalize_title(title: Optional[str]) -> str:
    """Lower-cased, trimmed, whitespace-collapsed title used for dedup keys."""
    if not title:
        return ''
    return re.sub(r'\s+', ' ', title).strip().lower()
