"""
Royalty Reconciler — Field Classifier
field_classifier.py

Classifies a raw text token (table cell, heading, object field) as one of
title / identifier / money / count / region / unknown. The cascade is a
plain ordered table of (predicate, FieldKind) pairs so each rule can be
tested on its own; the first rule that matches wins.
"""
from __future__ import annotations
import logging
import math
import re
from typing import Any, Callable, Optional

from config import Settings, get_settings
from models import (
    Classification, FieldKind, HeaderHint, MetricKind, PositionHint,
    parse_number,
)

logger = logging.getLogger(__name__)

# ============================================================
# Vocabulary & Patterns
# ============================================================

# Report chrome that shows up in headings and cells but is never a book title
UI_KEYWORDS = [
    'dashboard', 'report', 'total', 'summary', 'date', 'filter', 'export', 'download',
    'view', 'details', 'more', 'less', 'expand', 'collapse', 'royalties', 'earnings',
    'sales', 'kindle', 'direct', 'publishing', 'amazon', 'select', 'unlimited', 'kenp',
    'asin', 'marketplace', 'currency', 'period', 'range', 'month', 'year', 'today',
    'yesterday', 'week', 'quarter', 'loading', 'please wait', 'no data', 'error',
]

TITLE_ALLOWED_RE = re.compile(r'''^[a-zA-Z0-9\s\-:.,'"!?&()]+$''')
DOMAIN_LIKE_RE = re.compile(r'^[\w-]+(?:\.[a-z]{2,3}){1,2}$', re.IGNORECASE)
# Totals and summary rows inside a title column
TOTALS_ROW_RE = re.compile(r'^(?:grand\s+)?(?:totals?|summary|all titles)\b', re.IGNORECASE)

# ASIN / ISBN-10 style: ten uppercase alphanumerics with at least one digit
IDENTIFIER_RE = re.compile(r'^(?=[A-Z0-9]*\d)[A-Z0-9]{10}$')
IDENTIFIER_SEARCH_RE = re.compile(r'\b(?=[A-Z0-9]*\d)[A-Z0-9]{10}\b')

MONEY_RE = re.compile(r'(?:US|CA|AU)?[$€£¥]\s?(\d[\d,]*(?:\.\d+)?)')

INTEGER_RE = re.compile(r'^(?:\d{1,3}(?:,\d{3})+|\d+)$')
READS_KEYWORD_RE = re.compile(r'\bkenp|\bpages?\s+read|\breads?\b', re.IGNORECASE)
READS_VALUE_RE = re.compile(r'(?:\bkenp|\bpages?\s+read|\breads?\b)\D{0,20}?(\d[\d,]*)', re.IGNORECASE)
UNITS_KEYWORD_RE = re.compile(r'(\d[\d,]*)\s*(?:units?|copies|orders?)\b', re.IGNORECASE)
# A number followed by a count word ("12 units", "1,200 pages read") is a metric, never a title
COUNT_TOKEN_RE = re.compile(r'^\d[\d,]*\s*(?:units?|copies|orders?|reads?|pages?)\b', re.IGNORECASE)

DOMAIN_SUFFIX_RE = re.compile(r'[a-z0-9-]+((?:\.[a-z]{2,3}){1,2})\b', re.IGNORECASE)

# Marketplace domain suffix -> region code
REGION_MAP: dict[str, str] = {
    '.com': 'US', '.co.uk': 'UK', '.de': 'DE', '.fr': 'FR',
    '.it': 'IT', '.es': 'ES', '.co.jp': 'JP', '.ca': 'CA',
    '.com.au': 'AU', '.com.br': 'BR', '.in': 'IN', '.com.mx': 'MX',
    '.nl': 'NL', '.pl': 'PL', '.se': 'SE',
}

# ============================================================
# Header Mapping
# ============================================================

# Maps raw column header text to the field kind its cells hold
HEADER_MAP: dict[str, HeaderHint] = {
    'title': HeaderHint(FieldKind.TITLE),
    'book title': HeaderHint(FieldKind.TITLE),
    'book': HeaderHint(FieldKind.TITLE),
    'product name': HeaderHint(FieldKind.TITLE),
    'product': HeaderHint(FieldKind.TITLE),
    'name': HeaderHint(FieldKind.TITLE),
    'asin': HeaderHint(FieldKind.IDENTIFIER),
    'isbn': HeaderHint(FieldKind.IDENTIFIER),
    'asin/isbn': HeaderHint(FieldKind.IDENTIFIER),
    'royalty': HeaderHint(FieldKind.MONEY),
    'royalties': HeaderHint(FieldKind.MONEY),
    'estimated royalty': HeaderHint(FieldKind.MONEY),
    'kenp royalty': HeaderHint(FieldKind.MONEY),
    'kenp royalties': HeaderHint(FieldKind.MONEY),
    'earnings': HeaderHint(FieldKind.MONEY),
    'revenue': HeaderHint(FieldKind.MONEY),
    'units sold': HeaderHint(FieldKind.COUNT, MetricKind.UNITS),
    'net units sold': HeaderHint(FieldKind.COUNT, MetricKind.UNITS),
    'units': HeaderHint(FieldKind.COUNT, MetricKind.UNITS),
    'orders': HeaderHint(FieldKind.COUNT, MetricKind.UNITS),
    'sales': HeaderHint(FieldKind.COUNT, MetricKind.UNITS),
    'kenp': HeaderHint(FieldKind.COUNT, MetricKind.READS),
    'kenp read': HeaderHint(FieldKind.COUNT, MetricKind.READS),
    'kenp pages read': HeaderHint(FieldKind.COUNT, MetricKind.READS),
    'pages read': HeaderHint(FieldKind.COUNT, MetricKind.READS),
    'reads': HeaderHint(FieldKind.COUNT, MetricKind.READS),
    'marketplace': HeaderHint(FieldKind.REGION),
    'region': HeaderHint(FieldKind.REGION),
    'country': HeaderHint(FieldKind.REGION),
    'store': HeaderHint(FieldKind.REGION),
}

# Longest first so 'kenp royalty' wins over 'kenp' and 'royalty'
_HEADER_KEYS_BY_LENGTH = sorted(HEADER_MAP, key=len, reverse=True)


def map_header(raw_header: Any) -> Optional[HeaderHint]:
    """Map a column header to a HeaderHint, or None if it means nothing to us."""
    if not isinstance(raw_header, str):
        return None
    key = raw_header.strip().lower()
    # Remove superscript markers, footnote numbers
    key = re.sub(r'[¹²³⁴\*]+', '', key).strip()
    key = re.sub(r'\s+', ' ', key.rstrip(':')).strip()
    if not key:
        return None

    if key in HEADER_MAP:
        return HEADER_MAP[key]

    for known in _HEADER_KEYS_BY_LENGTH:
        if re.search(r'\b' + re.escape(known) + r'\b', key):
            return HEADER_MAP[known]
    return None

# ============================================================
# Pattern Helpers
# ============================================================

def is_identifier(text: Any) -> bool:
    return isinstance(text, str) and bool(IDENTIFIER_RE.match(text.strip()))


def find_identifier(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    m = IDENTIFIER_SEARCH_RE.search(text)
    return m.group(0) if m else None


def extract_money_amounts(text: Any) -> list[float]:
    """Every currency-prefixed amount in the text, in order."""
    if not isinstance(text, str):
        return []
    amounts = []
    for raw in MONEY_RE.findall(text):
        try:
            value = float(raw.replace(',', ''))
        except ValueError:
            continue
        if math.isfinite(value):
            amounts.append(value)
    return amounts


def extract_money_amount(text: Any) -> float:
    """Sum of all currency amounts in the text (multi-amount cells and widgets)."""
    return sum(extract_money_amounts(text))


def extract_read_count(text: Any) -> int:
    """Read count following a KENP / 'pages read' keyword, else 0."""
    if not isinstance(text, str):
        return 0
    m = READS_VALUE_RE.search(text)
    if not m:
        return 0
    try:
        return int(m.group(1).replace(',', ''))
    except ValueError:
        return 0


def marketplace_for_region(region: Optional[str]) -> Optional[str]:
    """Amazon storefront domain for a region code, e.g. 'DE' -> 'amazon.de'."""
    if not region:
        return None
    for suffix, code in REGION_MAP.items():
        if code == region.upper():
            return f'amazon{suffix}'
    return None


def detect_region(text: Any) -> Optional[str]:
    """Region code for a marketplace domain mentioned in the text."""
    if not isinstance(text, str):
        return None
    for m in DOMAIN_SUFFIX_RE.finditer(text):
        suffix = m.group(1).lower()
        if suffix in REGION_MAP:
            return REGION_MAP[suffix]
    return None

# ============================================================
# Classifier
# ============================================================

Rule = tuple[Callable[[str], bool], FieldKind]


class FieldClassifier:
    """Table-driven text classifier. Pure; never raises."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.rules: list[Rule] = [
            (self.is_likely_title, FieldKind.TITLE),
            (is_identifier, FieldKind.IDENTIFIER),
            (self.is_money, FieldKind.MONEY),
            (self.is_count, FieldKind.COUNT),
            (self.is_region, FieldKind.REGION),
        ]

    # ----------------------------------------------------------
    # Rule predicates
    # ----------------------------------------------------------

    def is_likely_title(self, text: Any) -> bool:
        if not isinstance(text, str):
            return False
        t = text.strip()
        s = self.settings
        if len(t) < s.title_min_length or len(t) > s.title_max_length:
            return False
        if not re.search(r'[a-zA-Z]', t):
            return False
        if COUNT_TOKEN_RE.match(t):
            return False

        lower = t.lower()
        if any(k in lower for k in UI_KEYWORDS):
            return False

        if t == t.upper() and len(t) >= s.title_caps_allowed_below:
            return False
        if not TITLE_ALLOWED_RE.match(t):
            return False
        if is_identifier(t) or DOMAIN_LIKE_RE.match(t):
            return False
        return True

    def is_money(self, text: str) -> bool:
        return bool(extract_money_amounts(text))

    def is_count(self, text: str) -> bool:
        return self.parse_count(text) is not None

    def is_region(self, text: str) -> bool:
        return detect_region(text) is not None

    def parse_count(self, text: Any) -> Optional[tuple[int, MetricKind]]:
        """(value, metric) for a count-like token, or None."""
        if not isinstance(text, str):
            return None
        t = text.strip()
        if not t:
            return None

        if READS_KEYWORD_RE.search(t):
            n = extract_read_count(t)
            if n == 0:
                m = re.search(r'\d[\d,]*', t)
                if not m:
                    return None
                n = int(m.group(0).replace(',', ''))
            return n, MetricKind.READS

        um = UNITS_KEYWORD_RE.search(t)
        if um:
            return int(um.group(1).replace(',', '')), MetricKind.UNITS

        if INTEGER_RE.match(t):
            digits = t.replace(',', '')
            n = int(digits)
            if n < self.settings.units_ceiling:
                return n, MetricKind.UNITS
            if len(digits) >= 3:
                return n, MetricKind.READS
        return None

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    def classify(
        self,
        text: Any,
        position_hint: Optional[PositionHint] = None,
        header_hint: Optional[HeaderHint] = None,
    ) -> FieldKind:
        return self.classify_cell(text, position_hint, header_hint).kind

    def classify_cell(
        self,
        text: Any,
        position_hint: Optional[PositionHint] = None,
        header_hint: Optional[HeaderHint] = None,
    ) -> Classification:
        """Classify and parse one token. Header hints are trusted over content."""
        if not isinstance(text, str) or not text.strip():
            return Classification()
        text = text.strip()

        if header_hint is not None:
            return self._classify_with_header(text, header_hint)

        rules = self.rules
        # Headings and name-like object fields can only ever be titles
        if position_hint in (PositionHint.HEADING, PositionHint.OBJECT_FIELD):
            rules = rules[:1]

        for predicate, kind in rules:
            if predicate(text):
                return self._parse_value(kind, text)
        return Classification()

    # ----------------------------------------------------------
    # Value parsing
    # ----------------------------------------------------------

    def _parse_value(self, kind: FieldKind, text: str) -> Classification:
        if kind == FieldKind.TITLE:
            return Classification(kind, text)
        if kind == FieldKind.IDENTIFIER:
            return Classification(kind, text)
        if kind == FieldKind.MONEY:
            return Classification(kind, extract_money_amount(text))
        if kind == FieldKind.COUNT:
            value, metric = self.parse_count(text)
            return Classification(kind, value, metric)
        if kind == FieldKind.REGION:
            return Classification(kind, detect_region(text))
        return Classification()

    def _classify_with_header(self, text: str, hint: HeaderHint) -> Classification:
        kind = hint.kind
        if kind == FieldKind.TITLE:
            s = self.settings
            if TOTALS_ROW_RE.match(text):
                return Classification()
            if re.search(r'[a-zA-Z]', text) and s.title_min_length <= len(text) <= s.title_max_length:
                return Classification(kind, text)
            return Classification()

        if kind == FieldKind.IDENTIFIER:
            ident = find_identifier(text.upper())
            return Classification(kind, ident) if ident else Classification()

        if kind == FieldKind.MONEY:
            amounts = extract_money_amounts(text)
            value = sum(amounts) if amounts else parse_number(text)
            if value is None or value < 0:
                return Classification()
            return Classification(kind, value)

        if kind == FieldKind.COUNT:
            value = parse_number(text)
            if value is None or value < 0:
                return Classification()
            return Classification(kind, int(value), hint.metric or MetricKind.UNITS)

        if kind == FieldKind.REGION:
            region = detect_region(text)
            if region is None and re.fullmatch(r'[A-Za-z]{2}', text):
                region = text.upper()
            return Classification(kind, region) if region else Classification()

        return Classification()


# ============================================================
# Convenience: module-level classifier with default settings
# ============================================================

def classify(
    text: Any,
    position_hint: Optional[PositionHint] = None,
    header_hint: Optional[HeaderHint] = None,
) -> FieldKind:
    return FieldClassifier().classify(text, position_hint, header_hint)


def classify_cell(
    text: Any,
    position_hint: Optional[PositionHint] = None,
    header_hint: Optional[HeaderHint] = None,
) -> Classification:
    return FieldClassifier().classify_cell(text, position_hint, header_hint)
