"""
Royalty Reconciler — Record Extractor
record_extractor.py

Handles the three source shapes found on seller report pages:
1. Tables (rows of cells, usually with a header row)
2. Widgets / summary cards (free text plus heading-like elements)
3. Nested JSON-like objects (embedded page state, API payloads)

Several methods usually run over the same page; their outputs are simply
concatenated and left for the merge engine to fold together.
"""
from __future__ import annotations
import logging
import math
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from config import Settings, get_settings
from errors import SourceValidationError
from field_classifier import (
    FieldClassifier, detect_region, extract_money_amount, extract_money_amounts,
    extract_read_count, find_identifier, is_identifier, map_header,
)
from models import (
    CandidateRecord, FieldKind, HeaderHint, MetricKind, NestedObjectSource,
    PositionHint, Source, TabularSource, WidgetSource, parse_number,
)

logger = logging.getLogger(__name__)

# ============================================================
# Object Field Names
# ============================================================

NAME_KEYS = ('title', 'name', 'productName', 'bookTitle')
EARNINGS_KEYS = ('revenue', 'royalties', 'royalty', 'earnings', 'totalRoyalties')
UNITS_KEYS = ('sales', 'units', 'orders', 'unitsSold', 'totalSales')
READS_KEYS = ('kenp', 'kenpReads', 'reads', 'pagesRead')
ID_KEYS = ('asin', 'isbn', 'id')
REGION_KEYS = ('marketplace', 'country', 'region')


def _metric_value(value: Any) -> Optional[float]:
    """Non-negative number from a JSON field value, or None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = parse_number(value)
        return max(num, 0.0) if num is not None else None
    if isinstance(value, str):
        amounts = extract_money_amounts(value)
        num = sum(amounts) if amounts else parse_number(value)
        if num is None or not math.isfinite(num):
            return None
        return max(num, 0.0)
    return None


def _first_metric(obj: Mapping, keys: Iterable[str]) -> Optional[float]:
    for k in keys:
        if k in obj:
            v = _metric_value(obj[k])
            if v is not None:
                return v
    return None


def _cell_text(cell: Any) -> Optional[str]:
    if isinstance(cell, str):
        return cell
    if isinstance(cell, (int, float)) and not isinstance(cell, bool):
        return str(cell)
    return None

# ============================================================
# Extractor
# ============================================================

class RecordExtractor:
    """Turns heterogeneous sources into CandidateRecords. Never raises on data shape."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        classifier: Optional[FieldClassifier] = None,
    ):
        self.settings = settings or get_settings()
        self.classifier = classifier or FieldClassifier(self.settings)

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    def extract(self, source: Source) -> list[CandidateRecord]:
        if source is None:
            raise SourceValidationError("extract() requires a source, got None")
        if isinstance(source, TabularSource):
            return self.extract_from_table(source)
        if isinstance(source, WidgetSource):
            return self.extract_from_widget(source)
        if isinstance(source, NestedObjectSource):
            return self.extract_from_object(source)
        raise SourceValidationError(
            f"Unsupported source type: {type(source).__name__}",
            source_type=type(source).__name__,
        )

    def extract_many(self, sources: Iterable[Source]) -> list[CandidateRecord]:
        """Run every source and concatenate. Duplicates are expected."""
        if sources is None:
            raise SourceValidationError("extract_many() requires a list of sources, got None")
        records: list[CandidateRecord] = []
        for source in sources:
            records.extend(self.extract(source))
        return records

    def extract_from_globals(
        self,
        named_inputs: Mapping[str, Any],
        allowlist: Optional[Iterable[str]] = None,
    ) -> list[CandidateRecord]:
        return self.extract_many(sources_from_globals(named_inputs, allowlist, self.settings))

    # ----------------------------------------------------------
    # Tables
    # ----------------------------------------------------------

    def extract_from_table(self, source: TabularSource) -> list[CandidateRecord]:
        rows = source.rows
        if not isinstance(rows, (list, tuple)) or not rows:
            return []

        hints: list[Optional[HeaderHint]] = []
        data_rows = rows
        if source.has_header:
            header = rows[0] if isinstance(rows[0], (list, tuple)) else []
            hints = [map_header(_cell_text(c)) for c in header]
            data_rows = rows[1:]

        records = []
        for i, row in enumerate(data_rows, start=1 if source.has_header else 0):
            try:
                rec = self._record_from_row(row, hints, f'{source.source_tag}_row_{i}')
            except (TypeError, ValueError, AttributeError, OverflowError) as e:
                logger.debug(f"Skipping row {i} of {source.source_tag}: {e}")
                continue
            if rec is not None:
                records.append(rec)

        logger.debug(f"Table {source.source_tag}: {len(records)} candidates from {len(data_rows)} rows")
        return records

    def _record_from_row(
        self,
        cells: Any,
        hints: list[Optional[HeaderHint]],
        source_tag: str,
    ) -> Optional[CandidateRecord]:
        if not isinstance(cells, (list, tuple)) or len(cells) < self.settings.min_table_cells:
            return None

        title: Optional[str] = None
        identifier: Optional[str] = None
        region: Optional[str] = None
        marketplace: Optional[str] = None
        earnings = 0.0
        units = 0.0
        reads = 0.0

        for idx, cell in enumerate(cells):
            text = _cell_text(cell)
            if text is None:
                continue
            hint = hints[idx] if idx < len(hints) else None
            c = self.classifier.classify_cell(text, PositionHint.CELL, hint)

            if c.kind == FieldKind.TITLE:
                if title is None:
                    title = c.value
            elif c.kind == FieldKind.IDENTIFIER:
                if identifier is None:
                    identifier = c.value
            elif c.kind == FieldKind.MONEY:
                earnings = max(earnings, float(c.value))
            elif c.kind == FieldKind.COUNT:
                if c.metric == MetricKind.READS:
                    reads = max(reads, float(c.value))
                else:
                    units = max(units, float(c.value))
            elif c.kind == FieldKind.REGION:
                if region is None:
                    region = c.value
                    marketplace = text.strip()
            elif not c.is_known and identifier is None:
                identifier = find_identifier(text)

        if not title:
            return None

        return CandidateRecord(
            title=title,
            identifier=identifier,
            total_earnings=earnings,
            units_sold=units,
            read_count=reads,
            region=region or self.settings.default_region,
            marketplace=marketplace,
            source_tag=source_tag,
        )

    # ----------------------------------------------------------
    # Widgets
    # ----------------------------------------------------------

    def extract_from_widget(self, source: WidgetSource) -> list[CandidateRecord]:
        text = source.text if isinstance(source.text, str) else ''
        headings = source.headings if isinstance(source.headings, (list, tuple)) else []

        title = ''
        for heading in headings:
            h = _cell_text(heading)
            if h is None:
                continue
            h = h.strip()
            kind = self.classifier.classify(h, PositionHint.HEADING)
            if kind == FieldKind.TITLE and len(h) > len(title):
                title = h
        if not title:
            return []

        # Metrics come from the whole container, not per element
        earnings = extract_money_amount(text)
        reads = extract_read_count(text)

        try:
            record = CandidateRecord(
                title=title,
                identifier=find_identifier(text),
                total_earnings=earnings,
                read_count=reads,
                region=detect_region(text) or self.settings.default_region,
                source_tag=source.source_tag,
            )
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug(f"Skipping widget {source.source_tag}: {e}")
            return []
        return [record]

    # ----------------------------------------------------------
    # Nested objects
    # ----------------------------------------------------------

    def extract_from_object(self, source: NestedObjectSource) -> list[CandidateRecord]:
        records: list[CandidateRecord] = []
        visited: set[int] = set()
        # Explicit stack: deep or cyclic page state must not hit the recursion limit
        stack: list[tuple[Any, str]] = [(source.data, '')]

        while stack:
            node, path = stack.pop()
            if isinstance(node, Mapping):
                children = list(node.items())
            elif isinstance(node, (list, tuple)):
                children = [(f'[{i}]', v) for i, v in enumerate(node)]
            else:
                continue

            if id(node) in visited:
                logger.debug(f"Cycle detected at {path or 'root'} in {source.source_tag}")
                continue
            visited.add(id(node))

            if isinstance(node, Mapping):
                try:
                    rec = self._record_from_mapping(node, path, source.source_tag)
                except (TypeError, ValueError, OverflowError) as e:
                    logger.debug(f"Skipping node {path or 'root'}: {e}")
                    rec = None
                if rec is not None:
                    records.append(rec)

            # Reverse so siblings are visited in document order
            for key, value in reversed(children):
                if isinstance(value, (Mapping, list, tuple)):
                    if isinstance(node, Mapping):
                        child_path = f'{path}.{key}' if path else str(key)
                    else:
                        child_path = f'{path}{key}'
                    stack.append((value, child_path))

        return records

    def _record_from_mapping(
        self, obj: Mapping, path: str, source_tag: str,
    ) -> Optional[CandidateRecord]:
        name = None
        for k in NAME_KEYS:
            v = obj.get(k)
            if isinstance(v, str) and v.strip():
                name = v.strip()
                break
        if name is None:
            return None
        if self.classifier.classify(name, PositionHint.OBJECT_FIELD) != FieldKind.TITLE:
            return None

        earnings = _first_metric(obj, EARNINGS_KEYS)
        units = _first_metric(obj, UNITS_KEYS)
        reads = _first_metric(obj, READS_KEYS)
        if earnings is None and units is None and reads is None:
            return None

        identifier = None
        for k in ID_KEYS:
            v = obj.get(k)
            if is_identifier(v):
                identifier = v.strip()
                break

        region = None
        marketplace = None
        for k in REGION_KEYS:
            v = obj.get(k)
            if not isinstance(v, str) or not v.strip():
                continue
            region = detect_region(v)
            if region:
                marketplace = v.strip()
                break
            if len(v.strip()) == 2 and v.strip().isalpha():
                region = v.strip().upper()
                break

        return CandidateRecord(
            title=name,
            identifier=identifier,
            total_earnings=earnings or 0.0,
            units_sold=units or 0.0,
            read_count=reads or 0.0,
            region=region or self.settings.default_region,
            marketplace=marketplace,
            source_tag=f'{source_tag}_{path or "root"}',
        )


# ============================================================
# Named Globals
# ============================================================

def sources_from_globals(
    named_inputs: Optional[Mapping[str, Any]],
    allowlist: Optional[Iterable[str]] = None,
    settings: Optional[Settings] = None,
) -> list[NestedObjectSource]:
    """Wrap allow-listed named page globals as object sources. Everything else is ignored."""
    if not named_inputs:
        return []
    settings = settings or get_settings()
    allowed = list(allowlist) if allowlist is not None else settings.global_allowlist_names

    sources = []
    for name in allowed:
        value = named_inputs.get(name)
        if isinstance(value, (Mapping, list, tuple)):
            sources.append(NestedObjectSource(data=value, source_tag=f'js_{name}'))

    ignored = [n for n in named_inputs if n not in allowed]
    if ignored:
        logger.debug(f"Ignoring non-allow-listed globals: {ignored}")
    return sources


# ============================================================
# Convenience: Run extraction on one source
# ============================================================

def extract_records(source: Source) -> list[CandidateRecord]:
    """One-shot extraction with default settings."""
    return RecordExtractor().extract(source)
