"""
Royalty Reconciler — HTML Source Adapter
html_sources.py

Turns a rendered report page into extractor sources:
1. Tables (table / [role=table]) → TabularSource
2. Widgets and summary cards → WidgetSource
3. JSON script blocks and allow-listed `window.<name> = {...};` assignments
   → NestedObjectSource

Page scripts are parsed as JSON only, never evaluated.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Mapping, Optional

from bs4 import BeautifulSoup, Tag

from config import Settings, get_settings
from models import NestedObjectSource, Source, TabularSource, WidgetSource
from record_extractor import sources_from_globals

logger = logging.getLogger(__name__)

TABLE_SELECTOR = 'table, .table, [role="table"], .data-table, .report-table'
ROW_SELECTOR = 'tr, .table-row, [role="row"]'
CELL_SELECTOR = 'td, th, .table-cell, [role="cell"]'
WIDGET_SELECTOR = (
    '.widget, .card, .summary, .dashboard-item, .metric-card, .report-widget, '
    '[class*="widget"], [class*="card"], [class*="summary"], [class*="metric"]'
)
HEADING_SELECTOR = 'h1, h2, h3, h4, h5, h6, .title, .book-title, strong'

WINDOW_ASSIGN_RE = r'window\.{name}\s*=\s*(\{{.*?\}}|\[.*?\])\s*;'


def _text(el: Tag) -> str:
    return re.sub(r'\s+', ' ', el.get_text(separator=' ', strip=True)).strip()


def _direct_rows(table: Tag) -> list[Tag]:
    """Rows of this table only, not of tables nested inside it."""
    rows = []
    for row in table.select(ROW_SELECTOR):
        parent = row.find_parent(lambda t: t is table or t.name == "table")
        if parent is table:
            rows.append(row)
    return rows


def tables_from_soup(soup: BeautifulSoup) -> list[TabularSource]:
    sources = []
    for t_idx, table in enumerate(soup.select(TABLE_SELECTOR)):
        rows: list[list[str]] = []
        has_header = False
        for r_idx, row in enumerate(_direct_rows(table)):
            cells = row.select(CELL_SELECTOR)
            if r_idx == 0 and cells and all(c.name == 'th' for c in cells):
                has_header = True
            rows.append([_text(c) for c in cells])
        if not rows or (has_header and len(rows) < 2):
            continue
        sources.append(TabularSource(rows=rows, has_header=has_header, source_tag=f'table_{t_idx}'))
    return sources


def widgets_from_soup(soup: BeautifulSoup) -> list[WidgetSource]:
    sources = []
    for idx, widget in enumerate(soup.select(WIDGET_SELECTOR)):
        if widget.name == 'table' or widget.find('table') is not None:
            continue
        headings = [_text(h) for h in widget.select(HEADING_SELECTOR)]
        if not headings:
            continue
        sources.append(WidgetSource(text=_text(widget), headings=headings, source_tag=f'widget_{idx}'))
    return sources


def json_scripts_from_soup(soup: BeautifulSoup) -> list[NestedObjectSource]:
    sources = []
    for idx, script in enumerate(soup.find_all('script', attrs={'type': re.compile(r'json')})):
        content = script.string or script.get_text()
        if not content or ("{" not in content and "[" not in content):
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            logger.debug(f"Script block {idx} is not valid JSON")
            continue
        tag = script.get('id') or f'script_{idx}'
        sources.append(NestedObjectSource(data=data, source_tag=f'json_{tag}'))
    return sources


def globals_from_scripts(soup: BeautifulSoup, settings: Settings) -> dict[str, Any]:
    """Values of allow-listed `window.<name> = <json>;` assignments found in inline scripts."""
    found: dict[str, Any] = {}
    inline = [s.string or '' for s in soup.find_all('script') if not s.get('src')]
    for name in settings.global_allowlist_names:
        pattern = re.compile(WINDOW_ASSIGN_RE.format(name=re.escape(name)), re.DOTALL)
        for content in inline:
            m = pattern.search(content)
            if not m:
                continue
            try:
                found[name] = json.loads(m.group(1))
            except json.JSONDecodeError:
                logger.debug(f"window.{name} is not plain JSON, skipped")
                continue
            break
    return found


def sources_from_html(
    html: str,
    named_globals: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> list[Source]:
    """
    All sources on a page, tables first, then widgets, then embedded JSON.

    `named_globals` are page globals already read by the caller (e.g. the
    browser layer); only allow-listed names are used.
    """
    settings = settings or get_settings()
    if not html:
        return []
    soup = BeautifulSoup(html, 'lxml')

    sources: list[Source] = []
    sources.extend(tables_from_soup(soup))
    sources.extend(widgets_from_soup(soup))
    sources.extend(json_scripts_from_soup(soup))

    page_globals = globals_from_scripts(soup, settings)
    if named_globals:
        page_globals.update(named_globals)
    sources.extend(sources_from_globals(page_globals, settings=settings))

    logger.info(f"Found {len(sources)} sources on page")
    return sources
