"""
backend/app/services/table_render.py

Purpose:
    Rendering of dashboard tables into HTML cell rows. Each table column is an
    ordered (header, formatter) pair applied to every record; user-controlled
    text is HTML-escaped before it reaches a cell. Rendered tables live in a
    per-session registry which is what the browser shows and what the CSV
    exporter reads.

Dependencies:
    - html (escaping, entity decoding)
    - app.utils
"""

from __future__ import annotations

import html
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from html.parser import HTMLParser
from typing import Any

from app.config import settings
from app.utils import ensure_utc, utcnow

Formatter = Callable[[dict[str, Any]], str]

PLACEHOLDER_DASH = "—"
NO_DATA_TEXT = "No data available"
LOADING_TEXT = "Loading..."


@dataclass(frozen=True)
class Column:
    header: str
    formatter: Formatter


@dataclass
class RenderedTable:
    table_id: str
    headers: list[str]
    rows: list[list[str]]
    placeholder: bool = False
    rendered_at: datetime = field(default_factory=utcnow)

    def to_message(self) -> dict[str, Any]:
        return {
            "table_id": self.table_id,
            "headers": list(self.headers),
            "rows": [list(r) for r in self.rows],
            "placeholder": self.placeholder,
            "rendered_at": self.rendered_at.isoformat(),
        }


class TableRegistry:
    """What is currently on screen, per table id, for one session."""

    def __init__(self) -> None:
        self._tables: dict[str, RenderedTable] = {}

    def replace(self, table: RenderedTable) -> None:
        # Single assignment: readers see either the old or the new table
        self._tables[table.table_id] = table

    def get(self, table_id: str) -> RenderedTable | None:
        return self._tables.get(table_id)

    def table_ids(self) -> list[str]:
        return sorted(self._tables)

    def clear(self) -> None:
        self._tables.clear()


# --- Formatters ---

def escape_html(value: Any) -> str:
    return html.escape(str(value or ""), quote=True)


def truncate(text: str, length: int | None = None) -> str:
    limit = length if length is not None else settings.REASON_TRUNCATE_LENGTH
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_date(value: Any) -> str:
    if not isinstance(value, datetime):
        return PLACEHOLDER_DASH
    return ensure_utc(value).strftime("%d %b %Y, %H:%M")


def text_field(name: str) -> Formatter:
    return lambda doc: escape_html(doc.get(name))


def ip_field(name: str = "ip") -> Formatter:
    return lambda doc: escape_html(doc.get(name)) if doc.get(name) else PLACEHOLDER_DASH


def date_field(name: str) -> Formatter:
    return lambda doc: format_date(doc.get(name))


def truncated_text_field(name: str, length: int | None = None) -> Formatter:
    # Cut the raw text, then escape, so an entity is never split
    return lambda doc: escape_html(truncate(str(doc.get(name) or ""), length))


def status_badge(doc: dict[str, Any]) -> str:
    status = escape_html(doc.get("status"))
    return f'<span class="badge {status}">{status}</span>'


def _button(css: str, label: str, **data: Any) -> str:
    attrs = " ".join(f'data-{key}="{escape_html(value)}"' for key, value in data.items())
    return f'<button class="btn-sm {css}" {attrs}>{label}</button>'


def audit_request_actions(doc: dict[str, Any]) -> str:
    request_id = str(doc.get("_id", ""))
    buttons = []
    if doc.get("status") == "pending":
        buttons.append(_button("approve", "Approve", action="approve", id=request_id))
    buttons.append(_button("block", "Block", action="block", ip=doc.get("ip") or "", id=request_id))
    return " ".join(buttons)


def blacklist_actions(doc: dict[str, Any]) -> str:
    return _button("unblock", "Unblock", action="unblock", ip=doc.get("ip") or "")


# --- Rendering ---

def render_rows(docs: Iterable[dict[str, Any]], columns: list[Column]) -> list[list[str]]:
    return [[col.formatter(doc) for col in columns] for doc in docs]


def render_table(table_id: str, columns: list[Column], docs: list[dict[str, Any]]) -> RenderedTable:
    headers = [col.header for col in columns]
    if not docs:
        return RenderedTable(table_id=table_id, headers=headers, rows=[[NO_DATA_TEXT]], placeholder=True)
    return RenderedTable(table_id=table_id, headers=headers, rows=render_rows(docs, columns))


def loading_table(table_id: str, columns: list[Column]) -> RenderedTable:
    return RenderedTable(
        table_id=table_id,
        headers=[col.header for col in columns],
        rows=[[LOADING_TEXT]],
        placeholder=True,
    )


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []

    def handle_data(self, data: str) -> None:
        self.parts.append(data)


def cell_text(cell_html: str) -> str:
    """Visible text of a rendered cell: tags dropped, entities decoded, trimmed."""
    parser = _TextExtractor()
    parser.feed(cell_html)
    parser.close()
    return "".join(parser.parts).strip()
