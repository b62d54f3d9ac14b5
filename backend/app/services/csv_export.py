"""Export of rendered dashboard tables as CSV downloads.

Exports exactly what is on screen: rows come from the session's table
registry, never from a fresh query.
"""

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.services.table_render import RenderedTable, cell_text
from app.utils import filename_stamp, utcnow

_ROW_TERMINATOR = "\r\n"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: bytes

    media_type: str = "text/csv; charset=utf-8"


def csv_line(cells: list[str]) -> str:
    """One CSV record without its terminator.

    The writer quotes any cell containing a character of its terminator, so
    with CRLF both a bare CR and a bare LF inside a cell end up quoted.
    """
    output = io.StringIO()
    writer = csv.writer(output, lineterminator=_ROW_TERMINATOR)
    writer.writerow(cells)
    return output.getvalue()[: -len(_ROW_TERMINATOR)]


def table_to_csv(table: RenderedTable) -> str:
    lines = [csv_line([cell_text(h) for h in table.headers])]
    for row in table.rows:
        lines.append(csv_line([cell_text(cell) for cell in row]))
    return "\n".join(lines)


def export_filename(base: str, now: Optional[datetime] = None) -> str:
    safe_base = _UNSAFE_FILENAME_CHARS.sub("_", base) or "export"
    return f"{safe_base}_{filename_stamp(now or utcnow())}.csv"


def export_table(table: RenderedTable, filename_base: str, now: Optional[datetime] = None) -> CsvExport:
    return CsvExport(
        filename=export_filename(filename_base, now),
        content=table_to_csv(table).encode("utf-8"),
    )
