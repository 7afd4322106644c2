"""
Export Module

CSV and JSON export of a screen's filtered, ordered rows. Exports are capped
(500 records by default, never more than 1000) and always report whether
the cap cut the result short.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .logging_config import get_logger, log_action
from .screens import BrowseRequest, ListScreen, ScreenBrowser


logger = get_logger("backoffice.export")


class ExportFormat(Enum):
    """Output formats for exports"""
    CSV = "csv"
    JSON = "json"


CONTENT_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


@dataclass(frozen=True)
class ExportResult:
    content: str
    format: ExportFormat
    filename: str
    exported: int
    total: int
    limit: int

    @property
    def truncated(self) -> bool:
        return self.total > self.exported

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.format]

    @property
    def message(self) -> str:
        if self.truncated:
            return (f"Export limited to {self.limit} records "
                    f"({self.total} matched); narrow the filters to export the rest.")
        return f"Exported {self.exported} records."


def _cell(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return "" if value is None else value


def render(rows: List[Dict[str, Any]], columns: Sequence[str], export_format: ExportFormat,
           meta: Optional[Dict[str, Any]] = None) -> str:
    if export_format == ExportFormat.JSON:
        records = [{column: row.get(column) for column in columns} for row in rows]
        return json.dumps({'meta': meta or {}, 'records': records}, indent=2, default=str)

    elif export_format == ExportFormat.CSV:
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=list(columns), extrasaction='ignore')
        writer.writeheader()
        for row in rows:
            writer.writerow({column: _cell(row.get(column)) for column in columns})
        content = output.getvalue()
        output.close()
        return content

    else:
        raise ValueError(f"Unsupported export format: {export_format}")


class Exporter:
    """Exports what a screen would list for the same request, capped"""

    def __init__(self, browser: ScreenBrowser, default_limit: int = 500, max_limit: int = 1000):
        if not 1 <= default_limit <= max_limit:
            raise ValueError("Export limits must satisfy 1 <= default_limit <= max_limit")
        self.browser = browser
        self.default_limit = default_limit
        self.max_limit = max_limit

    def clamp_limit(self, limit: Optional[int] = None) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))

    def export(self, screen: ListScreen, request: Optional[BrowseRequest] = None,
               export_format: ExportFormat = ExportFormat.CSV,
               limit: Optional[int] = None, user_id: Optional[str] = None,
               transform: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None) -> ExportResult:
        request = request or BrowseRequest()
        cap = self.clamp_limit(limit)
        storage = self.browser.storage
        values, query = self.browser.prepare(screen, request)

        with self.browser.guard(screen, values, query):
            total = storage.count_matching(query)
            rows = storage.fetch(query, limit=cap)

        rows = [self.browser.present(screen, row) for row in rows]
        if transform is not None:
            rows = [transform(row) for row in rows]
        columns = list(screen.export_columns) or (sorted(rows[0]) if rows else [])

        generated_at = datetime.now(timezone.utc)
        meta = {
            'screen': screen.name,
            'generated_at': generated_at.isoformat(),
            'filters': values.to_dict(),
            'exported': len(rows),
            'total': total,
            'truncated': total > len(rows),
        }
        result = ExportResult(
            content=render(rows, columns, export_format, meta),
            format=export_format,
            filename=f"{screen.name}_{generated_at.strftime('%Y%m%d_%H%M%S')}.{export_format.value}",
            exported=len(rows),
            total=total,
            limit=cap,
        )

        log_action(
            logger, "info", f"Exported {result.exported} of {total} rows from {screen.name}",
            user_id=user_id, action="export", resource=screen.name,
            extra={'format': export_format.value, 'truncated': result.truncated}
        )
        return result
