"""
Helpers shared by the list endpoints: request parsing, JSON encoding of
browse results, export responses and query-failure mapping.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response

from ..export import ExportFormat, ExportResult
from ..screens import BrowseRequest, BrowseResult, QueryFailedError, ViewState


# Query parameters that are not filters
RESERVED_PARAMS = {'page', 'size', 'sort_by', 'sort_direction', 'show_filters', 'tab', 'format', 'limit'}

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def browse_request(request: Request) -> BrowseRequest:
    """Dependency building a BrowseRequest from the query string; filters are every other parameter"""
    params = request.query_params
    filters: Dict[str, Any] = {}
    for name in params.keys():
        if name in RESERVED_PARAMS:
            continue
        values = params.getlist(name)
        filters[name] = values[0] if len(values) == 1 else values

    return BrowseRequest(
        filters=filters,
        sort_by=params.get('sort_by'),
        sort_direction=params.get('sort_direction'),
        page=params.get('page'),
        size=params.get('size'),
        view=ViewState(
            show_filters=params.get('show_filters', '').lower() in TRUE_VALUES,
            tab=params.get('tab') or None,
        ),
    )


def encode(data: Any) -> Any:
    """JSON-ready structure; money stays exact as strings"""
    return jsonable_encoder(data, custom_encoder={Decimal: str})


def browse_response(result: BrowseResult) -> Any:
    return encode(result.to_dict())


def parse_export_format(value: str) -> ExportFormat:
    try:
        return ExportFormat(value.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {value}")


def export_response(result: ExportResult) -> Response:
    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={
            'Content-Disposition': f'attachment; filename="{result.filename}"',
            'X-Export-Total': str(result.total),
            'X-Export-Exported': str(result.exported),
            'X-Export-Truncated': 'true' if result.truncated else 'false',
            'X-Export-Message': result.message,
        },
    )


@contextmanager
def query_errors():
    """Map a failed listing query to 503 with the generic message"""
    try:
        yield
    except QueryFailedError as e:
        raise HTTPException(status_code=503, detail=e.message)
