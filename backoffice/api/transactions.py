"""
Transaction endpoints (read-only)
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from ..rbac import Permission
from ..screens import BrowseRequest
from ..transactions import ANALYTICS_SCREEN, TransactionView


router = APIRouter()

STATUS_VIEWS = {
    'completed': TransactionView.COMPLETED,
    'pending': TransactionView.PENDING,
    'failed': TransactionView.FAILED,
    'reversed': TransactionView.REVERSED,
}


def _view(name: str) -> TransactionView:
    try:
        return TransactionView(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown transaction view: {name}")


@router.get("")
async def list_transactions(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.FINANCIAL_TRANSACTIONS)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse transactions (last 7 days unless a date range is given)"""
    with query_errors():
        return browse_response(system.transaction_manager.browse_transactions(TransactionView.ALL, browse))


@router.get("/export")
async def export_transactions(
    format: str = "csv",
    limit: Optional[int] = None,
    view: str = TransactionView.ALL.value,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.EXPORT_FINANCIAL)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export any transaction screen; `view` selects it"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.transaction_manager.export_transactions(
            _view(view), browse, export_format, limit, user_id
        )
    return export_response(result)


@router.get("/analytics")
async def transaction_analytics(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.ANALYTICS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Volume, channel, type, currency and daily trend over the filtered transactions"""
    with query_errors():
        filters, aggregates = system.transaction_manager.transaction_analytics(browse)
    return encode({
        'screen': ANALYTICS_SCREEN.name,
        'aggregates': aggregates.to_dict(),
        'filters': filters.to_dict(),
        'rejected_filters': list(filters.rejected),
    })


def _add_status_route(path: str, view: TransactionView) -> None:
    async def list_status_view(
        browse: BrowseRequest = Depends(browse_request),
        user_id: str = Depends(require_permission(Permission.FINANCIAL_TRANSACTIONS)),
        system: BackofficeSystem = Depends(get_backoffice_system)
    ):
        with query_errors():
            return browse_response(system.transaction_manager.browse_transactions(view, browse))

    list_status_view.__doc__ = f"Browse {path} transactions"
    router.add_api_route(f"/{path}", list_status_view, methods=["GET"],
                         name=f"list_{path}_transactions")


for _path, _view_kind in STATUS_VIEWS.items():
    _add_status_route(_path, _view_kind)


@router.get("/{order_id}")
async def get_transaction(
    order_id: str,
    user_id: str = Depends(require_permission(Permission.FINANCIAL_TRANSACTIONS)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Get transaction by order id"""
    transaction = system.transaction_manager.get_transaction(order_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    data = system.browser.labels.decorate(transaction.to_dict(), {'trans_status': 'transaction_status'})
    data['is_high_value'] = transaction.is_high_value
    return encode(data)
