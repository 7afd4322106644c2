"""
Customer endpoints
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from .schemas import StatusChangeRequest
from ..rbac import Permission
from ..screens import BrowseRequest


router = APIRouter()


@router.get("")
async def list_customers(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.CUSTOMERS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse customers"""
    with query_errors():
        return browse_response(system.customer_manager.browse_customers(browse))


@router.get("/export")
async def export_customers(
    format: str = "csv",
    limit: Optional[int] = None,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.CUSTOMERS_EXPORT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export the filtered customer list"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.customer_manager.export_customers(browse, export_format, limit, user_id)
    return export_response(result)


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    user_id: str = Depends(require_permission(Permission.CUSTOMERS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Customer detail with accounts, KYC status, total balance and segment"""
    detail = system.customer_manager.get_customer_detail(customer_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return encode(detail)


@router.get("/{customer_id}/accounts")
async def list_customer_accounts(
    customer_id: str,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.CUSTOMER_ACCOUNTS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse one customer's accounts"""
    if system.customer_manager.get_customer(customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    with query_errors():
        return browse_response(system.customer_manager.browse_customer_accounts(customer_id, browse))


@router.get("/{customer_id}/transactions")
async def list_customer_transactions(
    customer_id: str,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.FINANCIAL_TRANSACTIONS)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse one customer's transactions"""
    if system.customer_manager.get_customer(customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    with query_errors():
        return browse_response(system.customer_manager.browse_customer_transactions(customer_id, browse))


@router.put("/{customer_id}/status")
async def change_customer_status(
    customer_id: str,
    request: StatusChangeRequest,
    user_id: str = Depends(require_permission(Permission.CUSTOMERS_EDIT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Block, unblock or otherwise change a customer's status"""
    try:
        customer = system.customer_manager.change_status(
            customer_id, request.status, reason=request.reason, user_id=user_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return {"customer_id": customer.id, "status": customer.status,
            "message": "Customer status updated successfully"}
