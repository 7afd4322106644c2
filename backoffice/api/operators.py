"""
Operator endpoints
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
async def list_operators(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.OPERATORS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse operators"""
    with query_errors():
        return browse_response(system.operator_manager.browse_operators(browse))


@router.get("/export")
async def export_operators(
    format: str = "csv",
    limit: Optional[int] = None,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.OPERATORS_EXPORT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export the filtered operator list"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.operator_manager.export_operators(browse, export_format, limit, user_id)
    return export_response(result)


@router.get("/performance")
async def operator_performance(
    user_id: str = Depends(require_permission(Permission.OPERATORS_VIEW))
):
    """Operator performance has no data source; nothing is synthesised"""
    raise HTTPException(status_code=501, detail="Operator performance metrics are not available")


@router.get("/{operator_id}")
async def get_operator(
    operator_id: str,
    user_id: str = Depends(require_permission(Permission.OPERATORS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Get operator by ID"""
    operator = system.operator_manager.get_operator(operator_id)
    if not operator:
        raise HTTPException(status_code=404, detail="Operator not found")

    labels = system.browser.labels
    data = labels.decorate(operator.to_dict(), {
        'status': 'operator_status',
        'owned_identity_type': 'operator_identity_type',
    })
    return encode(data)


@router.put("/{operator_id}/status")
async def change_operator_status(
    operator_id: str,
    request: StatusChangeRequest,
    user_id: str = Depends(require_permission(Permission.OPERATORS_EDIT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Change an operator's status code"""
    try:
        operator = system.operator_manager.change_status(
            operator_id, request.status, reason=request.reason, user_id=user_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if operator is None:
        raise HTTPException(status_code=404, detail="Operator not found")
    return {"operator_id": operator.id, "status": operator.status,
            "message": "Operator status updated successfully"}
