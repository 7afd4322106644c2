"""
Organization endpoints
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from .schemas import StatusChangeRequest
from ..rbac import Permission
from ..screens import BrowseRequest


router = APIRouter()


def _require_organization(system: BackofficeSystem, organization_id: str) -> None:
    if system.organization_manager.get_organization(organization_id) is None:
        raise HTTPException(status_code=404, detail="Organization not found")


@router.get("")
async def list_organizations(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.ORGANIZATIONS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse organizations"""
    with query_errors():
        return browse_response(system.organization_manager.browse_organizations(browse))


@router.get("/export")
async def export_organizations(
    format: str = "csv",
    limit: Optional[int] = None,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.ORGANIZATIONS_EXPORT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export the filtered organization list"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.organization_manager.export_organizations(browse, export_format, limit, user_id)
    return export_response(result)


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    user_id: str = Depends(require_permission(Permission.ORGANIZATIONS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Organization detail with accounts, operators and balance totals"""
    detail = system.organization_manager.get_organization_detail(organization_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return encode(detail)


@router.get("/{organization_id}/accounts")
async def list_organization_accounts(
    organization_id: str,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.ORGANIZATION_ACCOUNTS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse one organization's accounts"""
    _require_organization(system, organization_id)
    with query_errors():
        return browse_response(
            system.organization_manager.browse_organization_accounts(organization_id, browse)
        )


@router.get("/{organization_id}/operators")
async def list_organization_operators(
    organization_id: str,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.OPERATORS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse one organization's operators"""
    _require_organization(system, organization_id)
    with query_errors():
        return browse_response(
            system.organization_manager.browse_organization_operators(organization_id, browse)
        )


@router.get("/{organization_id}/transactions")
async def list_organization_transactions(
    organization_id: str,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.FINANCIAL_TRANSACTIONS)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse one organization's transactions"""
    _require_organization(system, organization_id)
    with query_errors():
        return browse_response(
            system.organization_manager.browse_organization_transactions(organization_id, browse)
        )


@router.put("/{organization_id}/status")
async def change_organization_status(
    organization_id: str,
    request: StatusChangeRequest,
    user_id: str = Depends(require_permission(Permission.ORGANIZATIONS_EDIT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Change an organization's status code"""
    try:
        organization = system.organization_manager.change_status(
            organization_id, request.status, reason=request.reason, user_id=user_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return {"organization_id": organization.id, "status": organization.status,
            "message": "Organization status updated successfully"}
