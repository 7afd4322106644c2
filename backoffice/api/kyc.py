"""
KYC record endpoints (listing only; no verification)
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from ..kyc import IdentityKind
from ..rbac import Permission
from ..screens import BrowseRequest


router = APIRouter()


@router.get("")
async def list_kyc_records(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.KYC_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse KYC records with their completeness"""
    with query_errors():
        return browse_response(system.kyc_manager.browse_kyc(browse))


@router.get("/export")
async def export_kyc_records(
    format: str = "csv",
    limit: Optional[int] = None,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.KYC_EXPORT)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export the filtered KYC list"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.kyc_manager.export_kyc(browse, export_format, limit, user_id)
    return export_response(result)


@router.get("/{identity_kind}/{identity_id}")
async def get_kyc_record(
    identity_kind: str,
    identity_id: str,
    user_id: str = Depends(require_permission(Permission.KYC_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """KYC record of one customer, organization or operator"""
    try:
        kind = IdentityKind(identity_kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown identity kind: {identity_kind}")

    record = system.kyc_manager.get_kyc(kind, identity_id)
    if record is None:
        raise HTTPException(status_code=404, detail="KYC record not found")

    required = system.kyc_manager.required_attributes
    data = record.to_dict()
    data['is_complete'] = record.is_complete(required)
    data['missing_attributes'] = record.missing_attributes(required)
    return encode(data)
