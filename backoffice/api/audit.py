"""
Audit trail endpoints
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from ..rbac import Permission
from ..screens import BrowseRequest


router = APIRouter()


@router.get("")
async def list_audit_events(
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.AUDIT_LOGS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Browse recorded audit events (last 30 days unless a date range is given)"""
    with query_errors():
        return browse_response(system.audit_log_manager.browse_events(browse))


@router.get("/export")
async def export_audit_events(
    format: str = "csv",
    limit: Optional[int] = None,
    browse: BrowseRequest = Depends(browse_request),
    user_id: str = Depends(require_permission(Permission.EXPORT_COMPLIANCE)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Export the filtered audit events"""
    export_format = parse_export_format(format)
    with query_errors():
        result = system.audit_log_manager.export_events(browse, export_format, limit, user_id)
    return export_response(result)


@router.get("/verify")
async def verify_audit_integrity(
    user_id: str = Depends(require_permission(Permission.AUDIT_LOGS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Verify hashes and chain continuity of the audit trail"""
    return encode(system.audit_log_manager.verify_integrity(user_id))


@router.get("/{event_id}")
async def get_audit_event(
    event_id: str,
    user_id: str = Depends(require_permission(Permission.AUDIT_LOGS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Get audit event by ID"""
    event = system.audit_log_manager.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Audit event not found")
    return encode(event.to_dict())
