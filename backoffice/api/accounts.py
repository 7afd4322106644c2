"""
Customer-account and organization-account endpoints

Both account screens share one set of routes; `build_router` binds them to
an owner kind and its permissions.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from .auth import BackofficeSystem, get_backoffice_system, require_permission
from .listing import browse_request, browse_response, encode, export_response, parse_export_format, query_errors
from .schemas import StatusChangeRequest
from ..accounts import OwnerKind
from ..rbac import Permission
from ..screens import BrowseRequest


def build_router(owner_kind: OwnerKind, view: Permission, edit: Permission) -> APIRouter:
    router = APIRouter()

    def _owned_account(system: BackofficeSystem, account_no: str):
        account = system.account_manager.get_account(account_no)
        if account is None or account.owner_kind != owner_kind.value:
            raise HTTPException(status_code=404, detail="Account not found")
        return account

    @router.get("")
    async def list_accounts(
        browse: BrowseRequest = Depends(browse_request),
        user_id: str = Depends(require_permission(view)),
        system: BackofficeSystem = Depends(get_backoffice_system)
    ):
        """Browse accounts"""
        with query_errors():
            return browse_response(system.account_manager.browse_accounts(owner_kind, browse))

    @router.get("/export")
    async def export_accounts(
        format: str = "csv",
        limit: Optional[int] = None,
        browse: BrowseRequest = Depends(browse_request),
        user_id: str = Depends(require_permission(Permission.EXPORT_FINANCIAL)),
        system: BackofficeSystem = Depends(get_backoffice_system)
    ):
        """Export the filtered account list"""
        export_format = parse_export_format(format)
        with query_errors():
            result = system.account_manager.export_accounts(owner_kind, browse, export_format, limit, user_id)
        return export_response(result)

    @router.get("/{account_no}")
    async def get_account(
        account_no: str,
        user_id: str = Depends(require_permission(view)),
        system: BackofficeSystem = Depends(get_backoffice_system)
    ):
        """Get account by account number"""
        account = _owned_account(system, account_no)
        data = system.browser.labels.decorate(account.to_dict(), {'account_status': 'account_status'})
        data['available_balance'] = account.available_balance
        return encode(data)

    @router.put("/{account_no}/status")
    async def change_account_status(
        account_no: str,
        request: StatusChangeRequest,
        user_id: str = Depends(require_permission(edit)),
        system: BackofficeSystem = Depends(get_backoffice_system)
    ):
        """Change an account's status code"""
        _owned_account(system, account_no)
        try:
            account = system.account_manager.change_account_status(
                account_no, request.status, reason=request.reason, user_id=user_id
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {"account_no": account.account_no, "account_status": account.account_status,
                "message": "Account status updated successfully"}

    return router


customer_accounts_router = build_router(
    OwnerKind.CUSTOMER, Permission.CUSTOMER_ACCOUNTS_VIEW, Permission.CUSTOMER_ACCOUNTS_EDIT
)
organization_accounts_router = build_router(
    OwnerKind.ORGANIZATION, Permission.ORGANIZATION_ACCOUNTS_VIEW, Permission.ORGANIZATION_ACCOUNTS_EDIT
)
