"""
System wiring and authentication/authorization dependencies
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import AccountManager
from ..audit import AuditTrail
from ..config import BackofficeConfig, get_config
from ..customers import CustomerManager
from ..export import Exporter
from ..kyc import KycManager
from ..managers import AuditLogManager
from ..operators import OperatorManager
from ..organizations import OrganizationManager
from ..pagination import Paginator
from ..rbac import Permission, RBACManager, TokenService
from ..screens import ScreenBrowser
from ..storage import create_storage
from ..transactions import TransactionManager


# Reported as the acting user when authentication is disabled
AUTH_DISABLED_USER = "system"


class BackofficeSystem:
    """Back-office console with all components initialized"""

    def __init__(self, config: Optional[BackofficeConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = create_storage(self.config.database_url)

        # Shared listing components
        self.audit_trail = AuditTrail(self.storage)
        self.browser = ScreenBrowser(
            self.storage,
            paginator=Paginator(self.config.default_page_size, self.config.max_page_size),
            date_format=self.config.date_display_format,
        )
        self.exporter = Exporter(
            self.browser, self.config.export_default_limit, self.config.export_max_limit
        )
        shared = {'browser': self.browser, 'exporter': self.exporter}

        # Entity managers
        self.kyc_manager = KycManager(
            self.storage, self.audit_trail,
            required_attributes=self.config.kyc_required_attributes, **shared
        )
        self.account_manager = AccountManager(self.storage, self.audit_trail, **shared)
        self.operator_manager = OperatorManager(self.storage, self.audit_trail, **shared)
        self.transaction_manager = TransactionManager(self.storage, self.audit_trail, **shared)
        self.customer_manager = CustomerManager(
            self.storage, self.audit_trail, self.account_manager, self.kyc_manager, **shared
        )
        self.organization_manager = OrganizationManager(
            self.storage, self.audit_trail, self.account_manager,
            self.operator_manager, self.kyc_manager, **shared
        )
        self.audit_log_manager = AuditLogManager(self.storage, self.audit_trail, **shared)

        # Access control
        self.rbac_manager = RBACManager(
            self.storage, self.audit_trail, password_min_length=self.config.password_min_length
        )
        self.tokens = TokenService(
            self.config.jwt_secret, self.config.jwt_algorithm, self.config.jwt_expiry_hours
        )

    def close(self) -> None:
        self.storage.close()


# Global system instance, created on first use
_system: Optional[BackofficeSystem] = None


def get_backoffice_system() -> BackofficeSystem:
    global _system
    if _system is None:
        _system = BackofficeSystem()
    return _system


def set_backoffice_system(system: Optional[BackofficeSystem]) -> None:
    """Replace the global system (tests, alternative wiring)"""
    global _system
    _system = system


# JWT Security
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BackofficeSystem = Depends(get_backoffice_system)
) -> str:
    """Dependency that validates the bearer JWT and returns the user id"""
    if not system.config.auth_enabled:
        return AUTH_DISABLED_USER

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = system.tokens.decode(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def require_permission(permission: Permission):
    """Dependency factory for permission checking"""
    def check(user_id: str = Depends(get_current_user),
              system: BackofficeSystem = Depends(get_backoffice_system)) -> str:
        if not system.config.auth_enabled:
            return user_id
        if not system.rbac_manager.check_permission(user_id, permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user_id
    return check
