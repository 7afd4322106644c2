"""
Role-Based Access Control (RBAC) Module

Console users, the system roles and their permissions, password hashing and
JWT access tokens. Route handlers ask `check_permission`; the list screens
themselves carry no authorisation logic.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

import jwt

from .audit import AuditEventType, AuditTrail
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, StorageManager


logger = get_logger("backoffice.rbac")

USERS_TABLE = "users"
ROLES_TABLE = "roles"


class Permission(Enum):
    """Console permissions"""
    DASHBOARD_VIEW = "dashboard.view"
    ANALYTICS_VIEW = "analytics.view"
    ANALYTICS_EXPORT = "analytics.export"
    REPORTS_VIEW = "reports.view"
    REPORTS_EXPORT = "reports.export"

    # Customers
    CUSTOMERS_VIEW = "customers.view"
    CUSTOMERS_EDIT = "customers.edit"
    CUSTOMERS_EXPORT = "customers.export"
    CUSTOMER_ACCOUNTS_VIEW = "customer-accounts.view"
    CUSTOMER_ACCOUNTS_EDIT = "customer-accounts.edit"

    # Organizations
    ORGANIZATIONS_VIEW = "organizations.view"
    ORGANIZATIONS_EDIT = "organizations.edit"
    ORGANIZATIONS_EXPORT = "organizations.export"
    ORGANIZATION_ACCOUNTS_VIEW = "organization-accounts.view"
    ORGANIZATION_ACCOUNTS_EDIT = "organization-accounts.edit"

    # Operators
    OPERATORS_VIEW = "operators.view"
    OPERATORS_EDIT = "operators.edit"
    OPERATORS_EXPORT = "operators.export"

    # KYC & compliance
    KYC_VIEW = "kyc.view"
    KYC_EXPORT = "kyc.export"
    COMPLIANCE_VIEW = "compliance.view"
    COMPLIANCE_AUDIT = "compliance.audit"

    # Financial
    FINANCIAL_VIEW = "financial.view"
    FINANCIAL_TRANSACTIONS = "financial.transactions"
    ACCOUNTS_VIEW = "accounts.view"
    ACCOUNTS_EDIT = "accounts.edit"
    BALANCES_VIEW = "balances.view"
    EXPORT_FINANCIAL = "export.financial"
    EXPORT_CUSTOMERS = "export.customers"
    EXPORT_ORGANIZATIONS = "export.organizations"
    EXPORT_COMPLIANCE = "export.compliance"

    # Administration
    USERS_VIEW = "users.view"
    USERS_CREATE = "users.create"
    USERS_EDIT = "users.edit"
    AUDIT_LOGS_VIEW = "audit-logs.view"


def _perms(*names: str) -> Set[Permission]:
    return {Permission(name) for name in names}


SYSTEM_ROLES: Dict[str, Tuple[str, Set[Permission]]] = {
    'super-admin': ("Full system access with all permissions", set(Permission)),
    'admin': ("Administrative access to most features", _perms(
        'dashboard.view', 'analytics.view', 'analytics.export', 'reports.view', 'reports.export',
        'customers.view', 'customers.edit', 'customers.export',
        'customer-accounts.view', 'customer-accounts.edit',
        'organizations.view', 'organizations.edit', 'organizations.export',
        'organization-accounts.view', 'organization-accounts.edit',
        'operators.view', 'operators.edit', 'operators.export',
        'kyc.view', 'kyc.export', 'compliance.view',
        'financial.view', 'financial.transactions', 'accounts.view', 'accounts.edit', 'balances.view',
        'export.customers', 'export.organizations', 'export.financial', 'export.compliance',
    )),
    'manager': ("Management level access to operations", _perms(
        'dashboard.view', 'analytics.view', 'reports.view',
        'customers.view', 'customers.edit', 'customer-accounts.view', 'customer-accounts.edit',
        'organizations.view', 'organizations.edit', 'organization-accounts.view',
        'kyc.view', 'compliance.view',
        'financial.view', 'financial.transactions', 'accounts.view', 'balances.view',
        'export.customers', 'export.organizations',
    )),
    'kyc-officer': ("KYC and compliance specialist", _perms(
        'dashboard.view', 'analytics.view',
        'customers.view', 'customer-accounts.view',
        'organizations.view', 'organization-accounts.view',
        'kyc.view', 'kyc.export', 'compliance.view', 'compliance.audit', 'export.compliance',
    )),
    'financial-analyst': ("Financial operations and analysis", _perms(
        'dashboard.view', 'analytics.view', 'reports.view',
        'customers.view', 'customer-accounts.view',
        'organizations.view', 'organization-accounts.view',
        'financial.view', 'financial.transactions', 'accounts.view', 'accounts.edit',
        'balances.view', 'export.financial',
    )),
    'customer-service': ("Customer service representative", _perms(
        'dashboard.view', 'customers.view', 'customers.edit', 'customer-accounts.view',
        'organizations.view', 'organization-accounts.view', 'kyc.view',
    )),
    'operator': ("Basic operational access", _perms(
        'dashboard.view', 'customers.view', 'customer-accounts.view', 'organizations.view',
    )),
    'auditor': ("Audit and compliance monitoring", _perms(
        'dashboard.view', 'analytics.view', 'reports.view',
        'customers.view', 'customer-accounts.view',
        'organizations.view', 'organization-accounts.view', 'operators.view',
        'kyc.view', 'compliance.view', 'compliance.audit', 'audit-logs.view', 'export.compliance',
    )),
}

MAX_FAILED_ATTEMPTS = 5


class AuthenticationError(Exception):
    """Login refused; the message is safe to return to the caller"""
    pass


@dataclass
class Role(StorageRecord):
    """Role with permissions; `id` is the role name"""
    name: str
    description: str = ""
    permissions: List[str] = field(default_factory=list)
    is_system_role: bool = False

    def has_permission(self, permission: Permission) -> bool:
        return permission.value in self.permissions


@dataclass
class User(StorageRecord):
    """Console user with roles and authentication info"""
    username: str
    email: str
    full_name: str
    roles: List[str] = field(default_factory=list)  # role names
    is_active: bool = True
    is_locked: bool = False
    failed_login_attempts: int = 0
    last_login: Optional[datetime] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None
    created_by: str = ""

    timestamp_fields = ('last_login',)

    @property
    def is_available(self) -> bool:
        """Check if user can authenticate (active and not locked)"""
        return self.is_active and not self.is_locked

    def public_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.pop('password_hash', None)
        data.pop('password_salt', None)
        return data


def hash_password(password: str, salt: str) -> str:
    """scrypt hash of a password"""
    return hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1).hex()


class TokenService:
    """Issues and decodes HS256 JWT access tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_hours: int = 8):
        self.secret = secret
        self.algorithm = algorithm
        self.expiry_hours = expiry_hours

    def issue(self, user: User) -> Tuple[str, datetime]:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.expiry_hours)
        payload = {
            "sub": user.id,
            "username": user.username,
            "roles": list(user.roles),
            "iat": now,
            "exp": expires_at,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm), expires_at

    def decode(self, token: str) -> Dict[str, Any]:
        """Decoded claims; raises jwt.ExpiredSignatureError / jwt.InvalidTokenError"""
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])


class RBACManager:
    """Role-Based Access Control manager"""

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None,
                 password_min_length: int = 8):
        self.storage = storage
        self.records = StorageManager(storage)
        self.audit = audit_trail or AuditTrail(storage)
        self.password_min_length = password_min_length
        self._create_system_roles()

    # Roles

    def get_role(self, name: str) -> Optional[Role]:
        return self.records.load_record(Role, ROLES_TABLE, name)

    def list_roles(self) -> List[Role]:
        roles = [Role.from_dict(data) for data in self.storage.load_all(ROLES_TABLE)]
        return sorted(roles, key=lambda r: r.name)

    # Users

    def create_user(self, username: str, email: str, full_name: str, roles: List[str],
                    password: str, created_by: str = "system") -> User:
        """Create a console user; raises ValueError for a duplicate name, unknown role or weak password"""
        if self.get_user_by_username(username):
            raise ValueError(f"Username {username} already exists")
        unknown = [name for name in roles if self.get_role(name) is None]
        if unknown:
            raise ValueError(f"Unknown roles: {', '.join(unknown)}")
        if len(password) < self.password_min_length:
            raise ValueError(f"Password must be at least {self.password_min_length} characters")

        now = datetime.now(timezone.utc)
        salt = secrets.token_hex(16)
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            email=email,
            full_name=full_name,
            roles=list(roles),
            password_salt=salt,
            password_hash=hash_password(password, salt),
            created_by=created_by,
        )
        self._save_user(user)

        self.audit.log_event(
            AuditEventType.USER_CREATED, 'user', user.id,
            {'username': username, 'roles': list(roles)}, created_by
        )
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.records.load_record(User, USERS_TABLE, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        users = self.storage.find(USERS_TABLE, {'username': username})
        if not users:
            return None
        return User.from_dict(users[0])

    def list_users(self) -> List[User]:
        users = [User.from_dict(data) for data in self.storage.load_all(USERS_TABLE)]
        return sorted(users, key=lambda u: u.username)

    def unlock_user(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        if not user:
            return False
        user.is_locked = False
        user.failed_login_attempts = 0
        user.updated_at = datetime.now(timezone.utc)
        self._save_user(user)
        return True

    # Authentication

    def authenticate(self, username: str, password: str) -> User:
        """Check credentials; raises AuthenticationError on any refusal"""
        user = self.get_user_by_username(username)

        if not user:
            self._login_failed(username, username, 'user_not_found')
            raise AuthenticationError("Invalid credentials")

        if not user.is_available:
            self._login_failed(user.id, username, 'user_not_available')
            raise AuthenticationError("Account is not available")

        if not self._verify_password(user, password):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= MAX_FAILED_ATTEMPTS:
                user.is_locked = True
                self.audit.log_event(
                    AuditEventType.USER_LOCKED, 'user', user.id,
                    {'failed_login_attempts': user.failed_login_attempts}, username
                )
            user.updated_at = datetime.now(timezone.utc)
            self._save_user(user)
            self._login_failed(user.id, username, 'invalid_password')
            raise AuthenticationError("Invalid credentials")

        now = datetime.now(timezone.utc)
        user.failed_login_attempts = 0
        user.last_login = now
        user.updated_at = now
        self._save_user(user)

        self.audit.log_event(AuditEventType.LOGIN_SUCCESS, 'user', user.id, {}, user.id)
        log_action(logger, "info", "User authenticated successfully",
                   user_id=user.id, action="login", resource="auth")
        return user

    # Permissions

    def get_user_permissions(self, user_id: str) -> Set[str]:
        user = self.get_user(user_id)
        if not user or not user.is_available:
            return set()
        permissions: Set[str] = set()
        for name in user.roles:
            role = self.get_role(name)
            if role:
                permissions.update(role.permissions)
        return permissions

    def check_permission(self, user_id: str, permission: Permission) -> bool:
        return permission.value in self.get_user_permissions(user_id)

    # Private helper methods

    def _save_user(self, user: User) -> None:
        self.records.save_record(user, USERS_TABLE)

    def _verify_password(self, user: User, password: str) -> bool:
        if not user.password_hash or not user.password_salt:
            return False
        return hmac.compare_digest(user.password_hash, hash_password(password, user.password_salt))

    def _login_failed(self, entity_id: str, username: str, reason: str) -> None:
        self.audit.log_event(
            AuditEventType.LOGIN_FAILED, 'user', entity_id, {'reason': reason}, username
        )
        log_action(logger, "warning", f"Authentication failed: {reason}",
                   action="login_failed", resource="auth", extra={'username': username})

    def _create_system_roles(self):
        """Create built-in system roles"""
        now = datetime.now(timezone.utc)
        for name, (description, permissions) in SYSTEM_ROLES.items():
            if self.storage.exists(ROLES_TABLE, name):
                continue
            role = Role(
                id=name,
                created_at=now,
                updated_at=now,
                name=name,
                description=description,
                permissions=sorted(p.value for p in permissions),
                is_system_role=True,
            )
            self.records.save_record(role, ROLES_TABLE)
