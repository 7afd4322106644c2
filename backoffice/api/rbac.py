"""
Login and user administration endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BackofficeSystem, get_backoffice_system, get_current_user, require_permission
from .schemas import CreateUserRequest, LoginRequest, LoginResponse
from ..rbac import AuthenticationError, Permission


router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Authenticate user and return JWT token"""
    try:
        user = system.rbac_manager.authenticate(request.username, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

    token, expires_at = system.tokens.issue(user)
    return LoginResponse(
        access_token=token,
        expires_at=expires_at.isoformat(),
        user_id=user.id,
        roles=user.roles,
    )


@router.get("/auth/me")
async def current_user(
    user_id: str = Depends(get_current_user),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """The authenticated user and their permissions"""
    user = system.rbac_manager.get_user(user_id)
    if user is None:
        return {"user_id": user_id, "permissions": []}
    return {
        "user": user.public_dict(),
        "permissions": sorted(system.rbac_manager.get_user_permissions(user_id)),
    }


@router.get("/users")
async def list_users(
    user_id: str = Depends(require_permission(Permission.USERS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """List console users"""
    return {"users": [user.public_dict() for user in system.rbac_manager.list_users()]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    user_id: str = Depends(require_permission(Permission.USERS_CREATE)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """Create a console user"""
    try:
        user = system.rbac_manager.create_user(
            username=request.username,
            email=request.email,
            full_name=request.full_name,
            roles=request.roles,
            password=request.password,
            created_by=user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"user_id": user.id, "message": "User created successfully"}


@router.get("/roles")
async def list_roles(
    user_id: str = Depends(require_permission(Permission.USERS_VIEW)),
    system: BackofficeSystem = Depends(get_backoffice_system)
):
    """List roles with their permissions"""
    return {"roles": [
        {"name": role.name, "description": role.description,
         "permissions": role.permissions, "is_system_role": role.is_system_role}
        for role in system.rbac_manager.list_roles()
    ]}
