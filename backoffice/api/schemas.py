"""
Pydantic schemas for API requests and responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# Authentication schemas
class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: str
    user_id: str
    roles: List[str] = Field(default_factory=list)


class CreateUserRequest(BaseModel):
    username: str
    email: str
    full_name: str
    password: str
    roles: List[str] = Field(default_factory=list)


# Status change schemas
class StatusChangeRequest(BaseModel):
    status: str = Field(..., description="New status code, e.g. 03 or BLOCKED")
    reason: Optional[str] = None
