"""Pydantic models for API request/response validation"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime

from habitrpg.models import UserSummary


class RegisterRequest(BaseModel):
    """Request model for account registration (rules enforced by AuthService)"""
    username: str = Field(..., description="3-50 letters, digits, '_' or '-'")
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="8-100 characters")


class LoginRequest(BaseModel):
    """Request model for login"""
    email: str
    password: str


class AuthResponse(BaseModel):
    """Token and user block returned by register and login"""
    message: str
    token: str
    user: UserSummary


class UpdateProfileRequest(BaseModel):
    """Profile fields the user may change"""
    username: Optional[str] = Field(default=None, description="New username")


class PermanentDeleteRequest(BaseModel):
    """Confirmation for irreversible habit deletion"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    confirmation_text: str = Field(..., description="Must equal the habit title exactly")


class MessageResponse(BaseModel):
    """Error/info body: {"message": ...}"""
    message: str


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database connection status")
    timestamp: datetime = Field(..., description="Check timestamp")
