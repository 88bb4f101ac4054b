"""Authentication schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request schema."""

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


class StaffInfo(BaseModel):
    id: str
    username: str
    status: str
    role: str


class TokenResponse(BaseModel):
    """Token response schema."""

    ok: bool = True
    token: str
    role: Literal["admin", "staff"]
    staff: Optional[StaffInfo] = None
