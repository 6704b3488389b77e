from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class UserRegister(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    timezone: Optional[str] = Field(default=None, max_length=64)


class TimezoneUpdate(BaseModel):
    timezone: Optional[str] = None


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str


class EmailChangeRequest(BaseModel):
    new_email: EmailStr
    current_password: Optional[str] = None


class AvatarUpdate(BaseModel):
    avatar: str


class ApiUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    provider: str
    roles: List[str] = Field(default_factory=lambda: ["user"])
    timezone: Optional[str] = None
    avatar_url: Optional[str] = None


def to_api_user(doc: Dict[str, Any]) -> ApiUser:
    return ApiUser(
        id=str(doc["_id"]),
        name=doc.get("name"),
        email=doc.get("email"),
        provider=doc.get("provider", "password"),
        roles=doc.get("roles") or ["user"],
        timezone=doc.get("timezone"),
        avatar_url=doc.get("avatar_url"),
    )
