from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from ..core.roles import Role
from .base import ApiModel


def _password_bytes_le_72(v: str) -> str:
    if len(v.encode("utf-8")) > 72:
        raise ValueError("Password must be <= 72 bytes (bcrypt limit).")
    return v


class UserOut(ApiModel):
    id: int
    name: str
    email: str | None = None
    role: str
    created_at: datetime | None = None


class RegisterIn(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr = Field(max_length=150)
    password: str = Field(min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def password_bytes_le_72(cls, v: str) -> str:
        return _password_bytes_le_72(v)


class UserCreateIn(RegisterIn):
    role: Role = Role.USER

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v):
        return Role.parse(v)


class UserUpdateIn(ApiModel):
    id: int | None = None
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr = Field(max_length=150)
    role: Role | None = None

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return Role.parse(v)


class PasswordChangeIn(ApiModel):
    current_password: str | None = None
    new_password: str = Field(min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_bytes_le_72(cls, v: str) -> str:
        return _password_bytes_le_72(v)
