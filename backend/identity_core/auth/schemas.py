from datetime import datetime, timezone

from pydantic import BaseModel, EmailStr, Field, field_serializer


class LoginRequest(BaseModel):
    # Empty values are rejected by the service with a 400 rather than a 422.
    email: str = ""
    # prevent bcrypt crash on long input
    password: str = Field(default="", max_length=72)


class UserSummary(BaseModel):
    id: str
    tenant_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    refresh_expires_at: datetime

    @field_serializer("expires_at", "refresh_expires_at")
    def serialize_utc(self, value: datetime) -> str:
        # Stored timestamps are naive UTC.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LoginResponse(TokenResponse):
    user: UserSummary
    roles: list[str] = []
    permissions: list[str] = []
    must_change_password: bool = False


class RefreshRequest(BaseModel):
    refresh_token: str = ""


class RevokeRequest(BaseModel):
    refresh_token: str = ""


class RegisterRequest(BaseModel):
    email: EmailStr
    # bcrypt hard limit = 72 bytes
    password: str = Field(default="", max_length=72)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class ResetPasswordRequest(BaseModel):
    email: str = ""
    code: str = ""
    new_password: str = Field(default="", max_length=72)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(default="", max_length=72)
    new_password: str = Field(default="", max_length=72)


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    id: str
    tenant_id: str
    email: str
    roles: list[str]
    permissions: list[str]
