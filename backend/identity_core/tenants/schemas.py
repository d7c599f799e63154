from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class TenantRegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    domain: str = Field(min_length=1, max_length=255, description="Subdomain label like acme")
    email: EmailStr
    # bcrypt hard limit = 72 bytes
    password: str = Field(min_length=8, max_length=72)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    phone1: str | None = Field(default=None, max_length=50)
    phone2: str | None = Field(default=None, max_length=50)
    registration_number: str | None = Field(default=None, max_length=100)
    type: str | None = Field(default=None, max_length=50)
    subscription_plan_id: str | None = Field(default=None, max_length=36)


class TenantOut(BaseModel):
    id: str
    domain: str
    name: str
    email: str | None = None
    type: str | None = None
    subscription_plan_id: str | None = None
    subscription_start_date: datetime | None = None
    created_at: datetime | None = None


class TenantRegisterResponse(BaseModel):
    tenant: TenantOut
    admin_user_id: str
    admin_email: str
