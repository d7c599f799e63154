from pydantic import BaseModel, Field


class PermissionOut(BaseModel):
    id: str
    name: str


class RoleOut(BaseModel):
    id: str
    name: str
    permissions: list[PermissionOut] = []


class RolesListResponse(BaseModel):
    tenant_id: str
    roles: list[RoleOut]


class PermissionsListResponse(BaseModel):
    tenant_id: str
    permissions: list[PermissionOut]


class RoleCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class RoleUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class PermissionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class RolePermissionsRequest(BaseModel):
    permissions: list[str] = Field(min_length=1)


class UserRolesRequest(BaseModel):
    role_ids: list[str] = Field(min_length=1)


class UserRolesResponse(BaseModel):
    user_id: str
    roles: list[str]
