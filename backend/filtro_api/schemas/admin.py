from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Literal, Optional

Role = Literal["super_admin", "company_admin", "company_user"]
Status = Literal["active", "disabled"]


class PermissionSchema(BaseModel):
    method: str = Field(min_length=1)
    path: str = Field(min_length=1)


class ClientCreate(BaseModel):
    client_id: str = Field(alias="clientId", min_length=4)
    client_secret: Optional[str] = Field(default=None, alias="clientSecret", min_length=8)
    company_codes: list[str] = Field(default=[], alias="companyCodes")
    scopes: list[str] = []
    permissions: list[PermissionSchema] = []
    is_admin: bool = Field(default=False, alias="isAdmin")

    class Config:
        populate_by_name = True


class ClientUpdate(BaseModel):
    client_secret: Optional[str] = Field(default=None, alias="clientSecret", min_length=8)
    rotate_secret: bool = Field(default=False, alias="rotateSecret")
    company_codes: Optional[list[str]] = Field(default=None, alias="companyCodes")
    scopes: Optional[list[str]] = None
    permissions: Optional[list[PermissionSchema]] = None
    is_admin: Optional[bool] = Field(default=None, alias="isAdmin")
    status: Optional[Status] = None

    class Config:
        populate_by_name = True


class ClientResponse(BaseModel):
    clientId: str
    companyCodes: list[str] = []
    scopes: list[str] = []
    permissions: list[PermissionSchema] = []
    isAdmin: bool = False
    status: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class UserCreate(BaseModel):
    email: str = Field(min_length=3)
    full_name: str = Field(alias="fullName", min_length=1)
    password: str = Field(min_length=8)
    role: Role
    company_code: Optional[str] = Field(default=None, alias="companyCode")
    external_user_id: Optional[int] = Field(default=None, alias="externalUserId")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def company_required_for_company_roles(self):
        if self.role != "super_admin" and not (self.company_code or "").strip():
            raise ValueError("companyCode is required for company roles")
        return self


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, alias="fullName", min_length=1)
    password: Optional[str] = Field(default=None, min_length=8)
    role: Optional[Role] = None
    company_code: Optional[str] = Field(default=None, alias="companyCode")
    external_user_id: Optional[int] = Field(default=None, alias="externalUserId")
    status: Optional[Status] = None

    class Config:
        populate_by_name = True


class UserResponse(BaseModel):
    id: int
    email: str
    fullName: str
    role: str
    companyCode: Optional[str] = None
    externalUserId: Optional[int] = None
    status: str
    createdAt: Optional[datetime] = None


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)


class CompanyResponse(BaseModel):
    id: int
    name: str
    code: str
    status: str

    class Config:
        from_attributes = True
