from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, StrictInt, StringConstraints

from app.authz.roles import Role


RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
SidebarScope = Literal["agency", "subaccount"]


class AgencyUpsert(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: RequiredText
    agency_logo: RequiredText
    company_email: RequiredText
    company_phone: RequiredText
    white_label: StrictBool
    address: RequiredText
    city: RequiredText
    zip_code: RequiredText
    state: RequiredText
    country: RequiredText
    connect_account_id: str = ""
    goal: StrictInt = 5


class AgencyUpdate(BaseModel):
    name: RequiredText | None = None
    agency_logo: RequiredText | None = None
    company_email: RequiredText | None = None
    company_phone: RequiredText | None = None
    white_label: StrictBool | None = None
    address: RequiredText | None = None
    city: RequiredText | None = None
    zip_code: RequiredText | None = None
    state: RequiredText | None = None
    country: RequiredText | None = None
    connect_account_id: str | None = None
    goal: StrictInt | None = None


class SidebarOptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    icon: str
    link: str


class AgencyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    agency_logo: str
    company_email: str
    company_phone: str
    white_label: bool
    address: str
    city: str
    zip_code: str
    state: str
    country: str
    goal: int
    connect_account_id: str
    created_at: datetime
    updated_at: datetime


class SubAccountUpsert(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    agency_id: str = Field(min_length=1)
    name: RequiredText
    sub_account_logo: RequiredText
    company_email: RequiredText
    company_phone: RequiredText
    address: RequiredText
    city: RequiredText
    zip_code: RequiredText
    state: RequiredText
    country: RequiredText
    connect_account_id: str = ""
    goal: StrictInt = 5


class SubAccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    agency_id: str
    name: str
    sub_account_logo: str
    company_email: str
    company_phone: str
    address: str
    city: str
    zip_code: str
    state: str
    country: str
    goal: int
    connect_account_id: str
    created_at: datetime
    updated_at: datetime


class SubAccountWithSidebarRead(SubAccountRead):
    sidebar_options: list[SidebarOptionRead]


class AgencyDetailsRead(AgencyRead):
    sidebar_options: list[SidebarOptionRead]
    sub_accounts: list[SubAccountWithSidebarRead]


class PermissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    sub_account_id: str
    access: bool


class PermissionWithSubAccountRead(PermissionRead):
    sub_account: SubAccountRead


class PermissionChange(BaseModel):
    permission_id: str | None = None
    email: EmailStr
    sub_account_id: str = Field(min_length=1)
    access: bool


class UserInit(BaseModel):
    name: RequiredText | None = None
    avatar_url: str | None = None
    role: Role | None = None
    agency_id: str | None = None


class UserUpdate(BaseModel):
    email: EmailStr
    name: RequiredText | None = None
    avatar_url: str | None = None
    role: Role | None = None
    agency_id: str | None = None


class TeamUserCreate(BaseModel):
    id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    name: str
    avatar_url: str | None = None
    role: Role
    agency_id: str = Field(min_length=1)


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    avatar_url: str | None
    email: str
    role: Role
    agency_id: str | None
    created_at: datetime
    updated_at: datetime


class AuthUserDetailsRead(UserRead):
    agency: AgencyDetailsRead | None
    permissions: list[PermissionRead]


class InvitationCreate(BaseModel):
    role: Role
    email: EmailStr
    agency_id: str = Field(min_length=1)


class InvitationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    agency_id: str
    status: str
    role: Role
    created_at: datetime


class InvitationAcceptRead(BaseModel):
    agency_id: str | None


class SidebarRead(BaseModel):
    scope: SidebarScope
    id: str
    name: str
    logo: str
    white_label: bool
    options: list[SidebarOptionRead]
    sub_accounts: list[SubAccountRead]
