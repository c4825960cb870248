from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.authz.roles import Role


class NotificationCreate(BaseModel):
    description: str = Field(min_length=1)
    agency_id: str | None = None
    subaccount_id: str | None = None


class NotificationUserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    avatar_url: str | None
    role: Role


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    notification: str
    agency_id: str
    sub_account_id: str | None
    user_id: str
    created_at: datetime


class NotificationWithUserRead(NotificationRead):
    user: NotificationUserRead
