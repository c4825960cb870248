from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from app.authz.roles import Role


Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class PipelineUpsert(BaseModel):
    id: str | None = None
    name: Name
    sub_account_id: str = Field(min_length=1)


class PipelineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sub_account_id: str
    created_at: datetime
    updated_at: datetime


class LaneUpsert(BaseModel):
    id: str | None = None
    name: Name
    pipeline_id: str = Field(min_length=1)
    order: int | None = Field(default=None, ge=0)


class TicketUpsert(BaseModel):
    id: str | None = None
    name: Name
    lane_id: str = Field(min_length=1)
    order: int | None = Field(default=None, ge=0)
    value: Decimal | None = None
    description: str | None = None
    customer_id: str | None = None
    assigned_user_id: str | None = None
    tag_ids: list[str] = Field(default_factory=list)


class TagUpsert(BaseModel):
    id: str | None = None
    name: Name
    color: Name


class ContactUpsert(BaseModel):
    id: str | None = None
    name: Name
    email: EmailStr


class TagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: str
    sub_account_id: str


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    sub_account_id: str
    created_at: datetime


class TicketAssigneeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    avatar_url: str | None
    role: Role


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    lane_id: str
    order: int
    value: Decimal | None
    description: str | None
    customer_id: str | None
    assigned_user_id: str | None
    created_at: datetime
    updated_at: datetime


class TicketDetailsRead(TicketRead):
    tags: list[TagRead]
    assigned: TicketAssigneeRead | None
    customer: ContactRead | None


class LaneRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    pipeline_id: str
    order: int
    created_at: datetime
    updated_at: datetime


class LaneDetailsRead(LaneRead):
    tickets: list[TicketDetailsRead]


class LaneOrderUpdate(BaseModel):
    id: str = Field(min_length=1)
    order: int = Field(ge=0)


class TicketOrderUpdate(BaseModel):
    id: str = Field(min_length=1)
    order: int = Field(ge=0)
    lane_id: str = Field(min_length=1)


class LanesOrderRequest(BaseModel):
    lanes: list[LaneOrderUpdate]


class TicketsOrderRequest(BaseModel):
    tickets: list[TicketOrderUpdate]


class OrderSaveRead(BaseModel):
    saved: bool
