from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints


class MediaCreate(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    link: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    type: str | None = None


class MediaRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str | None
    name: str
    link: str
    sub_account_id: str
    created_at: datetime
    updated_at: datetime


class SubAccountMediaRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    media: list[MediaRead]
