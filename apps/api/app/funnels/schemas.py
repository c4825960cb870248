from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints


class FunnelUpsert(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    description: str | None = None
    subdomain: str | None = None
    favicon: str | None = None
    published: bool = False
    live_products: str = "[]"


class FunnelProductsUpdate(BaseModel):
    live_products: str


class FunnelRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    published: bool
    subdomain: str | None
    favicon: str | None
    live_products: str
    sub_account_id: str
    created_at: datetime
    updated_at: datetime
