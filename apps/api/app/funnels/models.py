from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.tenancy.models import SubAccount, new_id, utcnow


class Funnel(Base):
    __tablename__ = "funnel"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    subdomain: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    favicon: Mapped[str | None] = mapped_column(Text, nullable=True)
    live_products: Mapped[str] = mapped_column(Text, nullable=False, default="[]", server_default="[]")
    sub_account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sub_account: Mapped[SubAccount] = relationship("SubAccount", back_populates="funnels")
