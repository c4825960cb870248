from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.tenancy.models import Agency, SubAccount, User, new_id, utcnow


class Notification(Base):
    __tablename__ = "notification"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    notification: Mapped[str] = mapped_column(Text, nullable=False)
    agency_id: Mapped[str] = mapped_column(String(64), ForeignKey("agency.id", ondelete="CASCADE"), nullable=False)
    sub_account_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("agency_user.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    agency: Mapped[Agency] = relationship("Agency", back_populates="notifications")
    sub_account: Mapped[SubAccount | None] = relationship("SubAccount", back_populates="notifications")
    user: Mapped[User] = relationship("User", back_populates="notifications")

    __table_args__ = (Index("ix_notification_agency_created", "agency_id", "created_at"),)
