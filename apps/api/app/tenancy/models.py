from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.funnels.models import Funnel
    from app.media.models import Media
    from app.notifications.models import Notification
    from app.pipelines.models import Contact, Pipeline, Tag


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Agency(Base):
    __tablename__ = "agency"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    agency_logo: Mapped[str] = mapped_column(Text, nullable=False)
    company_email: Mapped[str] = mapped_column(String(320), nullable=False)
    company_phone: Mapped[str] = mapped_column(String(64), nullable=False)
    white_label: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[str] = mapped_column(String(128), nullable=False)
    country: Mapped[str] = mapped_column(String(128), nullable=False)
    goal: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    connect_account_id: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    users: Mapped[list[User]] = relationship("User", back_populates="agency")
    sub_accounts: Mapped[list[SubAccount]] = relationship(
        "SubAccount",
        back_populates="agency",
        cascade="all, delete-orphan",
    )
    sidebar_options: Mapped[list[SidebarOption]] = relationship(
        "SidebarOption",
        back_populates="agency",
        cascade="all, delete-orphan",
        order_by="SidebarOption.position",
    )
    invitations: Mapped[list[Invitation]] = relationship(
        "Invitation",
        back_populates="agency",
        cascade="all, delete-orphan",
    )
    notifications: Mapped[list[Notification]] = relationship(
        "Notification",
        back_populates="agency",
        cascade="all, delete-orphan",
    )


class SubAccount(Base):
    __tablename__ = "sub_account"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    agency_id: Mapped[str] = mapped_column(String(64), ForeignKey("agency.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sub_account_logo: Mapped[str] = mapped_column(Text, nullable=False)
    company_email: Mapped[str] = mapped_column(String(320), nullable=False)
    company_phone: Mapped[str] = mapped_column(String(64), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[str] = mapped_column(String(128), nullable=False)
    country: Mapped[str] = mapped_column(String(128), nullable=False)
    goal: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    connect_account_id: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    agency: Mapped[Agency] = relationship("Agency", back_populates="sub_accounts")
    sidebar_options: Mapped[list[SidebarOption]] = relationship(
        "SidebarOption",
        back_populates="sub_account",
        cascade="all, delete-orphan",
        order_by="SidebarOption.position",
    )
    permissions: Mapped[list[Permission]] = relationship(
        "Permission",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )
    pipelines: Mapped[list[Pipeline]] = relationship(
        "Pipeline",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )
    media: Mapped[list[Media]] = relationship(
        "Media",
        back_populates="sub_account",
        cascade="all, delete-orphan",
        order_by="Media.created_at",
    )
    funnels: Mapped[list[Funnel]] = relationship(
        "Funnel",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )
    tags: Mapped[list[Tag]] = relationship(
        "Tag",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )
    contacts: Mapped[list[Contact]] = relationship(
        "Contact",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )
    notifications: Mapped[list[Notification]] = relationship(
        "Notification",
        back_populates="sub_account",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_sub_account_agency", "agency_id"),)


class User(Base):
    __tablename__ = "agency_user"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="SUBACCOUNT_USER", server_default="SUBACCOUNT_USER")
    agency_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("agency.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    agency: Mapped[Agency | None] = relationship("Agency", back_populates="users")
    permissions: Mapped[list[Permission]] = relationship(
        "Permission",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    notifications: Mapped[list[Notification]] = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_agency_user_agency_role", "agency_id", "role"),)


class Permission(Base):
    __tablename__ = "sub_account_permission"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(
        String(320),
        ForeignKey("agency_user.email", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    sub_account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    user: Mapped[User] = relationship("User", back_populates="permissions")
    sub_account: Mapped[SubAccount] = relationship("SubAccount", back_populates="permissions")

    __table_args__ = (UniqueConstraint("email", "sub_account_id", name="uq_sub_account_permission_email"),)


class Invitation(Base):
    __tablename__ = "agency_invitation"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    agency_id: Mapped[str] = mapped_column(String(64), ForeignKey("agency.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING", server_default="PENDING")
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="SUBACCOUNT_USER", server_default="SUBACCOUNT_USER")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    agency: Mapped[Agency] = relationship("Agency", back_populates="invitations")


class SidebarOption(Base):
    __tablename__ = "sidebar_option"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="info", server_default="info")
    link: Mapped[str] = mapped_column(Text, nullable=False, default="#", server_default="#")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    agency_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("agency.id", ondelete="CASCADE"), nullable=True)
    sub_account_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=True,
    )

    agency: Mapped[Agency | None] = relationship("Agency", back_populates="sidebar_options")
    sub_account: Mapped[SubAccount | None] = relationship("SubAccount", back_populates="sidebar_options")
