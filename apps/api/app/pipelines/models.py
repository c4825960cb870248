from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.tenancy.models import SubAccount, User, new_id, utcnow


ticket_tag_table = Table(
    "pipeline_ticket_tag",
    Base.metadata,
    Column("ticket_id", String(64), ForeignKey("pipeline_ticket.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(64), ForeignKey("pipeline_tag.id", ondelete="CASCADE"), primary_key=True),
)


class Pipeline(Base):
    __tablename__ = "pipeline"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sub_account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sub_account: Mapped[SubAccount] = relationship("SubAccount", back_populates="pipelines")
    lanes: Mapped[list[Lane]] = relationship(
        "Lane",
        back_populates="pipeline",
        cascade="all, delete-orphan",
        order_by="Lane.order",
    )


class Lane(Base):
    __tablename__ = "pipeline_lane"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    pipeline_id: Mapped[str] = mapped_column(String(64), ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    pipeline: Mapped[Pipeline] = relationship("Pipeline", back_populates="lanes")
    tickets: Mapped[list[Ticket]] = relationship(
        "Ticket",
        back_populates="lane",
        cascade="all, delete-orphan",
        order_by="Ticket.order",
    )

    __table_args__ = (Index("ix_pipeline_lane_order", "pipeline_id", "order"),)


class Ticket(Base):
    __tablename__ = "pipeline_ticket"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lane_id: Mapped[str] = mapped_column(String(64), ForeignKey("pipeline_lane.id", ondelete="CASCADE"), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("contact.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_user_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("agency_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lane: Mapped[Lane] = relationship("Lane", back_populates="tickets")
    tags: Mapped[list[Tag]] = relationship("Tag", secondary=ticket_tag_table, back_populates="tickets")
    customer: Mapped[Contact | None] = relationship("Contact", back_populates="tickets")
    assigned: Mapped[User | None] = relationship("User")

    __table_args__ = (Index("ix_pipeline_ticket_order", "lane_id", "order"),)


class Tag(Base):
    __tablename__ = "pipeline_tag"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    sub_account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    sub_account: Mapped[SubAccount] = relationship("SubAccount", back_populates="tags")
    tickets: Mapped[list[Ticket]] = relationship("Ticket", secondary=ticket_tag_table, back_populates="tags")

    __table_args__ = (UniqueConstraint("sub_account_id", "name", name="uq_pipeline_tag_name"),)


class Contact(Base):
    __tablename__ = "contact"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    sub_account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sub_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    sub_account: Mapped[SubAccount] = relationship("SubAccount", back_populates="contacts")
    tickets: Mapped[list[Ticket]] = relationship("Ticket", back_populates="customer")
