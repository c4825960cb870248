from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.database import commit_or_conflict
from app.metrics import observe_ordering_batch
from app.pipelines.models import Contact, Lane, Pipeline, Tag, Ticket
from app.pipelines.schemas import (
    ContactUpsert,
    LaneOrderUpdate,
    LaneRead,
    LaneUpsert,
    PipelineRead,
    PipelineUpsert,
    TagRead,
    TagUpsert,
    TicketOrderUpdate,
    TicketRead,
    TicketUpsert,
)
from app.tenancy.models import SubAccount


logger = logging.getLogger("app.pipelines")


def _require_sub_account(session: Session, subaccount_id: str) -> SubAccount:
    sub_account = session.get(SubAccount, subaccount_id)
    if sub_account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="sub-account not found")
    return sub_account


class PipelineService:
    def get_pipeline_details(self, session: Session, pipeline_id: str) -> Pipeline | None:
        return session.get(Pipeline, pipeline_id)

    def list_pipelines(self, session: Session, subaccount_id: str) -> list[Pipeline]:
        stmt = select(Pipeline).where(Pipeline.sub_account_id == subaccount_id).order_by(Pipeline.created_at.asc())
        return list(session.scalars(stmt).all())

    def upsert_pipeline(self, session: Session, dto: PipelineUpsert) -> Pipeline:
        pipeline = session.get(Pipeline, dto.id) if dto.id else None
        if pipeline is None:
            _require_sub_account(session, dto.sub_account_id)
            pipeline = Pipeline(name=dto.name, sub_account_id=dto.sub_account_id)
            if dto.id:
                pipeline.id = dto.id
            session.add(pipeline)
        else:
            pipeline.name = dto.name
        commit_or_conflict(session, "pipeline conflicts with existing data")
        session.refresh(pipeline)
        return pipeline

    def delete_pipeline(self, session: Session, pipeline_id: str) -> PipelineRead | None:
        pipeline = session.get(Pipeline, pipeline_id)
        if pipeline is None:
            return None
        snapshot = PipelineRead.model_validate(pipeline)
        session.delete(pipeline)
        session.commit()
        logger.info("pipeline.deleted", extra={"pipeline_id": pipeline_id})
        return snapshot


class LaneService:
    def get_lanes_with_tickets_and_tags(self, session: Session, pipeline_id: str) -> list[Lane]:
        stmt = (
            select(Lane)
            .options(
                selectinload(Lane.tickets).selectinload(Ticket.tags),
                selectinload(Lane.tickets).selectinload(Ticket.assigned),
                selectinload(Lane.tickets).selectinload(Ticket.customer),
            )
            .where(Lane.pipeline_id == pipeline_id)
            .order_by(Lane.order.asc())
        )
        return list(session.scalars(stmt).all())

    def upsert_lane(self, session: Session, dto: LaneUpsert) -> Lane:
        lane = session.get(Lane, dto.id) if dto.id else None
        if lane is not None:
            lane.name = dto.name
            if dto.order is not None:
                lane.order = dto.order
        else:
            if session.get(Pipeline, dto.pipeline_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="pipeline not found")
            order = dto.order
            if order is None:
                order = session.scalar(
                    select(func.count()).select_from(Lane).where(Lane.pipeline_id == dto.pipeline_id)
                ) or 0
            lane = Lane(name=dto.name, pipeline_id=dto.pipeline_id, order=order)
            if dto.id:
                lane.id = dto.id
            session.add(lane)
        commit_or_conflict(session, "lane conflicts with existing data")
        session.refresh(lane)
        return lane

    def delete_lane(self, session: Session, lane_id: str) -> LaneRead | None:
        lane = session.get(Lane, lane_id)
        if lane is None:
            return None
        snapshot = LaneRead.model_validate(lane)
        session.delete(lane)
        session.commit()
        return snapshot


class TicketService:
    def list_tickets_with_tags(self, session: Session, pipeline_id: str) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .join(Lane, Lane.id == Ticket.lane_id)
            .options(selectinload(Ticket.tags), selectinload(Ticket.assigned), selectinload(Ticket.customer))
            .where(Lane.pipeline_id == pipeline_id)
            .order_by(Lane.order.asc(), Ticket.order.asc())
        )
        return list(session.scalars(stmt).all())

    def upsert_ticket(self, session: Session, dto: TicketUpsert) -> Ticket:
        if session.get(Lane, dto.lane_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="lane not found")

        tags: list[Tag] = []
        if dto.tag_ids:
            tags = list(session.scalars(select(Tag).where(Tag.id.in_(dto.tag_ids))).all())
            if len(tags) != len(set(dto.tag_ids)):
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tag not found")

        ticket = session.get(Ticket, dto.id) if dto.id else None
        if ticket is None:
            order = dto.order
            if order is None:
                order = session.scalar(
                    select(func.count()).select_from(Ticket).where(Ticket.lane_id == dto.lane_id)
                ) or 0
            ticket = Ticket(lane_id=dto.lane_id, order=order)
            if dto.id:
                ticket.id = dto.id
            session.add(ticket)
        else:
            ticket.lane_id = dto.lane_id
            if dto.order is not None:
                ticket.order = dto.order

        ticket.name = dto.name
        ticket.value = dto.value
        ticket.description = dto.description
        ticket.customer_id = dto.customer_id
        ticket.assigned_user_id = dto.assigned_user_id
        ticket.tags = tags
        commit_or_conflict(session, "ticket conflicts with existing data")
        session.refresh(ticket)
        return ticket

    def delete_ticket(self, session: Session, ticket_id: str) -> TicketRead | None:
        ticket = session.get(Ticket, ticket_id)
        if ticket is None:
            return None
        snapshot = TicketRead.model_validate(ticket)
        session.delete(ticket)
        session.commit()
        return snapshot


class TagService:
    def list_tags(self, session: Session, subaccount_id: str) -> list[Tag]:
        stmt = select(Tag).where(Tag.sub_account_id == subaccount_id).order_by(Tag.name.asc())
        return list(session.scalars(stmt).all())

    def upsert_tag(self, session: Session, subaccount_id: str, dto: TagUpsert) -> Tag:
        tag = session.get(Tag, dto.id) if dto.id else None
        if tag is None:
            _require_sub_account(session, subaccount_id)
            tag = Tag(sub_account_id=subaccount_id)
            if dto.id:
                tag.id = dto.id
            session.add(tag)
        tag.name = dto.name
        tag.color = dto.color
        commit_or_conflict(session, "tag already exists")
        session.refresh(tag)
        return tag

    def delete_tag(self, session: Session, tag_id: str) -> TagRead | None:
        tag = session.get(Tag, tag_id)
        if tag is None:
            return None
        snapshot = TagRead.model_validate(tag)
        session.delete(tag)
        session.commit()
        return snapshot


class ContactService:
    def list_contacts(self, session: Session, subaccount_id: str, search: str | None = None) -> list[Contact]:
        stmt = select(Contact).where(Contact.sub_account_id == subaccount_id)
        if search:
            stmt = stmt.where(Contact.name.ilike(f"%{search.strip()}%"))
        return list(session.scalars(stmt.order_by(Contact.created_at.desc())).all())

    def upsert_contact(self, session: Session, subaccount_id: str, dto: ContactUpsert) -> Contact:
        contact = session.get(Contact, dto.id) if dto.id else None
        if contact is None:
            _require_sub_account(session, subaccount_id)
            contact = Contact(sub_account_id=subaccount_id)
            if dto.id:
                contact.id = dto.id
            session.add(contact)
        contact.name = dto.name
        contact.email = str(dto.email)
        commit_or_conflict(session, "contact conflicts with existing data")
        session.refresh(contact)
        return contact


class OrderingService:
    """Persists drag-and-drop reorders of lanes and tickets as one batch.

    A batch is checked before anything is written and then applied in a single
    transaction, so callers see either every new position or the old ones.
    Two concurrent reorders of the same pipeline resolve last-write-wins.
    """

    def update_lanes_order(self, session: Session, lanes: Sequence[LaneOrderUpdate | Mapping[str, Any]]) -> bool:
        try:
            updates = [_coerce(LaneOrderUpdate, item) for item in lanes]
        except ValidationError as exc:
            return self._reject("lane", "invalid_entry", error=str(exc))

        ids = [item.id for item in updates]
        if len(ids) != len(set(ids)):
            return self._reject("lane", "duplicate_id")
        if not updates:
            return True

        try:
            rows = {lane.id: lane for lane in session.scalars(select(Lane).where(Lane.id.in_(ids)))}
            if len(rows) != len(ids):
                return self._reject("lane", "unknown_id", session=session)

            pipeline_ids = {lane.pipeline_id for lane in rows.values()}
            slots = {
                lane.id: (lane.pipeline_id, lane.order)
                for lane in session.scalars(select(Lane).where(Lane.pipeline_id.in_(pipeline_ids)))
            }
            slots.update({item.id: (rows[item.id].pipeline_id, item.order) for item in updates})
            if len(set(slots.values())) != len(slots):
                return self._reject("lane", "duplicate_order", session=session)

            for item in updates:
                rows[item.id].order = item.order
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("ordering.lanes_failed", extra={"entity": "lane", "count": len(updates), "error": str(exc)[:500]})
            observe_ordering_batch("lane", "failed")
            return False

        logger.info("ordering.lanes_saved", extra={"entity": "lane", "count": len(updates)})
        observe_ordering_batch("lane", "saved")
        return True

    def update_tickets_order(self, session: Session, tickets: Sequence[TicketOrderUpdate | Mapping[str, Any]]) -> bool:
        try:
            updates = [_coerce(TicketOrderUpdate, item) for item in tickets]
        except ValidationError as exc:
            return self._reject("ticket", "invalid_entry", error=str(exc))

        ids = [item.id for item in updates]
        if len(ids) != len(set(ids)):
            return self._reject("ticket", "duplicate_id")
        if len({(item.lane_id, item.order) for item in updates}) != len(updates):
            return self._reject("ticket", "duplicate_order")
        if not updates:
            return True

        try:
            lane_ids = {item.lane_id for item in updates}
            known_lanes = set(session.scalars(select(Lane.id).where(Lane.id.in_(lane_ids))))
            if known_lanes != lane_ids:
                return self._reject("ticket", "unknown_lane", session=session)

            rows = {ticket.id: ticket for ticket in session.scalars(select(Ticket).where(Ticket.id.in_(ids)))}
            if len(rows) != len(ids):
                return self._reject("ticket", "unknown_id", session=session)

            affected = lane_ids | {ticket.lane_id for ticket in rows.values()}
            slots = {
                ticket.id: (ticket.lane_id, ticket.order)
                for ticket in session.scalars(select(Ticket).where(Ticket.lane_id.in_(affected)))
            }
            slots.update({item.id: (item.lane_id, item.order) for item in updates})
            if len(set(slots.values())) != len(slots):
                return self._reject("ticket", "duplicate_order", session=session)

            for item in updates:
                row = rows[item.id]
                row.order = item.order
                row.lane_id = item.lane_id
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "ordering.tickets_failed",
                extra={"entity": "ticket", "count": len(updates), "error": str(exc)[:500]},
            )
            observe_ordering_batch("ticket", "failed")
            return False

        logger.info("ordering.tickets_saved", extra={"entity": "ticket", "count": len(updates)})
        observe_ordering_batch("ticket", "saved")
        return True

    def _reject(self, entity: str, reason: str, *, session: Session | None = None, error: str | None = None) -> bool:
        if session is not None:
            session.rollback()
        logger.warning(f"ordering.{entity}s_rejected", extra={"entity": entity, "reason": reason, "error": error})
        observe_ordering_batch(entity, "rejected")
        return False


def _coerce(model: type[LaneOrderUpdate] | type[TicketOrderUpdate], item: Any) -> Any:
    if isinstance(item, model):
        return item
    return model.model_validate(item)


pipeline_service = PipelineService()
lane_service = LaneService()
ticket_service = TicketService()
tag_service = TagService()
contact_service = ContactService()
ordering_service = OrderingService()
