from __future__ import annotations

from collections.abc import Iterable

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.errors import error_response, http_error_response
from app.authz.guards import require_subaccount_access
from app.core.auth import get_identity_provider, require_principal
from app.core.database import get_db
from app.identity import IdentityProvider, Principal
from app.pipelines.models import Lane, Pipeline, Tag, Ticket
from app.pipelines.schemas import (
    ContactRead,
    ContactUpsert,
    LaneDetailsRead,
    LaneRead,
    LanesOrderRequest,
    LaneUpsert,
    OrderSaveRead,
    PipelineRead,
    PipelineUpsert,
    TagRead,
    TagUpsert,
    TicketDetailsRead,
    TicketRead,
    TicketsOrderRequest,
    TicketUpsert,
)
from app.pipelines.service import (
    contact_service,
    lane_service,
    ordering_service,
    pipeline_service,
    tag_service,
    ticket_service,
)


router = APIRouter(prefix="/api", tags=["pipelines"])


def _not_found(request: Request, code: str, message: str) -> JSONResponse:
    return error_response(request, status_code=status.HTTP_404_NOT_FOUND, code=code, message=message)


def _order_not_saved(request: Request, code: str) -> JSONResponse:
    return error_response(request, status_code=status.HTTP_409_CONFLICT, code=code, message="could not save order")


def _pipeline_owners(db: Session, pipeline_ids: Iterable[str | None]) -> list[str]:
    ids = [item for item in pipeline_ids if item]
    if not ids:
        return []
    return list(db.scalars(select(Pipeline.sub_account_id).where(Pipeline.id.in_(ids))).all())


def _lane_owners(db: Session, lane_ids: Iterable[str | None]) -> list[str]:
    ids = [item for item in lane_ids if item]
    if not ids:
        return []
    stmt = select(Pipeline.sub_account_id).join(Lane, Lane.pipeline_id == Pipeline.id).where(Lane.id.in_(ids))
    return list(db.scalars(stmt).all())


def _ticket_lanes(db: Session, ticket_ids: Iterable[str | None]) -> list[str]:
    ids = [item for item in ticket_ids if item]
    if not ids:
        return []
    return list(db.scalars(select(Ticket.lane_id).where(Ticket.id.in_(ids))).all())


@router.get("/subaccounts/{subaccount_id}/pipelines", response_model=list[PipelineRead])
def list_pipelines(
    subaccount_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[PipelineRead]:
    return [PipelineRead.model_validate(row) for row in pipeline_service.list_pipelines(db, subaccount_id)]


@router.post("/pipelines", response_model=PipelineRead)
def upsert_pipeline(
    request: Request,
    dto: PipelineUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> PipelineRead | JSONResponse:
    require_subaccount_access(
        db, principal, [dto.sub_account_id, *_pipeline_owners(db, [dto.id])], identity=identity
    )
    try:
        return PipelineRead.model_validate(pipeline_service.upsert_pipeline(db, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "pipeline_upsert_failed")


@router.get("/pipelines/{pipeline_id}", response_model=PipelineRead)
def get_pipeline(
    request: Request,
    pipeline_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> PipelineRead | JSONResponse:
    pipeline = pipeline_service.get_pipeline_details(db, pipeline_id)
    if pipeline is None:
        return _not_found(request, "pipeline_not_found", "pipeline not found")
    return PipelineRead.model_validate(pipeline)


@router.delete("/pipelines/{pipeline_id}", response_model=PipelineRead)
def delete_pipeline(
    request: Request,
    pipeline_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> PipelineRead | JSONResponse:
    require_subaccount_access(db, principal, _pipeline_owners(db, [pipeline_id]), identity=identity)
    deleted = pipeline_service.delete_pipeline(db, pipeline_id)
    if deleted is None:
        return _not_found(request, "pipeline_not_found", "pipeline not found")
    return deleted


@router.get("/pipelines/{pipeline_id}/lanes", response_model=list[LaneDetailsRead])
def get_lanes(
    pipeline_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[LaneDetailsRead]:
    lanes = lane_service.get_lanes_with_tickets_and_tags(db, pipeline_id)
    return [LaneDetailsRead.model_validate(lane) for lane in lanes]


@router.get("/pipelines/{pipeline_id}/tickets", response_model=list[TicketDetailsRead])
def get_tickets(
    pipeline_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[TicketDetailsRead]:
    return [TicketDetailsRead.model_validate(row) for row in ticket_service.list_tickets_with_tags(db, pipeline_id)]


@router.post("/lanes", response_model=LaneRead)
def upsert_lane(
    request: Request,
    dto: LaneUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> LaneRead | JSONResponse:
    require_subaccount_access(
        db, principal, _pipeline_owners(db, [dto.pipeline_id]) + _lane_owners(db, [dto.id]), identity=identity
    )
    try:
        return LaneRead.model_validate(lane_service.upsert_lane(db, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "lane_upsert_failed")


@router.put("/lanes/order", response_model=OrderSaveRead)
def update_lanes_order(
    request: Request,
    dto: LanesOrderRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> OrderSaveRead | JSONResponse:
    require_subaccount_access(db, principal, _lane_owners(db, [lane.id for lane in dto.lanes]), identity=identity)
    if not ordering_service.update_lanes_order(db, dto.lanes):
        return _order_not_saved(request, "lane_order_failed")
    return OrderSaveRead(saved=True)


@router.delete("/lanes/{lane_id}", response_model=LaneRead)
def delete_lane(
    request: Request,
    lane_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> LaneRead | JSONResponse:
    require_subaccount_access(db, principal, _lane_owners(db, [lane_id]), identity=identity)
    deleted = lane_service.delete_lane(db, lane_id)
    if deleted is None:
        return _not_found(request, "lane_not_found", "lane not found")
    return deleted


@router.post("/tickets", response_model=TicketDetailsRead)
def upsert_ticket(
    request: Request,
    dto: TicketUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> TicketDetailsRead | JSONResponse:
    lane_ids = [dto.lane_id, *_ticket_lanes(db, [dto.id])]
    require_subaccount_access(db, principal, _lane_owners(db, lane_ids), identity=identity)
    try:
        return TicketDetailsRead.model_validate(ticket_service.upsert_ticket(db, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "ticket_upsert_failed")


@router.put("/tickets/order", response_model=OrderSaveRead)
def update_tickets_order(
    request: Request,
    dto: TicketsOrderRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> OrderSaveRead | JSONResponse:
    lane_ids = [ticket.lane_id for ticket in dto.tickets] + _ticket_lanes(db, [ticket.id for ticket in dto.tickets])
    require_subaccount_access(db, principal, _lane_owners(db, lane_ids), identity=identity)
    if not ordering_service.update_tickets_order(db, dto.tickets):
        return _order_not_saved(request, "ticket_order_failed")
    return OrderSaveRead(saved=True)


@router.delete("/tickets/{ticket_id}", response_model=TicketRead)
def delete_ticket(
    request: Request,
    ticket_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> TicketRead | JSONResponse:
    require_subaccount_access(db, principal, _lane_owners(db, _ticket_lanes(db, [ticket_id])), identity=identity)
    deleted = ticket_service.delete_ticket(db, ticket_id)
    if deleted is None:
        return _not_found(request, "ticket_not_found", "ticket not found")
    return deleted


@router.get("/subaccounts/{subaccount_id}/tags", response_model=list[TagRead])
def list_tags(
    subaccount_id: str,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[TagRead]:
    return [TagRead.model_validate(row) for row in tag_service.list_tags(db, subaccount_id)]


@router.post("/subaccounts/{subaccount_id}/tags", response_model=TagRead)
def upsert_tag(
    request: Request,
    subaccount_id: str,
    dto: TagUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> TagRead | JSONResponse:
    require_subaccount_access(db, principal, subaccount_id, identity=identity)
    try:
        return TagRead.model_validate(tag_service.upsert_tag(db, subaccount_id, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "tag_upsert_failed")


@router.delete("/tags/{tag_id}", response_model=TagRead)
def delete_tag(
    request: Request,
    tag_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> TagRead | JSONResponse:
    tag = db.get(Tag, tag_id)
    if tag is not None:
        require_subaccount_access(db, principal, tag.sub_account_id, identity=identity)
    deleted = tag_service.delete_tag(db, tag_id)
    if deleted is None:
        return _not_found(request, "tag_not_found", "tag not found")
    return deleted


@router.get("/subaccounts/{subaccount_id}/contacts", response_model=list[ContactRead])
def list_contacts(
    subaccount_id: str,
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_principal),
) -> list[ContactRead]:
    return [ContactRead.model_validate(row) for row in contact_service.list_contacts(db, subaccount_id, search)]


@router.post("/subaccounts/{subaccount_id}/contacts", response_model=ContactRead)
def upsert_contact(
    request: Request,
    subaccount_id: str,
    dto: ContactUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> ContactRead | JSONResponse:
    require_subaccount_access(db, principal, subaccount_id, identity=identity)
    try:
        return ContactRead.model_validate(contact_service.upsert_contact(db, subaccount_id, dto))
    except HTTPException as exc:
        return http_error_response(request, exc, "contact_upsert_failed")
